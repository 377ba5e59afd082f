"""
Surfaces of the tracking geometry and their construction from detector elements.

A surface is a transform plus one of four bounds variants. Planar module
surfaces carry rectangle or trapezoid bounds, layer and approach surfaces
carry radial (disc) or cylinder bounds. All lengths are in mm.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple, Union

import numpy as np

from dd4hep_layers.errors import StructuralGeometryError
from dd4hep_layers.geometry.shapes import Box, Trapezoid, TubeSegment
from dd4hep_layers.geometry.transforms import Transform3D, convert_transform
from dd4hep_layers.units import UNIT_CM

# Number of points used to polygonize circular edges
N_CIRCLE_SEGMENTS = 72


@dataclass(frozen=True)
class RectangleBounds:
    half_x: float
    half_y: float


@dataclass(frozen=True)
class TrapezoidBounds:
    min_half_x: float
    max_half_x: float
    half_y: float


@dataclass(frozen=True)
class RadialBounds:
    r_min: float
    r_max: float
    half_phi: float = math.pi
    average_phi: float = 0.0

    def __post_init__(self):
        if self.r_min < 0 or self.r_max < self.r_min:
            raise ValueError(f"Invalid radial bounds: ({self.r_min}, {self.r_max})")


@dataclass(frozen=True)
class CylinderBounds:
    r: float
    half_z: float
    half_phi: float = math.pi
    average_phi: float = 0.0

    def __post_init__(self):
        if self.r < 0 or self.half_z < 0:
            raise ValueError(f"Invalid cylinder bounds: r={self.r}, half_z={self.half_z}")


SurfaceBounds = Union[RectangleBounds, TrapezoidBounds, RadialBounds, CylinderBounds]


class SurfaceType(Enum):
    PLANE = "plane"
    DISC = "disc"
    CYLINDER = "cylinder"


class Surface:
    """
    A bounded surface placed by a transform.

    Sensitive surfaces additionally reference the detector element they were
    built from, the axes convention and unit scale of that conversion, and an
    optional shared digitization module.
    """

    def __init__(self, transform: Transform3D, bounds: SurfaceBounds, associated_material=None,
                 detector_element=None, axes: str = 'XYZ', unit_scale: float = UNIT_CM,
                 is_disc: bool = False, thickness: float = 0.0, digitization_module=None):
        self.transform = transform
        self.bounds = bounds
        self.associated_material = associated_material
        self.detector_element = detector_element
        self.axes = axes
        self.unit_scale = unit_scale
        self.is_disc = is_disc
        self.thickness = thickness
        self.digitization_module = digitization_module

    @property
    def type(self) -> SurfaceType:
        if isinstance(self.bounds, RadialBounds):
            return SurfaceType.DISC
        if isinstance(self.bounds, CylinderBounds):
            return SurfaceType.CYLINDER
        return SurfaceType.PLANE

    @property
    def center(self) -> np.ndarray:
        return self.transform.translation.copy()

    @property
    def normal(self) -> np.ndarray:
        return self.transform.column(2)

    @property
    def is_sensitive(self) -> bool:
        return self.detector_element is not None

    def set_associated_material(self, material):
        self.associated_material = material

    def binning_position(self) -> np.ndarray:
        """Reference point used when sorting the surface into a grid."""
        if isinstance(self.bounds, CylinderBounds):
            phi = self.bounds.average_phi
            local = np.array([self.bounds.r * math.cos(phi), self.bounds.r * math.sin(phi), 0.0])
            return self.transform.to_global(local)
        if isinstance(self.bounds, RadialBounds):
            r = 0.5 * (self.bounds.r_min + self.bounds.r_max)
            phi = self.bounds.average_phi
            return self.transform.to_global(np.array([r * math.cos(phi), r * math.sin(phi), 0.0]))
        return self.center

    def vertices(self, n_segments: int = N_CIRCLE_SEGMENTS) -> np.ndarray:
        """Global vertices outlining the surface, shape (n, 3)."""
        bounds = self.bounds
        if isinstance(bounds, RectangleBounds):
            local = np.array([[-bounds.half_x, -bounds.half_y, 0.0],
                              [bounds.half_x, -bounds.half_y, 0.0],
                              [bounds.half_x, bounds.half_y, 0.0],
                              [-bounds.half_x, bounds.half_y, 0.0]])
        elif isinstance(bounds, TrapezoidBounds):
            local = np.array([[-bounds.min_half_x, -bounds.half_y, 0.0],
                              [bounds.min_half_x, -bounds.half_y, 0.0],
                              [bounds.max_half_x, bounds.half_y, 0.0],
                              [-bounds.max_half_x, bounds.half_y, 0.0]])
        else:
            phi = np.linspace(bounds.average_phi - bounds.half_phi,
                              bounds.average_phi + bounds.half_phi, n_segments, endpoint=False)
            if isinstance(bounds, RadialBounds):
                rings = [(bounds.r_min, 0.0), (bounds.r_max, 0.0)]
            else:
                rings = [(bounds.r, -bounds.half_z), (bounds.r, bounds.half_z)]
            local = np.concatenate([
                np.column_stack([r * np.cos(phi), r * np.sin(phi), np.full_like(phi, z)])
                for r, z in rings
            ])
        return self.transform.to_global(local)

    def extent(self) -> Tuple[float, float, float, float]:
        """(min_r, max_r, min_z, max_z) of the surface in global coordinates."""
        vertices = self.vertices()
        radii = np.hypot(vertices[:, 0], vertices[:, 1])
        min_r = float(radii.min())
        if self.type is SurfaceType.PLANE:
            # edges of a planar polygon can pass closer to the beam line than its corners
            min_r = min(min_r, _closest_edge_radius(vertices))
        return (min_r, float(radii.max()),
                float(vertices[:, 2].min()), float(vertices[:, 2].max()))

    def __repr__(self):
        name = self.detector_element.name if self.detector_element is not None else None
        return f"Surface({self.type.value}, bounds={self.bounds}, element={name!r})"


def _closest_edge_radius(vertices: np.ndarray) -> float:
    start = vertices[:, :2]
    end = np.roll(start, -1, axis=0)
    direction = end - start
    length2 = np.einsum('ij,ij->i', direction, direction)
    with np.errstate(invalid='ignore', divide='ignore'):
        t = np.where(length2 > 0, -np.einsum('ij,ij->i', start, direction) / length2, 0.0)
    closest = start + np.clip(t, 0.0, 1.0)[:, None] * direction
    return float(np.hypot(closest[:, 0], closest[:, 1]).min())


def disc_surface(transform: Transform3D, r_min: float, r_max: float,
                 half_phi: float = math.pi, average_phi: float = 0.0) -> Surface:
    return Surface(transform, RadialBounds(r_min, r_max, half_phi, average_phi))


def cylinder_surface(transform: Transform3D, radius: float, half_z: float) -> Surface:
    return Surface(transform, CylinderBounds(radius, half_z))


_AXIS_INDEX = {'x': 0, 'y': 1, 'z': 2}


def _axes_frame(rotation: np.ndarray, axes: str):
    """Permute (and flip) the rotation columns following an axes string like 'XzY'."""
    if len(axes) != 3 or sorted(axes.lower()) != ['x', 'y', 'z']:
        raise ValueError(f"Invalid axes definition: {axes!r}")
    indices = [_AXIS_INDEX[letter.lower()] for letter in axes]
    columns = [rotation[:, i] if letter.isupper() else -rotation[:, i]
               for letter, i in zip(axes, indices)]
    return np.column_stack(columns), indices


def surface_from_element(detector_element, axes: str = 'XYZ', unit_scale: float = UNIT_CM,
                         is_disc: bool = False, material=None,
                         digitization_module: Optional[Any] = None) -> Surface:
    """
    Build the sensitive surface representing a detector element.

    Parameters:
    -----------
    detector_element : DetectorElement
        Element whose placed shape and world transformation define the surface
    axes : str
        Which shape axes become the surface's local x, local y and normal
    unit_scale : float
        Native length unit in mm
    is_disc : bool
        Tube segments become discs when set, cylinders otherwise
    material : SurfaceMaterial, optional
    digitization_module : DigitizationModule, optional

    Returns:
    --------
    Surface
    """
    shape = detector_element.shape
    transform = convert_transform(detector_element.world_transformation, unit_scale)
    common = dict(associated_material=material, detector_element=detector_element, axes=axes,
                  unit_scale=unit_scale, is_disc=is_disc, digitization_module=digitization_module)

    if isinstance(shape, TubeSegment):
        rmin, rmax, dz = shape.rmin * unit_scale, shape.rmax * unit_scale, shape.dz * unit_scale
        if is_disc:
            bounds = RadialBounds(rmin, rmax, shape.half_phi, shape.average_phi)
            return Surface(transform, bounds, thickness=2.0 * dz, **common)
        bounds = CylinderBounds(0.5 * (rmin + rmax), dz, shape.half_phi, shape.average_phi)
        return Surface(transform, bounds, thickness=rmax - rmin, **common)

    if isinstance(shape, (Box, Trapezoid)):
        frame, indices = _axes_frame(transform.rotation, axes)
        half = [h * unit_scale for h in shape.half_lengths]
        surface_transform = Transform3D(frame, transform.translation)
        if isinstance(shape, Box):
            bounds = RectangleBounds(half[indices[0]], half[indices[1]])
        else:
            if indices[0] != 0:
                raise StructuralGeometryError(
                    detector_element.name, f"is a trapezoid and needs its x axis as local x, got axes {axes!r}")
            bounds = TrapezoidBounds(shape.dx1 * unit_scale, shape.dx2 * unit_scale, half[indices[1]])
        return Surface(surface_transform, bounds, thickness=2.0 * half[indices[2]], **common)

    raise StructuralGeometryError(
        detector_element.name,
        f"has shape {type(shape).__name__} which cannot be converted into a sensitive surface")
