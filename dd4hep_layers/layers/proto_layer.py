"""
Proto-layers: the bounding envelope of a layer before it is created.

``build_proto_layer`` decides where the envelope comes from. Explicit
margins from the Acts extension win; otherwise the layer's tube-segment shape
brackets the module surfaces and the gap between the two becomes the margin.
"""

import logging
from dataclasses import dataclass
from typing import Sequence, Tuple

from dd4hep_layers.errors import StructuralGeometryError
from dd4hep_layers.geometry.shapes import TubeSegment
from dd4hep_layers.geometry.surfaces import Surface
from dd4hep_layers.geometry.transforms import Transform3D
from dd4hep_layers.units import UNIT_CM

logger = logging.getLogger(__name__)


@dataclass
class ProtoLayer:
    min_r: float
    max_r: float
    min_z: float
    max_z: float
    env_r: Tuple[float, float] = (0.0, 0.0)
    env_z: Tuple[float, float] = (0.0, 0.0)

    @classmethod
    def from_surfaces(cls, surfaces: Sequence[Surface]) -> "ProtoLayer":
        """Tight bounds over the extents of all surfaces."""
        if not surfaces:
            raise ValueError("Cannot build a proto layer from an empty surface list")
        extents = [surface.extent() for surface in surfaces]
        return cls(min(e[0] for e in extents), max(e[1] for e in extents),
                   min(e[2] for e in extents), max(e[3] for e in extents))

    @property
    def length_r(self) -> float:
        return abs(self.max_r - self.min_r)

    @property
    def length_z(self) -> float:
        return abs(self.max_z - self.min_z)

    @property
    def outer_min_r(self) -> float:
        return self.min_r - self.env_r[0]

    @property
    def outer_max_r(self) -> float:
        return self.max_r + self.env_r[1]

    @property
    def outer_min_z(self) -> float:
        return self.min_z - self.env_z[0]

    @property
    def outer_max_z(self) -> float:
        return self.max_z + self.env_z[1]

    def __str__(self):
        return (f"ProtoLayer with dimensions (min/max)\n"
                f" - r : {self.min_r:.3f} - {self.env_r[0]:.3f} / {self.max_r:.3f} + {self.env_r[1]:.3f}\n"
                f" - z : {self.min_z:.3f} - {self.env_z[0]:.3f} / {self.max_z:.3f} + {self.env_z[1]:.3f}")


def _margin(element_name: str, label: str, shape_value: float, tight_value: float, inner: bool) -> float:
    gap = shape_value - tight_value
    # the shape should bracket the modules, a gap of the wrong sign means it does not
    if (inner and gap > 0) or (not inner and gap < 0):
        logger.warning("[L] Layer %s: shape %s=%.4f does not enclose the module bound %.4f, "
                       "using the absolute difference as envelope", element_name, label,
                       shape_value, tight_value)
    return abs(gap)


def build_proto_layer(detector_element, extension, surfaces: Sequence[Surface],
                      transform: Transform3D, is_barrel: bool,
                      unit_scale: float = UNIT_CM) -> ProtoLayer:
    """
    Compute the envelope of one layer.

    Parameters:
    -----------
    detector_element : DetectorElement
        The layer element, its shape is used when no explicit envelope is declared
    extension : ActsExtension
        Envelope policy of the layer
    surfaces : sequence of Surface
        Sensitive surfaces collected below the layer (may be empty)
    transform : Transform3D
        Converted world transform of the layer
    is_barrel : bool
        Barrel layers take z from the shape half length, endcap layers project it
        along the transform's third axis
    unit_scale : float
        Native length unit in mm

    Returns:
    --------
    ProtoLayer
    """
    name = detector_element.name
    shape = detector_element.shape

    if extension.build_envelope:
        env_r = (extension.envelope_r, extension.envelope_r)
        env_z = (extension.envelope_z, extension.envelope_z)
        if surfaces:
            proto_layer = ProtoLayer.from_surfaces(surfaces)
        elif isinstance(shape, TubeSegment):
            proto_layer = ProtoLayer(*_shape_bounds(shape, transform, is_barrel, unit_scale))
        else:
            logger.error("[L] Layer %s has explicit envelopes but neither surfaces nor a tube shape", name)
            raise StructuralGeometryError(name, "has envelope tolerances but neither sensitive surfaces "
                                                "nor a shape to take its dimensions from.")
        proto_layer.env_r = env_r
        proto_layer.env_z = env_z
        return proto_layer

    if shape is None:
        logger.error("[L] Layer %s has neither a shape nor envelope tolerances", name)
        raise StructuralGeometryError(name, "has neither a shape nor tolerances for envelopes added to "
                                            "its extension. Please check your detector constructor!")
    if not isinstance(shape, TubeSegment):
        kind = 'Cylinder' if is_barrel else 'Disc'
        logger.error("[L] %s layer %s has wrong shape - needs to be TGeoTubeSeg!", kind, name)
        raise StructuralGeometryError(name, f"has shape {type(shape).__name__}, a {kind.lower()} layer "
                                            f"needs a tube segment.")

    r_min, r_max, z_min, z_max = _shape_bounds(shape, transform, is_barrel, unit_scale)
    if not surfaces:
        return ProtoLayer(r_min, r_max, z_min, z_max)

    proto_layer = ProtoLayer.from_surfaces(surfaces)
    proto_layer.env_r = (_margin(name, 'rMin', r_min, proto_layer.min_r, inner=True),
                         _margin(name, 'rMax', r_max, proto_layer.max_r, inner=False))
    proto_layer.env_z = (_margin(name, 'zMin', z_min, proto_layer.min_z, inner=True),
                         _margin(name, 'zMax', z_max, proto_layer.max_z, inner=False))
    return proto_layer


def _shape_bounds(shape: TubeSegment, transform: Transform3D, is_barrel: bool,
                  unit_scale: float) -> Tuple[float, float, float, float]:
    r_min = shape.rmin * unit_scale
    r_max = shape.rmax * unit_scale
    dz = shape.dz * unit_scale
    if is_barrel:
        return r_min, r_max, -dz, dz
    axis = transform.column(2)
    z_min = float((transform.translation - axis * dz)[2])
    z_max = float((transform.translation + axis * dz)[2])
    if z_min > z_max:
        z_min, z_max = z_max, z_min
    return r_min, r_max, z_min, z_max
