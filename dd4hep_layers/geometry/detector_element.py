"""
In-memory model of the DD4hep detector-element tree read by the layer builder.

Only the parts the builder consumes are modelled: the nominal world
transformation, the placed volume with its shape, material and sensitivity
flag, the ordered child map and the Acts extension attached to an element.
All lengths are in DD4hep native units (cm).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

import numpy as np

from dd4hep_layers.enums import LayerMaterialPosition
from dd4hep_layers.errors import MissingExtensionError


@dataclass(frozen=True)
class DD4hepMaterial:
    """Bulk material of a volume: lengths in cm, density in g/cm^3."""
    name: str
    rad_length: float
    int_length: float
    a: float
    z: float
    density: float

    @property
    def is_vacuum(self) -> bool:
        return self.name.lower() == 'vacuum'


VACUUM = DD4hepMaterial('Vacuum', float('inf'), float('inf'), 0.0, 0.0, 0.0)


@dataclass(frozen=True)
class Volume:
    shape: Any = None
    material: DD4hepMaterial = VACUUM
    sensitive: bool = False

    @property
    def is_sensitive(self) -> bool:
        return self.sensitive


@dataclass(frozen=True)
class Placement:
    volume: Volume = field(default_factory=Volume)

    @property
    def shape(self):
        return self.volume.shape


@dataclass
class ActsExtension:
    """
    Per-element annotation steering the conversion.

    Parameters:
    -----------
    axes : str
        Orientation of the module axes, e.g. 'XYZ' or 'XZY' (lower case flips an axis)
    build_envelope : bool
        Use envelope_r / envelope_z instead of inferring them from the layer shape
    envelope_r, envelope_z : float
        Explicit envelope margins in mm
    has_support_material : bool
        Mark the layer for material mapping
    material_bins : tuple(int, int)
        (phi bins, r or z bins) of the material grid
    layer_material_position : LayerMaterialPosition
        Approach surface that receives the material proxy
    material : SurfaceMaterial, optional
        Material handed to a sensitive surface built from this element
    digitization_module : DigitizationModule, optional
        Shared readout description for a sensitive surface
    is_barrel, is_endcap : bool
        Region flags used when sorting layer elements
    """
    axes: str = 'XYZ'
    build_envelope: bool = False
    envelope_r: float = 0.0
    envelope_z: float = 0.0
    has_support_material: bool = False
    material_bins: Tuple[int, int] = (1, 1)
    layer_material_position: LayerMaterialPosition = LayerMaterialPosition.INNER
    material: Any = None
    digitization_module: Any = None
    is_barrel: bool = False
    is_endcap: bool = False

    def __post_init__(self):
        if self.envelope_r < 0 or self.envelope_z < 0:
            raise ValueError("Envelope margins must not be negative")
        bins1, bins2 = self.material_bins
        if bins1 < 1 or bins2 < 1:
            raise ValueError(f"Material bins must be positive, got {self.material_bins}")


class DetectorElement:
    """A node of the detector-element tree."""

    def __init__(self, name, world_transformation=None, placement=None, extension=None):
        self.name = name
        self.world_transformation = (np.eye(4) if world_transformation is None
                                     else np.array(world_transformation, dtype=float))
        self.placement = placement if placement is not None else Placement()
        self.parent = None
        self._children: Dict[str, "DetectorElement"] = {}
        self._extension = extension

    @property
    def volume(self) -> Volume:
        return self.placement.volume

    @property
    def shape(self):
        return self.placement.shape

    @property
    def children(self) -> Dict[str, "DetectorElement"]:
        return self._children

    def add_child(self, child: "DetectorElement") -> "DetectorElement":
        if child.name in self._children:
            raise ValueError(f"DetElement {self.name} already has a child named {child.name}")
        child.parent = self
        self._children[child.name] = child
        return child

    def extension(self) -> ActsExtension:
        if self._extension is None:
            raise MissingExtensionError(self.name)
        return self._extension

    def __repr__(self):
        return f"DetectorElement({self.name!r}, children={len(self._children)})"
