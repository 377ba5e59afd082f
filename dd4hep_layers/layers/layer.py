"""
Tracking layers.

A layer is a disc or a cylinder: the shape tag selects which bounds it
carries and which surface represents it. The layer owns its surface array and
its approach descriptor; its representing surface holds the bulk material
attached after creation.
"""

from typing import Optional, Union

from dd4hep_layers.enums import LayerShape, LayerType
from dd4hep_layers.geometry.surface_array import SurfaceArray
from dd4hep_layers.geometry.surfaces import CylinderBounds, RadialBounds, Surface
from dd4hep_layers.geometry.transforms import Transform3D


class Layer:

    def __init__(self, shape: LayerShape, transform: Transform3D,
                 bounds: Union[RadialBounds, CylinderBounds], thickness: float,
                 surface_array: Optional[SurfaceArray] = None, approach_descriptor=None,
                 layer_type: LayerType = LayerType.PASSIVE):
        expected = RadialBounds if shape is LayerShape.DISC else CylinderBounds
        if not isinstance(bounds, expected):
            raise TypeError(f"A {shape.value} layer needs {expected.__name__}, got {type(bounds).__name__}")
        self.shape = shape
        self.transform = transform
        self.bounds = bounds
        self.thickness = thickness
        self.surface_array = surface_array
        self.approach_descriptor = approach_descriptor
        self.layer_type = layer_type
        self.surface_representation = Surface(transform, bounds)

    @classmethod
    def disc(cls, transform, bounds: RadialBounds, surface_array=None, thickness=0.0,
             approach_descriptor=None, layer_type=LayerType.PASSIVE) -> "Layer":
        return cls(LayerShape.DISC, transform, bounds, thickness, surface_array,
                   approach_descriptor, layer_type)

    @classmethod
    def cylinder(cls, transform, bounds: CylinderBounds, surface_array=None, thickness=0.0,
                 approach_descriptor=None, layer_type=LayerType.PASSIVE) -> "Layer":
        return cls(LayerShape.CYLINDER, transform, bounds, thickness, surface_array,
                   approach_descriptor, layer_type)

    @property
    def is_disc(self) -> bool:
        return self.shape is LayerShape.DISC

    @property
    def surfaces(self):
        return self.surface_array.surfaces if self.surface_array is not None else ()

    @property
    def surface_material(self):
        return self.surface_representation.associated_material

    def __repr__(self):
        return (f"Layer({self.shape.value}, bounds={self.bounds}, thickness={self.thickness:g}, "
                f"surfaces={len(self.surfaces)}, type={self.layer_type.value})")
