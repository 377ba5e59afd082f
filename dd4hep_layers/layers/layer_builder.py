"""
Conversion of DD4hep layer elements into tracking layers.

Each configured layer element becomes exactly one layer. Barrel elements
become cylinder layers, endcap elements disc layers:

    collect sensitive modules -> proto-layer -> material proxy / approach
    descriptor -> layer -> bulk material

A layer element that is itself sensitive becomes a single-surface layer;
otherwise the layer creator builds the layer around the collected modules.
"""

import logging
from typing import List

from dd4hep_layers.detector_config import LayerBuilderConfig
from dd4hep_layers.enums import LayerType, Region
from dd4hep_layers.errors import LayerBuildError
from dd4hep_layers.geometry.surface_array import SurfaceArray
from dd4hep_layers.geometry.surfaces import CylinderBounds, RadialBounds
from dd4hep_layers.geometry.transforms import convert_transform
from dd4hep_layers.layers.approach import build_approach_descriptor, cylinder_half_z
from dd4hep_layers.layers.layer import Layer
from dd4hep_layers.layers.layer_creator import LayerCreator
from dd4hep_layers.layers.proto_layer import ProtoLayer, build_proto_layer
from dd4hep_layers.layers.sensitive import collect_sensitive, create_sensitive_surface
from dd4hep_layers.material.material import HomogeneousSurfaceMaterial, Material, MaterialProperties
from dd4hep_layers.units import UNIT_CM

logger = logging.getLogger(__name__)


def layer_surface_material(detector_element, proto_layer: ProtoLayer, unit_scale: float = UNIT_CM):
    """
    Bulk material of a layer element spread over the layer's radial extent.

    Returns None for vacuum (name compared case-insensitively).
    """
    dd_material = detector_element.volume.material
    if dd_material is None or dd_material.is_vacuum:
        return None
    material = Material.from_dd4hep(dd_material, unit_scale)
    return HomogeneousSurfaceMaterial(MaterialProperties(material, abs(proto_layer.max_r - proto_layer.min_r)))


class LayerBuilder:
    """
    Builds the negative endcap, barrel and positive endcap layers.

    Nothing is cached: every call converts the configured elements again and
    returns new layer instances.
    """

    def __init__(self, config: LayerBuilderConfig, unit_scale: float = UNIT_CM):
        self.config = config
        self.unit_scale = unit_scale
        self.layer_creator = config.layer_creator or LayerCreator()

    def negative_layers(self) -> List[Layer]:
        return self.build_layers(Region.NEGATIVE)

    def central_layers(self) -> List[Layer]:
        return self.build_layers(Region.CENTRAL)

    def positive_layers(self) -> List[Layer]:
        return self.build_layers(Region.POSITIVE)

    def build_layers(self, region: Region) -> List[Layer]:
        elements = self.config.layers_for(region)
        if not elements:
            logger.debug("[L] No layers handed over for %s volume.", region.value)
            return []
        logger.debug("[L] Received layers for %s volume -> creating %s layers", region.value,
                     'cylindrical' if region.is_barrel else 'disc')
        return [self.build_layer(element, region) for element in elements]

    def build_layer(self, detector_element, region: Region) -> Layer:
        """Convert one layer element, errors name the offending element."""
        try:
            extension = detector_element.extension()
        except LayerBuildError:
            logger.error("[L] Layer element %s has no Acts extension", detector_element.name)
            raise

        surfaces = collect_sensitive(detector_element, extension.axes,
                                     build_digitization_modules=self.config.build_digitization_modules,
                                     registry=self.config.digitization_registry,
                                     unit_scale=self.unit_scale)
        transform = convert_transform(detector_element.world_transformation, self.unit_scale)
        proto_layer = build_proto_layer(detector_element, extension, surfaces, transform,
                                        region.is_barrel, self.unit_scale)
        approach_descriptor = build_approach_descriptor(proto_layer, extension, transform, region)

        if detector_element.volume.is_sensitive:
            layer = self._sensitive_layer(detector_element, region, proto_layer, transform,
                                          approach_descriptor)
        elif region.is_barrel:
            layer = self.layer_creator.cylinder_layer(surfaces, self.config.b_type_phi, self.config.b_type_z,
                                                      proto_layer, transform, approach_descriptor)
        else:
            layer = self.layer_creator.disc_layer(surfaces, self.config.b_type_r, self.config.b_type_phi,
                                                  proto_layer, transform, approach_descriptor)

        layer.surface_representation.set_associated_material(
            layer_surface_material(detector_element, proto_layer, self.unit_scale))
        logger.debug("[L] Built %s from %s", layer, detector_element.name)
        return layer

    def _sensitive_layer(self, detector_element, region, proto_layer, transform, approach_descriptor):
        sensitive_surface = create_sensitive_surface(
            detector_element, is_disc=not region.is_barrel,
            build_digitization_modules=self.config.build_digitization_modules,
            registry=self.config.digitization_registry, unit_scale=self.unit_scale)
        surface_array = SurfaceArray.single(sensitive_surface)

        if region.is_barrel:
            bounds = CylinderBounds(0.5 * (proto_layer.min_r + proto_layer.max_r), cylinder_half_z(proto_layer))
            return Layer.cylinder(transform, bounds, surface_array, abs(proto_layer.max_r - proto_layer.min_r),
                                  approach_descriptor, LayerType.ACTIVE)
        bounds = RadialBounds(proto_layer.min_r, proto_layer.max_r)
        return Layer.disc(transform, bounds, surface_array, abs(proto_layer.max_z - proto_layer.min_z),
                          approach_descriptor, LayerType.ACTIVE)
