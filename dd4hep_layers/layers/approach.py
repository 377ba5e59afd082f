"""
Material proxies and approach descriptors of layers marked for material mapping.

A layer with support material gets three boundary surfaces (inner, central,
outer). The material proxy, which only carries the binning the material will
be mapped onto later, sits on exactly one of them.
"""

import logging
import math
from typing import Dict, Optional, Tuple

from dd4hep_layers.enums import BinningOption, BinningValue, LayerMaterialPosition, Region
from dd4hep_layers.geometry.surfaces import Surface, cylinder_surface, disc_surface
from dd4hep_layers.geometry.transforms import Transform3D
from dd4hep_layers.layers.proto_layer import ProtoLayer
from dd4hep_layers.material.binning import BinUtility, SurfaceMaterialProxy

logger = logging.getLogger(__name__)

INNER = LayerMaterialPosition.INNER
CENTRAL = LayerMaterialPosition.CENTRAL
OUTER = LayerMaterialPosition.OUTER

# Order of the approach surfaces per region, kept as the navigation code
# iterates them in this order
APPROACH_ORDER = {
    Region.NEGATIVE: (INNER, OUTER, CENTRAL),
    Region.CENTRAL: (INNER, CENTRAL, OUTER),
    Region.POSITIVE: (INNER, CENTRAL, OUTER),
}


class ApproachDescriptor:
    """The three approach surfaces of a layer, owned by the layer."""

    def __init__(self, surfaces: Dict[LayerMaterialPosition, Surface],
                 order: Tuple[LayerMaterialPosition, ...] = (INNER, CENTRAL, OUTER)):
        if set(order) != set(LayerMaterialPosition) or set(surfaces) != set(LayerMaterialPosition):
            raise ValueError("An approach descriptor needs exactly an inner, central and outer surface")
        self.order = tuple(order)
        self._by_position = dict(surfaces)
        self.surfaces: Tuple[Surface, ...] = tuple(surfaces[p] for p in self.order)

    def surface(self, position: LayerMaterialPosition) -> Surface:
        return self._by_position[position]

    @property
    def inner(self) -> Surface:
        return self._by_position[INNER]

    @property
    def central(self) -> Surface:
        return self._by_position[CENTRAL]

    @property
    def outer(self) -> Surface:
        return self._by_position[OUTER]

    @property
    def material_surface(self) -> Optional[Surface]:
        for surface in self.surfaces:
            if surface.associated_material is not None:
                return surface
        return None

    def __iter__(self):
        return iter(self.surfaces)

    def __len__(self):
        return len(self.surfaces)


def cylinder_half_z(proto_layer: ProtoLayer) -> float:
    return 0.5 * abs(proto_layer.max_z - proto_layer.min_z)


def build_material_proxy(proto_layer: ProtoLayer, material_bins: Tuple[int, int],
                         transform: Transform3D, is_barrel: bool) -> SurfaceMaterialProxy:
    """Periodic phi axis plus an open z (cylinder) or r (disc) axis."""
    bins1, bins2 = material_bins
    bin_utility = BinUtility(bins1, -math.pi, math.pi, BinningOption.CLOSED, BinningValue.PHI)
    if is_barrel:
        half_z = cylinder_half_z(proto_layer)
        bin_utility += BinUtility(bins2, -half_z, half_z, BinningOption.OPEN, BinningValue.Z, transform)
    else:
        bin_utility += BinUtility(bins2, proto_layer.min_r, proto_layer.max_r, BinningOption.OPEN,
                                  BinningValue.R, transform)
    return SurfaceMaterialProxy(bin_utility)


def _disc_approach_surfaces(proto_layer: ProtoLayer, transform: Transform3D) -> Dict[LayerMaterialPosition, Surface]:
    thickness = proto_layer.length_z + proto_layer.env_z[0] + proto_layer.env_z[1]
    axis = transform.column(2)
    inner_pos = transform.translation - axis * thickness * 0.5
    outer_pos = transform.translation + axis * thickness * 0.5
    if inner_pos[2] > outer_pos[2]:
        inner_pos, outer_pos = outer_pos, inner_pos
    return {
        INNER: disc_surface(transform.with_translation(inner_pos), proto_layer.min_r, proto_layer.max_r),
        OUTER: disc_surface(transform.with_translation(outer_pos), proto_layer.min_r, proto_layer.max_r),
        CENTRAL: disc_surface(transform, proto_layer.min_r, proto_layer.max_r),
    }


def _cylinder_approach_surfaces(proto_layer: ProtoLayer, transform: Transform3D) -> Dict[LayerMaterialPosition, Surface]:
    half_z = cylinder_half_z(proto_layer)
    return {
        INNER: cylinder_surface(transform, proto_layer.min_r, half_z),
        CENTRAL: cylinder_surface(transform, 0.5 * (proto_layer.min_r + proto_layer.max_r), half_z),
        OUTER: cylinder_surface(transform, proto_layer.max_r, half_z),
    }


def build_approach_descriptor(proto_layer: ProtoLayer, extension, transform: Transform3D,
                              region: Region) -> Optional[ApproachDescriptor]:
    """
    Material proxy and approach surfaces for a layer with support material.

    Parameters:
    -----------
    proto_layer : ProtoLayer
    extension : ActsExtension
        Provides has_support_material, material_bins and layer_material_position
    transform : Transform3D
        Layer transform the grid and the surfaces are attached to
    region : Region
        Selects disc or cylinder surfaces and their order

    Returns:
    --------
    ApproachDescriptor or None when the layer carries no support material
    """
    if not extension.has_support_material:
        return None

    position = extension.layer_material_position
    proxy = build_material_proxy(proto_layer, extension.material_bins, transform, region.is_barrel)
    logger.debug("[L] Layer is marked to carry support material on Surface "
                 "( inner=0 / center=1 / outer=2 ) :   %d    with binning: [%d, %d]",
                 position.value, *extension.material_bins)

    if region.is_barrel:
        surfaces = _cylinder_approach_surfaces(proto_layer, transform)
    else:
        surfaces = _disc_approach_surfaces(proto_layer, transform)
    surfaces[position].set_associated_material(proxy)
    return ApproachDescriptor(surfaces, APPROACH_ORDER[region])
