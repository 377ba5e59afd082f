"""
Creation of layers that aggregate many module surfaces.

The layer dimensions follow from the proto-layer plus its envelopes. The
module surfaces are sorted into a two-dimensional grid whose bins either
follow the module positions equidistantly or put the bin boundaries half way
between neighbouring module positions.
"""

import logging
import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

from dd4hep_layers.enums import BinningOption, BinningType, BinningValue, LayerType
from dd4hep_layers.geometry.surface_array import SurfaceArray
from dd4hep_layers.geometry.surfaces import CylinderBounds, RadialBounds, Surface
from dd4hep_layers.geometry.transforms import Transform3D
from dd4hep_layers.layers.layer import Layer
from dd4hep_layers.layers.proto_layer import ProtoLayer
from dd4hep_layers.material.binning import BinUtility, binning_value

logger = logging.getLogger(__name__)

# Module positions closer than this are treated as one bin position
POSITION_TOLERANCE = {
    BinningValue.PHI: 1e-4,
    BinningValue.R: 1e-3,
    BinningValue.Z: 1e-3,
}


def _distinct_positions(surfaces: Sequence[Surface], value: BinningValue, tolerance: float) -> List[float]:
    coordinates = sorted(binning_value(s.binning_position(), value) for s in surfaces)
    distinct: List[float] = []
    for coordinate in coordinates:
        if not distinct or coordinate - distinct[-1] > tolerance:
            distinct.append(coordinate)
    if value is BinningValue.PHI and len(distinct) > 1:
        # -pi and +pi are the same position
        if distinct[0] + 2 * math.pi - distinct[-1] <= tolerance:
            distinct.pop()
    return distinct


def _axis_utility(surfaces: Sequence[Surface], value: BinningValue, binning_type: BinningType,
                  minimum: float, maximum: float, tolerance: float) -> BinUtility:
    closed = value is BinningValue.PHI
    option = BinningOption.CLOSED if closed else BinningOption.OPEN
    if closed:
        minimum, maximum = -math.pi, math.pi
    positions = _distinct_positions(surfaces, value, tolerance)
    if binning_type is BinningType.EQUIDISTANT or len(positions) < 2:
        return BinUtility(max(len(positions), 1), minimum, maximum, option, value)

    midpoints = [0.5 * (a + b) for a, b in zip(positions[:-1], positions[1:])]
    if closed:
        # one period starting at the first midpoint, the circular axis wraps the rest
        wrap = 0.5 * (positions[-1] + positions[0] + 2 * math.pi)
        boundaries = midpoints + [wrap, midpoints[0] + 2 * math.pi]
    else:
        boundaries = [min(minimum, positions[0])] + midpoints + [max(maximum, positions[-1])]
    return BinUtility(option=option, value=value, boundaries=np.asarray(boundaries))


class LayerCreator:
    """
    Default algorithm building a layer from a set of module surfaces.

    Parameters:
    -----------
    position_tolerance : dict, optional
        Override of the distance below which module positions share a bin
    """

    def __init__(self, position_tolerance=None):
        self.position_tolerance = dict(POSITION_TOLERANCE)
        if position_tolerance:
            self.position_tolerance.update(position_tolerance)

    def _surface_array(self, surfaces: Sequence[Surface],
                       first: Tuple[BinningValue, BinningType, float, float],
                       second: Tuple[BinningValue, BinningType, float, float]) -> Optional[SurfaceArray]:
        if not surfaces:
            return None
        value1, type1, min1, max1 = first
        value2, type2, min2, max2 = second
        if max1 <= min1:
            min1, max1 = min1 - 0.5, max1 + 0.5
        if max2 <= min2:
            min2, max2 = min2 - 0.5, max2 + 0.5
        bin_utility = _axis_utility(surfaces, value1, type1, min1, max1, self.position_tolerance[value1])
        bin_utility += _axis_utility(surfaces, value2, type2, min2, max2, self.position_tolerance[value2])
        logger.debug("[L] Surface array with %d surfaces on %s", len(surfaces), bin_utility)
        return SurfaceArray.binned(bin_utility, surfaces)

    def cylinder_layer(self, surfaces: Sequence[Surface], b_type_phi: BinningType, b_type_z: BinningType,
                       proto_layer: ProtoLayer, transform: Optional[Transform3D] = None,
                       approach_descriptor=None) -> Layer:
        """Cylinder layer enclosing the surfaces and their envelope."""
        layer_r = 0.5 * (proto_layer.outer_min_r + proto_layer.outer_max_r)
        half_z = 0.5 * (proto_layer.outer_max_z - proto_layer.outer_min_z)
        thickness = proto_layer.outer_max_r - proto_layer.outer_min_r
        if transform is None:
            layer_z = 0.5 * (proto_layer.outer_min_z + proto_layer.outer_max_z)
            transform = Transform3D.from_translation(0.0, 0.0, layer_z)

        surface_array = self._surface_array(
            surfaces,
            (BinningValue.PHI, b_type_phi, -math.pi, math.pi),
            (BinningValue.Z, b_type_z, proto_layer.min_z, proto_layer.max_z))
        logger.debug("[L] Creating cylinder layer at r=%.3f, halfZ=%.3f, thickness=%.3f with %d surfaces",
                     layer_r, half_z, thickness, len(surfaces))
        return Layer.cylinder(transform, CylinderBounds(layer_r, half_z), surface_array, thickness,
                              approach_descriptor, LayerType.ACTIVE if surfaces else LayerType.PASSIVE)

    def disc_layer(self, surfaces: Sequence[Surface], b_type_r: BinningType, b_type_phi: BinningType,
                   proto_layer: ProtoLayer, transform: Optional[Transform3D] = None,
                   approach_descriptor=None) -> Layer:
        """Disc layer enclosing the surfaces and their envelope."""
        thickness = proto_layer.outer_max_z - proto_layer.outer_min_z
        if transform is None:
            layer_z = 0.5 * (proto_layer.outer_min_z + proto_layer.outer_max_z)
            transform = Transform3D.from_translation(0.0, 0.0, layer_z)
        bounds = RadialBounds(max(proto_layer.outer_min_r, 0.0), proto_layer.outer_max_r)

        surface_array = self._surface_array(
            surfaces,
            (BinningValue.R, b_type_r, proto_layer.min_r, proto_layer.max_r),
            (BinningValue.PHI, b_type_phi, -math.pi, math.pi))
        logger.debug("[L] Creating disc layer at z=%.3f, r=[%.3f, %.3f], thickness=%.3f with %d surfaces",
                     transform.translation[2], bounds.r_min, bounds.r_max, thickness, len(surfaces))
        return Layer.disc(transform, bounds, surface_array, thickness, approach_descriptor,
                          LayerType.ACTIVE if surfaces else LayerType.PASSIVE)
