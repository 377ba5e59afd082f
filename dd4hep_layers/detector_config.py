import logging

import numpy as np

from dd4hep_layers.enums import BinningType, Region
from dd4hep_layers.errors import MissingExtensionError

logger = logging.getLogger(__name__)


class LayerBuilderConfig:
    """Configuration of the layer builder"""

    # Default binning of module surfaces in the aggregate layers
    DEFAULT_BINNING = {
        'r': BinningType.EQUIDISTANT,
        'phi': BinningType.EQUIDISTANT,
        'z': BinningType.EQUIDISTANT,
    }

    def __init__(self, negative_layers=None, central_layers=None, positive_layers=None,
                 b_type_r=None, b_type_phi=None, b_type_z=None, build_digitization_modules=False,
                 layer_creator=None, digitization_registry=None):
        """
        Parameters:
        -----------
        negative_layers, central_layers, positive_layers : list of DetectorElement
            Layer elements of the negative endcap, the barrel and the positive endcap,
            one element per layer, in the order the layers should be returned
        b_type_r, b_type_phi, b_type_z : BinningType, optional
            Binning of the module surfaces handed to the layer creator
        build_digitization_modules : bool
            Attach digitization modules to the sensitive surfaces
        layer_creator : LayerCreator, optional
            Algorithm building non-sensitive layers from their modules
        digitization_registry : DigitizationModuleRegistry, optional
            Shared digitization modules looked up per element
        """
        self.negative_layers = list(negative_layers or [])
        self.central_layers = list(central_layers or [])
        self.positive_layers = list(positive_layers or [])

        self.b_type_r = b_type_r or self.DEFAULT_BINNING['r']
        self.b_type_phi = b_type_phi or self.DEFAULT_BINNING['phi']
        self.b_type_z = b_type_z or self.DEFAULT_BINNING['z']

        self.build_digitization_modules = build_digitization_modules
        self.layer_creator = layer_creator
        self.digitization_registry = digitization_registry

    def layers_for(self, region):
        if region is Region.NEGATIVE:
            return self.negative_layers
        if region is Region.POSITIVE:
            return self.positive_layers
        return self.central_layers

    @classmethod
    def from_elements(cls, layer_elements, **options):
        """Sort layer elements into the three regions and build a configuration."""
        negative, central, positive = sort_layer_elements(layer_elements)
        return cls(negative_layers=negative, central_layers=central, positive_layers=positive, **options)


def sort_layer_elements(layer_elements):
    """
    Split layer elements into negative endcap, barrel and positive endcap lists.

    Barrel layers are sorted by radius, endcap layers by increasing z.

    Parameters:
    -----------
    layer_elements : iterable of DetectorElement
        Elements carrying an Acts extension with is_barrel or is_endcap set

    Returns:
    --------
    tuple : (negative, central, positive) lists
    """
    negative, central, positive = [], [], []
    for element in layer_elements:
        try:
            extension = element.extension()
        except MissingExtensionError:
            logger.error("Layer element %s has no Acts extension", element.name)
            raise
        z = float(np.asarray(element.world_transformation)[2, 3])
        if extension.is_barrel:
            central.append(element)
        elif extension.is_endcap:
            (negative if z < 0 else positive).append(element)
        else:
            raise ValueError(f"Layer element {element.name} is neither marked as barrel nor as endcap")

    def _radius(element):
        shape = element.shape
        return getattr(shape, 'rmin', 0.0)

    def _z(element):
        return float(np.asarray(element.world_transformation)[2, 3])

    central.sort(key=_radius)
    negative.sort(key=_z)
    positive.sort(key=_z)
    logger.debug("Sorted layers: %d negative, %d central, %d positive",
                 len(negative), len(central), len(positive))
    return negative, central, positive
