"""Discovery of the sensitive modules below a layer element."""

import logging
from typing import List, Optional

from dd4hep_layers.errors import MissingExtensionError
from dd4hep_layers.geometry.digitization import DigitizationModuleRegistry
from dd4hep_layers.geometry.surfaces import Surface, surface_from_element
from dd4hep_layers.units import UNIT_CM

logger = logging.getLogger(__name__)


def create_sensitive_surface(detector_element, is_disc: bool = False, axes: str = 'XYZ',
                             build_digitization_modules: bool = False,
                             registry: Optional[DigitizationModuleRegistry] = None,
                             unit_scale: float = UNIT_CM) -> Surface:
    """
    Build the surface of one sensitive detector element.

    The element's own extension is optional here: material and a shared
    digitization module are taken from it when present. Without one the
    registry is asked for a digitization module, if modules are requested.
    """
    material = None
    digitization_module = None
    try:
        extension = detector_element.extension()
    except MissingExtensionError:
        extension = None
    if extension is not None:
        material = extension.material
        digitization_module = extension.digitization_module
    if build_digitization_modules and digitization_module is None and registry is not None:
        digitization_module = registry.lookup(detector_element)

    return surface_from_element(detector_element, axes=axes, unit_scale=unit_scale, is_disc=is_disc,
                                material=material, digitization_module=digitization_module)


def collect_sensitive(detector_element, axes: str = 'XYZ', is_disc: bool = False,
                      build_digitization_modules: bool = False,
                      registry: Optional[DigitizationModuleRegistry] = None,
                      unit_scale: float = UNIT_CM) -> List[Surface]:
    """
    Depth-first collection of the sensitive surfaces below an element.

    Children are visited in the order of the element's child map, a sensitive
    child is added before its own descendants.
    """
    surfaces: List[Surface] = []
    _collect(detector_element, surfaces, axes, is_disc, build_digitization_modules, registry, unit_scale)
    logger.debug("[L] Collected %d sensitive surfaces below %s", len(surfaces), detector_element.name)
    return surfaces


def _collect(detector_element, surfaces, axes, is_disc, build_digitization_modules, registry, unit_scale):
    for child in detector_element.children.values():
        if child.volume.is_sensitive:
            surfaces.append(create_sensitive_surface(child, is_disc, axes, build_digitization_modules,
                                                     registry, unit_scale))
        _collect(child, surfaces, axes, is_disc, build_digitization_modules, registry, unit_scale)
