"""
Digitization modules and the registry sensitive surfaces look them up in.

A digitization module describes the readout segmentation of a module type.
Modules of the same type share one instance, so the registry hands out the
same object for every element that matches a registered name or pattern.
"""

import fnmatch
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import hist

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DigitizationModule:
    """Rectangular readout segmentation of a planar module (lengths in mm)."""
    half_x: float
    half_y: float
    half_thickness: float
    bins_x: int
    bins_y: int
    readout_direction: int = 1
    lorentz_angle: float = 0.0

    def __post_init__(self):
        if self.bins_x < 1 or self.bins_y < 1:
            raise ValueError(f"Readout bins must be positive, got ({self.bins_x}, {self.bins_y})")

    @property
    def pitch_x(self) -> float:
        return 2.0 * self.half_x / self.bins_x

    @property
    def pitch_y(self) -> float:
        return 2.0 * self.half_y / self.bins_y

    def segmentation_axes(self) -> Tuple[hist.axis.Regular, hist.axis.Regular]:
        return (
            hist.axis.Regular(self.bins_x, -self.half_x, self.half_x, name='x',
                              underflow=False, overflow=False),
            hist.axis.Regular(self.bins_y, -self.half_y, self.half_y, name='y',
                              underflow=False, overflow=False),
        )

    def cell(self, local_x: float, local_y: float) -> Optional[Tuple[int, int]]:
        """Readout cell of a local position, None outside the module."""
        if abs(local_x) > self.half_x or abs(local_y) > self.half_y:
            return None
        axis_x, axis_y = self.segmentation_axes()
        ix = min(int(axis_x.index(local_x)), self.bins_x - 1)
        iy = min(int(axis_y.index(local_y)), self.bins_y - 1)
        return ix, iy


class DigitizationModuleRegistry:
    """Lookup of shared digitization modules keyed by element name."""

    def __init__(self):
        self._by_name: Dict[str, DigitizationModule] = {}
        self._patterns: List[Tuple[str, DigitizationModule]] = []

    def register(self, key: str, module: DigitizationModule):
        """Register a module for an exact element name or a glob pattern."""
        if any(c in key for c in '*?['):
            self._patterns.append((key, module))
        else:
            self._by_name[key] = module

    def lookup(self, element) -> Optional[DigitizationModule]:
        name = getattr(element, 'name', element)
        if name in self._by_name:
            return self._by_name[name]
        for pattern, module in self._patterns:
            if fnmatch.fnmatchcase(name, pattern):
                return module
        logger.debug("No digitization module registered for %s", name)
        return None

    def __len__(self):
        return len(self._by_name) + len(self._patterns)
