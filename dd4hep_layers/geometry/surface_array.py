"""Lookup structures holding the surfaces of a layer."""

from collections import defaultdict
from typing import Dict, List, Sequence, Tuple

from dd4hep_layers.geometry.surfaces import Surface
from dd4hep_layers.material.binning import BinUtility


class SingleElementLookup:
    """Every position resolves to the one surface of the layer."""

    def __init__(self, surface: Surface):
        self.surface = surface

    def lookup(self, position) -> List[Surface]:
        return [self.surface]


class BinnedLookup:
    """Surfaces sorted into the bins of a grid by their binning position."""

    def __init__(self, bin_utility: BinUtility, surfaces: Sequence[Surface]):
        self.bin_utility = bin_utility
        self._grid: Dict[Tuple[int, ...], List[Surface]] = defaultdict(list)
        for surface in surfaces:
            self._grid[bin_utility.bin(surface.binning_position())].append(surface)

    def lookup(self, position) -> List[Surface]:
        return list(self._grid.get(self.bin_utility.bin(position), []))

    @property
    def occupied_bins(self) -> int:
        return len(self._grid)


class SurfaceArray:
    """The surfaces of a layer together with the lookup used to find them."""

    def __init__(self, lookup, surfaces: Sequence[Surface]):
        self.lookup = lookup
        self._surfaces = tuple(surfaces)

    @classmethod
    def single(cls, surface: Surface) -> "SurfaceArray":
        return cls(SingleElementLookup(surface), [surface])

    @classmethod
    def binned(cls, bin_utility: BinUtility, surfaces: Sequence[Surface]) -> "SurfaceArray":
        return cls(BinnedLookup(bin_utility, surfaces), surfaces)

    @property
    def surfaces(self) -> Tuple[Surface, ...]:
        return self._surfaces

    def surfaces_at(self, position) -> List[Surface]:
        return self.lookup.lookup(position)

    def __len__(self):
        return len(self._surfaces)

    def __iter__(self):
        return iter(self._surfaces)
