"""
Binning of surfaces and material grids.

A ``BinUtility`` is an ordered set of one-dimensional ``hist`` axes, each
bound to a coordinate (phi, r or z) and a boundary option. Closed axes wrap
around (phi), open axes clamp values outside their range into the first or
last bin. The optional transform moves global positions into the frame the
grid is defined in.
"""

import math
from typing import List, Optional, Sequence, Tuple

import hist
import numpy as np

from dd4hep_layers.enums import BinningOption, BinningValue
from dd4hep_layers.geometry.transforms import Transform3D


def _make_axis(bins: int, minimum: float, maximum: float, option: BinningOption,
               value: BinningValue, boundaries: Optional[Sequence[float]] = None):
    # circular axes keep their flow bins, hist rejects them otherwise
    flow = {} if option is BinningOption.CLOSED else {'underflow': False, 'overflow': False}
    closed = option is BinningOption.CLOSED
    if boundaries is not None:
        return hist.axis.Variable(list(boundaries), name=value.value, circular=closed, **flow)
    if bins < 1:
        raise ValueError(f"Need at least one bin for {value.value}, got {bins}")
    if not maximum > minimum:
        raise ValueError(f"Empty {value.value} range [{minimum}, {maximum}]")
    return hist.axis.Regular(bins, minimum, maximum, name=value.value, circular=closed, **flow)


def binning_value(position, value: BinningValue) -> float:
    x, y, z = position
    if value is BinningValue.PHI:
        return math.atan2(y, x)
    if value is BinningValue.R:
        return math.hypot(x, y)
    return z


class BinningData:
    """One axis of a bin utility."""

    def __init__(self, axis, value: BinningValue, option: BinningOption):
        self.axis = axis
        self.value = value
        self.option = option

    @property
    def bins(self) -> int:
        return self.axis.size

    @property
    def edges(self) -> np.ndarray:
        return np.asarray(self.axis.edges)

    def index(self, coordinate: float) -> int:
        idx = int(self.axis.index(coordinate))
        if self.option is BinningOption.CLOSED:
            return idx % self.axis.size
        return min(max(idx, 0), self.axis.size - 1)

    def __eq__(self, other):
        if not isinstance(other, BinningData):
            return NotImplemented
        return (self.value is other.value and self.option is other.option
                and np.array_equal(self.edges, other.edges))

    def __repr__(self):
        return (f"BinningData({self.value.value}, {self.option.value}, bins={self.bins}, "
                f"range=[{self.edges[0]:g}, {self.edges[-1]:g}])")


class BinUtility:
    """Multi-dimensional binning built by concatenating one-dimensional axes."""

    def __init__(self, bins: int = 1, minimum: float = 0.0, maximum: float = 1.0,
                 option: BinningOption = BinningOption.OPEN,
                 value: BinningValue = BinningValue.PHI,
                 transform: Optional[Transform3D] = None,
                 boundaries: Optional[Sequence[float]] = None):
        axis = _make_axis(bins, minimum, maximum, option, value, boundaries)
        self.binning_data: List[BinningData] = [BinningData(axis, value, option)]
        self.transform = transform

    def __iadd__(self, other: "BinUtility"):
        if len(self.binning_data) + len(other.binning_data) > 3:
            raise ValueError("A bin utility supports at most three dimensions")
        self.binning_data.extend(other.binning_data)
        if self.transform is None:
            self.transform = other.transform
        return self

    @property
    def dimensions(self) -> int:
        return len(self.binning_data)

    @property
    def axes(self) -> Tuple:
        return tuple(data.axis for data in self.binning_data)

    def bins(self, dimension: Optional[int] = None) -> int:
        if dimension is not None:
            return self.binning_data[dimension].bins
        return int(np.prod([data.bins for data in self.binning_data]))

    def bin(self, position) -> Tuple[int, ...]:
        """Bin indices of a global position, one per dimension."""
        position = np.asarray(position, dtype=float)
        if self.transform is not None:
            position = self.transform.to_local(position)
        return tuple(data.index(binning_value(position, data.value)) for data in self.binning_data)

    def make_hist(self, storage=None) -> hist.Hist:
        """An empty histogram on this grid."""
        if storage is None:
            storage = hist.storage.Double()
        return hist.Hist(*self.axes, storage=storage)

    def __eq__(self, other):
        if not isinstance(other, BinUtility):
            return NotImplemented
        return self.binning_data == other.binning_data and self.transform == other.transform

    def __repr__(self):
        return f"BinUtility({', '.join(repr(d) for d in self.binning_data)})"


class SurfaceMaterialProxy:
    """
    Marks a surface for material mapping.

    Carries only the grid the mapped material will be binned on; the values
    are filled by a later mapping pass.
    """

    def __init__(self, bin_utility: BinUtility):
        self.bin_utility = bin_utility

    def material_properties(self, position=None):
        return None

    def __eq__(self, other):
        if not isinstance(other, SurfaceMaterialProxy):
            return NotImplemented
        return self.bin_utility == other.bin_utility

    def __repr__(self):
        return f"SurfaceMaterialProxy({self.bin_utility!r})"
