"""Solid shapes a DD4hep volume can carry, in native (cm) units."""

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class TubeSegment:
    """TGeoTubeSeg: radial range, half length along the symmetry axis and phi range."""
    rmin: float
    rmax: float
    dz: float
    phi_min: float = -math.pi
    phi_max: float = math.pi

    def __post_init__(self):
        if self.rmin < 0 or self.rmax < self.rmin:
            raise ValueError(f"Invalid tube radii: rmin={self.rmin}, rmax={self.rmax}")
        if self.dz < 0:
            raise ValueError(f"Invalid tube half length: dz={self.dz}")

    @property
    def half_phi(self) -> float:
        return 0.5 * (self.phi_max - self.phi_min)

    @property
    def average_phi(self) -> float:
        return 0.5 * (self.phi_max + self.phi_min)


@dataclass(frozen=True)
class Box:
    """TGeoBBox given by its three half lengths."""
    dx: float
    dy: float
    dz: float

    @property
    def half_lengths(self):
        return (self.dx, self.dy, self.dz)


@dataclass(frozen=True)
class Trapezoid:
    """TGeoTrd1: x half length changes from dx1 (-dz) to dx2 (+dz), constant dy."""
    dx1: float
    dx2: float
    dy: float
    dz: float

    @property
    def half_lengths(self):
        return (max(self.dx1, self.dx2), self.dy, self.dz)
