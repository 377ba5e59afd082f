"""
Enumerations shared by the layer builder.

Import Policy:
    from dd4hep_layers.enums import Region, BinningType, LayerMaterialPosition
"""

from enum import Enum


class Region(Enum):
    """Detector region a layer collection belongs to.

    Options:
        NEGATIVE: endcap at negative z, disc layers
        CENTRAL: barrel, cylinder layers
        POSITIVE: endcap at positive z, disc layers
    """
    NEGATIVE = "negative"
    CENTRAL = "central"
    POSITIVE = "positive"

    @property
    def is_barrel(self) -> bool:
        return self is Region.CENTRAL


class BinningType(Enum):
    """How the layer creator bins module surfaces along one axis.

    Options:
        EQUIDISTANT: regular bins, one per distinct module position
        ARBITRARY: bin boundaries half way between module positions
    """
    EQUIDISTANT = "equidistant"
    ARBITRARY = "arbitrary"


class BinningOption(Enum):
    """Boundary behaviour of a binning axis (closed axes wrap around)."""
    OPEN = "open"
    CLOSED = "closed"


class BinningValue(Enum):
    """Coordinate a binning axis runs along."""
    PHI = "phi"
    R = "r"
    Z = "z"


class LayerMaterialPosition(Enum):
    """Approach surface that carries the material proxy of a layer."""
    INNER = 0
    CENTRAL = 1
    OUTER = 2

    @classmethod
    def from_string(cls, value: str) -> "LayerMaterialPosition":
        try:
            return cls[value.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown layer material position: {value!r}") from None


class LayerType(Enum):
    """Role of a layer during navigation."""
    PASSIVE = "passive"
    ACTIVE = "active"
    NAVIGATION = "navigation"


class LayerShape(Enum):
    """Shape variant of a tracking layer."""
    DISC = "disc"
    CYLINDER = "cylinder"
