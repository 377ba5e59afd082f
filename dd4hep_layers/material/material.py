"""
Material description of layers and surfaces.

``Material`` holds the bulk properties of a substance, ``MaterialProperties``
adds a traversed thickness and ``HomogeneousSurfaceMaterial`` attaches the
same properties to every point of a surface. Lengths are in mm, densities in
g/mm^3.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from dd4hep_layers.units import UNIT_CM


@dataclass(frozen=True)
class Material:
    """X0, L0 [mm], A, Z and density rho [g/mm^3]."""
    x0: float
    l0: float
    a: float
    z: float
    rho: float

    @classmethod
    def from_dd4hep(cls, dd_material, unit: float = UNIT_CM) -> "Material":
        """Convert a DD4hep material (cm, g/cm^3) into internal units."""
        return cls(dd_material.rad_length * unit,
                   dd_material.int_length * unit,
                   dd_material.a,
                   dd_material.z,
                   dd_material.density / unit ** 3)

    @property
    def z_over_a_times_rho(self) -> float:
        return self.z / self.a * self.rho if self.a > 0 else 0.0


class MaterialProperties:
    """A material slab of a given thickness."""

    def __init__(self, material: Material, thickness: float):
        if thickness < 0:
            raise ValueError(f"Material thickness must not be negative, got {thickness}")
        self.material = material
        self.thickness = float(thickness)

    @classmethod
    def from_values(cls, x0, l0, a, z, rho, thickness) -> "MaterialProperties":
        return cls(Material(x0, l0, a, z, rho), thickness)

    @classmethod
    def from_compound(cls, layers: Sequence["MaterialProperties"],
                      unit_thickness: bool = True) -> "MaterialProperties":
        """
        Average a stack of material slabs into one.

        Thickness in X0 and L0 is additive, A and Z are weighted by the mass
        per area of each slab. With ``unit_thickness`` the result is scaled to
        a slab of thickness one carrying the same amount of material.
        """
        if not layers:
            raise ValueError("Cannot build a compound from an empty material list")
        thickness = sum(layer.thickness for layer in layers)
        t_in_x0 = sum(layer.thickness_in_x0 for layer in layers)
        t_in_l0 = sum(layer.thickness_in_l0 for layer in layers)
        mass = sum(layer.average_rho * layer.thickness for layer in layers)
        if thickness <= 0 or mass <= 0:
            raise ValueError("Compound material needs a positive thickness and mass")
        a = sum(layer.average_rho * layer.thickness * layer.average_a for layer in layers) / mass
        z = sum(layer.average_rho * layer.thickness * layer.average_z for layer in layers) / mass
        rho = mass / thickness
        x0 = thickness / t_in_x0
        l0 = thickness / t_in_l0
        if unit_thickness:
            rho *= thickness
            x0 /= thickness
            l0 /= thickness
            thickness = 1.0
        return cls(Material(x0, l0, a, z, rho), thickness)

    @property
    def thickness_in_x0(self) -> float:
        return self.thickness / self.material.x0

    @property
    def thickness_in_l0(self) -> float:
        return self.thickness / self.material.l0

    @property
    def average_x0(self) -> float:
        return self.material.x0

    @property
    def average_l0(self) -> float:
        return self.material.l0

    @property
    def average_a(self) -> float:
        return self.material.a

    @property
    def average_z(self) -> float:
        return self.material.z

    @property
    def average_rho(self) -> float:
        return self.material.rho

    @property
    def z_over_a_times_rho(self) -> float:
        return self.material.z_over_a_times_rho

    def scaled(self, factor: float) -> "MaterialProperties":
        return MaterialProperties(self.material, self.thickness * factor)

    def __imul__(self, factor: float):
        self.thickness *= factor
        return self

    def __eq__(self, other):
        if not isinstance(other, MaterialProperties):
            return NotImplemented
        return self.material == other.material and self.thickness == other.thickness

    def __repr__(self):
        m = self.material
        return (f"MaterialProperties(X0={m.x0:g}, L0={m.l0:g}, A={m.a:g}, Z={m.z:g}, "
                f"rho={m.rho:g}, thickness={self.thickness:g})")


class HomogeneousSurfaceMaterial:
    """The same material properties everywhere on a surface."""

    def __init__(self, properties: MaterialProperties):
        self.properties = properties

    def material_properties(self, position=None) -> Optional[MaterialProperties]:
        return self.properties

    def __eq__(self, other):
        if not isinstance(other, HomogeneousSurfaceMaterial):
            return NotImplemented
        return self.properties == other.properties

    def __repr__(self):
        return f"HomogeneousSurfaceMaterial({self.properties!r})"
