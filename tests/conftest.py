"""Pytest configuration and shared fixtures for the layer builder tests."""

import math
from pathlib import Path

import matplotlib
matplotlib.use('Agg')

import numpy as np
import pytest

from dd4hep_layers.detector_config import LayerBuilderConfig
from dd4hep_layers.geometry.detector_element import (
    ActsExtension,
    DD4hepMaterial,
    DetectorElement,
    Placement,
    Volume,
)
from dd4hep_layers.geometry.shapes import Box, Trapezoid, TubeSegment
from dd4hep_layers.geometry.transforms import world_matrix

SILICON = DD4hepMaterial('Silicon', 9.37, 46.52, 28.0855, 14.0, 2.33)
CARBON = DD4hepMaterial('CarbonFiber', 25.0, 60.0, 12.01, 6.0, 1.6)

COMPACT_FILE = Path(__file__).resolve().parents[1] / 'analysis_scripts' / 'compact' / 'simple_tracker.xml'


def module_rotation(phi):
    """Module frame: x along phi, y along the beam, z radial."""
    return np.column_stack([(-math.sin(phi), math.cos(phi), 0.0),
                            (0.0, 0.0, 1.0),
                            (math.cos(phi), math.sin(phi), 0.0)])


def build_barrel_layer(name='BarrelLayer', rmin=10.0, rmax=20.0, dz=50.0, rc=15.0, n_phi=8,
                       z_positions=(-20.0, 20.0), module_shape=Box(1.0, 5.0, 0.05),
                       material=CARBON, extension=None, with_shape=True):
    """Tube-segment layer (cm) with a grid of box modules at radius rc."""
    if extension is None:
        extension = ActsExtension(axes='XYZ', is_barrel=True)
    shape = TubeSegment(rmin, rmax, dz) if with_shape else None
    layer = DetectorElement(name, world_matrix(), Placement(Volume(shape, material)), extension)
    module_volume = Volume(module_shape, SILICON, sensitive=True)
    module_id = 0
    for i in range(n_phi):
        phi = -math.pi + (i + 0.5) * 2.0 * math.pi / n_phi
        for z in z_positions:
            translation = (rc * math.cos(phi), rc * math.sin(phi), z)
            layer.add_child(DetectorElement(f"{name}_module{module_id}",
                                            world_matrix(module_rotation(phi), translation),
                                            Placement(module_volume)))
            module_id += 1
    return layer


def build_endcap_layer(name='EndcapLayer', z=10.5, dz=0.5, rmin=2.0, rmax=12.0, ring_r=6.0,
                       n_modules=8, z_offsets=(-0.3, 0.3), module_shape=Trapezoid(1.0, 2.0, 0.01, 2.0),
                       material=CARBON, extension=None):
    """Disc layer (cm) at z with one ring of trapezoid modules, alternating in z."""
    if extension is None:
        extension = ActsExtension(axes='XZY', is_endcap=True)
    layer = DetectorElement(name, world_matrix(None, (0.0, 0.0, z)),
                            Placement(Volume(TubeSegment(rmin, rmax, dz), material)), extension)
    module_volume = Volume(module_shape, SILICON, sensitive=True)
    for i in range(n_modules):
        phi = -math.pi + (i + 0.5) * 2.0 * math.pi / n_modules
        translation = (ring_r * math.cos(phi), ring_r * math.sin(phi), z + z_offsets[i % len(z_offsets)])
        layer.add_child(DetectorElement(f"{name}_module{i}", world_matrix(module_rotation(phi), translation),
                                        Placement(module_volume)))
    return layer


@pytest.fixture
def barrel_layer():
    """Barrel layer 10-20 cm, |z| < 50 cm with 8 x 2 box modules."""
    return build_barrel_layer()


@pytest.fixture
def endcap_layer():
    """Endcap layer at 100-110 mm with modules at z = 102 and 108 mm."""
    return build_endcap_layer()


@pytest.fixture
def negative_endcap_layer():
    return build_endcap_layer(name='NegativeEndcapLayer', z=-10.5)


@pytest.fixture
def support_extension():
    """Barrel extension marking the layer for material mapping on its inner surface."""
    return ActsExtension(axes='XYZ', is_barrel=True, has_support_material=True, material_bins=(36, 10))


@pytest.fixture
def builder_config(negative_endcap_layer, endcap_layer):
    """Two barrel layers and one endcap layer per side."""
    inner = build_barrel_layer(
        name='BarrelInner',
        extension=ActsExtension(axes='XYZ', is_barrel=True, has_support_material=True, material_bins=(36, 10)))
    outer = build_barrel_layer(name='BarrelOuter', rmin=30.0, rmax=40.0, rc=35.0, n_phi=16)
    return LayerBuilderConfig(negative_layers=[negative_endcap_layer],
                              central_layers=[inner, outer],
                              positive_layers=[endcap_layer])


@pytest.fixture
def compact_file():
    return COMPACT_FILE


@pytest.fixture
def make_barrel_layer():
    """Factory for barrel layers with non-default dimensions."""
    return build_barrel_layer


@pytest.fixture
def make_endcap_layer():
    """Factory for endcap layers with non-default dimensions."""
    return build_endcap_layer
