"""Tests for the default layer creator and surface arrays."""

import math

import pytest
from numpy.testing import assert_allclose

from dd4hep_layers.enums import BinningType, BinningValue, LayerType
from dd4hep_layers.geometry.surfaces import CylinderBounds
from dd4hep_layers.geometry.transforms import Transform3D, convert_transform
from dd4hep_layers.layers.layer import Layer
from dd4hep_layers.layers.layer_creator import LayerCreator
from dd4hep_layers.layers.proto_layer import ProtoLayer, build_proto_layer
from dd4hep_layers.layers.sensitive import collect_sensitive


def _surfaces_and_proto(element, is_barrel):
    extension = element.extension()
    surfaces = collect_sensitive(element, extension.axes)
    transform = convert_transform(element.world_transformation)
    return surfaces, build_proto_layer(element, extension, surfaces, transform, is_barrel), transform


class TestCylinderLayer:

    def test_equidistant_binning(self, barrel_layer):
        surfaces, proto, transform = _surfaces_and_proto(barrel_layer, is_barrel=True)
        layer = LayerCreator().cylinder_layer(surfaces, BinningType.EQUIDISTANT, BinningType.EQUIDISTANT,
                                              proto, transform)
        bin_utility = layer.surface_array.lookup.bin_utility

        assert [d.value for d in bin_utility.binning_data] == [BinningValue.PHI, BinningValue.Z]
        assert (bin_utility.bins(0), bin_utility.bins(1)) == (8, 2)
        assert layer.surface_array.lookup.occupied_bins == 16

    def test_lookup_finds_module(self, barrel_layer):
        surfaces, proto, transform = _surfaces_and_proto(barrel_layer, is_barrel=True)
        layer = LayerCreator().cylinder_layer(surfaces, BinningType.EQUIDISTANT, BinningType.EQUIDISTANT,
                                              proto, transform)

        target = surfaces[5]
        assert layer.surface_array.surfaces_at(target.center) == [target]

    def test_arbitrary_binning(self, barrel_layer):
        surfaces, proto, transform = _surfaces_and_proto(barrel_layer, is_barrel=True)
        layer = LayerCreator().cylinder_layer(surfaces, BinningType.ARBITRARY, BinningType.ARBITRARY,
                                              proto, transform)
        bin_utility = layer.surface_array.lookup.bin_utility

        assert (bin_utility.bins(0), bin_utility.bins(1)) == (8, 2)
        # z boundary half way between the two module rows
        assert_allclose(bin_utility.binning_data[1].edges, [-250.0, 0.0, 250.0])
        assert layer.surface_array.lookup.occupied_bins == 16

    def test_passive_without_surfaces(self):
        proto = ProtoLayer(100.0, 200.0, -500.0, 500.0)
        layer = LayerCreator().cylinder_layer([], BinningType.EQUIDISTANT, BinningType.EQUIDISTANT, proto)

        assert layer.layer_type is LayerType.PASSIVE
        assert layer.surface_array is None
        assert layer.surfaces == ()
        assert layer.bounds == CylinderBounds(150.0, 500.0)

    def test_default_transform_centres_layer(self):
        proto = ProtoLayer(100.0, 200.0, 0.0, 400.0, env_z=(0.0, 100.0))
        layer = LayerCreator().cylinder_layer([], BinningType.EQUIDISTANT, BinningType.EQUIDISTANT, proto)

        assert_allclose(layer.transform.translation, [0.0, 0.0, 250.0])
        assert_allclose(layer.bounds.half_z, 250.0)


class TestDiscLayer:

    def test_ring_binning(self, endcap_layer):
        surfaces, proto, transform = _surfaces_and_proto(endcap_layer, is_barrel=False)
        layer = LayerCreator().disc_layer(surfaces, BinningType.EQUIDISTANT, BinningType.EQUIDISTANT,
                                          proto, transform)
        bin_utility = layer.surface_array.lookup.bin_utility

        assert [d.value for d in bin_utility.binning_data] == [BinningValue.R, BinningValue.PHI]
        assert (bin_utility.bins(0), bin_utility.bins(1)) == (1, 8)
        assert_allclose([layer.bounds.r_min, layer.bounds.r_max], [20.0, 120.0])
        assert layer.layer_type is LayerType.ACTIVE

    def test_arbitrary_phi_covers_full_circle(self, endcap_layer):
        surfaces, proto, transform = _surfaces_and_proto(endcap_layer, is_barrel=False)
        layer = LayerCreator().disc_layer(surfaces, BinningType.EQUIDISTANT, BinningType.ARBITRARY,
                                          proto, transform)
        edges = layer.surface_array.lookup.bin_utility.binning_data[1].edges

        assert len(edges) == 9
        assert_allclose(edges[-1] - edges[0], 2.0 * math.pi)
        assert layer.surface_array.lookup.occupied_bins == 8

    def test_position_tolerance_override(self, make_endcap_layer):
        # two rings 1 mm apart share a radial bin with a coarse tolerance
        element = make_endcap_layer(ring_r=6.0)
        for child in list(element.children.values())[::2]:
            child.world_transformation[:2, 3] *= 6.1 / 6.0
        surfaces, proto, transform = _surfaces_and_proto(element, is_barrel=False)

        fine = LayerCreator().disc_layer(surfaces, BinningType.EQUIDISTANT, BinningType.EQUIDISTANT,
                                         proto, transform)
        coarse = LayerCreator({BinningValue.R: 5.0}).disc_layer(surfaces, BinningType.EQUIDISTANT,
                                                                 BinningType.EQUIDISTANT, proto, transform)

        assert fine.surface_array.lookup.bin_utility.bins(0) == 2
        assert coarse.surface_array.lookup.bin_utility.bins(0) == 1


class TestLayer:

    def test_bounds_must_match_shape(self):
        with pytest.raises(TypeError, match="needs RadialBounds"):
            Layer.disc(Transform3D(), CylinderBounds(10.0, 5.0))

    def test_surface_representation(self):
        layer = Layer.cylinder(Transform3D(), CylinderBounds(10.0, 5.0), thickness=1.0)

        assert layer.surface_representation.bounds == CylinderBounds(10.0, 5.0)
        assert layer.surface_material is None
        assert not layer.is_disc
