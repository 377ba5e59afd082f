"""Tests for the proto-layer envelope computation."""

import logging

import numpy as np
import pytest
from numpy.testing import assert_allclose

from dd4hep_layers.errors import StructuralGeometryError
from dd4hep_layers.geometry.detector_element import ActsExtension, DetectorElement, Placement, Volume
from dd4hep_layers.geometry.shapes import Box, TubeSegment
from dd4hep_layers.geometry.transforms import convert_transform, rotation_y, world_matrix
from dd4hep_layers.layers.proto_layer import ProtoLayer, build_proto_layer
from dd4hep_layers.layers.sensitive import collect_sensitive


def _proto(element, is_barrel, surfaces=None):
    extension = element.extension()
    if surfaces is None:
        surfaces = collect_sensitive(element, extension.axes)
    transform = convert_transform(element.world_transformation)
    return build_proto_layer(element, extension, surfaces, transform, is_barrel)


class TestProtoLayer:

    def test_outer_bounds_include_envelope(self):
        proto = ProtoLayer(100.0, 200.0, -50.0, 50.0, env_r=(1.0, 2.0), env_z=(3.0, 4.0))

        assert proto.outer_min_r == 99.0
        assert proto.outer_max_r == 202.0
        assert proto.outer_min_z == -53.0
        assert proto.outer_max_z == 54.0
        assert proto.length_r == 100.0
        assert proto.length_z == 100.0

    def test_from_surfaces_requires_surfaces(self):
        with pytest.raises(ValueError, match="empty surface list"):
            ProtoLayer.from_surfaces([])


class TestBarrelProtoLayer:

    def test_shape_only_layer(self):
        element = DetectorElement('ShapeOnly', world_matrix(),
                                  Placement(Volume(TubeSegment(10.0, 20.0, 50.0))),
                                  ActsExtension(is_barrel=True))
        proto = _proto(element, is_barrel=True)

        assert (proto.min_r, proto.max_r, proto.min_z, proto.max_z) == (100.0, 200.0, -500.0, 500.0)
        assert proto.env_r == (0.0, 0.0)
        assert proto.env_z == (0.0, 0.0)

    def test_margins_from_shape_gap(self, barrel_layer):
        proto = _proto(barrel_layer, is_barrel=True)

        # modules face the beam at rc = 150 mm, corners at hypot(150, 10)
        assert_allclose([proto.min_r, proto.max_r], [150.0, np.hypot(150.0, 10.0)])
        assert_allclose([proto.min_z, proto.max_z], [-250.0, 250.0])
        assert_allclose(proto.env_r, [50.0, 200.0 - np.hypot(150.0, 10.0)])
        assert_allclose(proto.env_z, [250.0, 250.0])

    def test_explicit_envelope_uses_surfaces(self, make_barrel_layer):
        extension = ActsExtension(is_barrel=True, build_envelope=True, envelope_r=1.5, envelope_z=3.0)
        proto = _proto(make_barrel_layer(extension=extension), is_barrel=True)

        assert_allclose([proto.min_z, proto.max_z], [-250.0, 250.0])
        assert proto.env_r == (1.5, 1.5)
        assert proto.env_z == (3.0, 3.0)

    def test_explicit_envelope_without_surfaces_uses_shape(self):
        element = DetectorElement('EnvelopeOnly', world_matrix(),
                                  Placement(Volume(TubeSegment(10.0, 20.0, 50.0))),
                                  ActsExtension(is_barrel=True, build_envelope=True, envelope_r=1.0))
        proto = _proto(element, is_barrel=True)

        assert (proto.min_r, proto.max_r) == (100.0, 200.0)
        assert proto.env_r == (1.0, 1.0)

    def test_explicit_envelope_without_anything_fails(self):
        element = DetectorElement('Empty', world_matrix(), Placement(Volume(None)),
                                  ActsExtension(is_barrel=True, build_envelope=True, envelope_r=1.0))
        with pytest.raises(StructuralGeometryError, match="Empty"):
            _proto(element, is_barrel=True)

    def test_no_shape_no_envelope_fails(self, make_barrel_layer):
        element = make_barrel_layer(name='Shapeless', with_shape=False)

        with pytest.raises(StructuralGeometryError, match="neither a shape nor tolerances") as excinfo:
            _proto(element, is_barrel=True)
        assert excinfo.value.element_name == 'Shapeless'

    def test_wrong_shape_fails(self):
        element = DetectorElement('BoxLayer', world_matrix(), Placement(Volume(Box(10.0, 10.0, 10.0))),
                                  ActsExtension(is_barrel=True))
        with pytest.raises(StructuralGeometryError, match="tube segment"):
            _proto(element, is_barrel=True)

    def test_undersized_shape_warns_and_keeps_absolute_margin(self, make_barrel_layer, caplog):
        # the shape ends at 150 mm, the module corners reach beyond it
        element = make_barrel_layer(rmin=10.0, rmax=15.0)
        with caplog.at_level(logging.WARNING, logger='dd4hep_layers.layers.proto_layer'):
            proto = _proto(element, is_barrel=True)

        assert_allclose(proto.env_r[1], np.hypot(150.0, 10.0) - 150.0)
        assert any('rMax' in record.getMessage() for record in caplog.records)


class TestEndcapProtoLayer:

    def test_margins_from_projected_shape(self, endcap_layer):
        proto = _proto(endcap_layer, is_barrel=False)

        assert_allclose([proto.min_z, proto.max_z], [102.0, 108.0])
        assert_allclose(proto.env_z, [2.0, 2.0])

    def test_radial_bounds_from_trapezoids(self, endcap_layer):
        proto = _proto(endcap_layer, is_barrel=False)

        assert_allclose([proto.min_r, proto.max_r], [40.0, np.hypot(80.0, 20.0)])
        assert_allclose(proto.env_r, [20.0, 120.0 - np.hypot(80.0, 20.0)])

    def test_negative_side(self, negative_endcap_layer):
        proto = _proto(negative_endcap_layer, is_barrel=False)

        assert_allclose([proto.min_z, proto.max_z], [-108.0, -102.0])
        assert_allclose(proto.env_z, [2.0, 2.0])

    def test_reversed_axis_is_sorted(self):
        element = DetectorElement('Flipped', world_matrix(rotation_y(np.pi), (0.0, 0.0, 10.5)),
                                  Placement(Volume(TubeSegment(2.0, 12.0, 0.5))),
                                  ActsExtension(is_endcap=True))
        proto = _proto(element, is_barrel=False, surfaces=[])

        assert_allclose([proto.min_z, proto.max_z], [100.0, 110.0])
