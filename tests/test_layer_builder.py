"""Tests for the region-parametrized layer builder."""

import logging

import pytest
from numpy.testing import assert_allclose

from dd4hep_layers.detector_config import LayerBuilderConfig, sort_layer_elements
from dd4hep_layers.enums import LayerMaterialPosition, LayerShape, LayerType
from dd4hep_layers.errors import MissingExtensionError, StructuralGeometryError
from dd4hep_layers.geometry.detector_element import (
    ActsExtension,
    DD4hepMaterial,
    DetectorElement,
    Placement,
    Volume,
)
from dd4hep_layers.geometry.shapes import TubeSegment
from dd4hep_layers.geometry.surfaces import SurfaceType
from dd4hep_layers.geometry.transforms import world_matrix
from dd4hep_layers.layers.layer_builder import LayerBuilder
from dd4hep_layers.material.material import HomogeneousSurfaceMaterial


def _layer_summary(layer):
    return (layer.shape, layer.bounds, layer.thickness, layer.layer_type,
            layer.surface_material, len(layer.surfaces))


class TestLayerBuilderRegions:

    def test_layer_counts_and_shapes(self, builder_config):
        builder = LayerBuilder(builder_config)

        negative = builder.negative_layers()
        central = builder.central_layers()
        positive = builder.positive_layers()

        assert len(negative) == 1 and len(central) == 2 and len(positive) == 1
        assert all(layer.shape is LayerShape.CYLINDER for layer in central)
        assert all(layer.shape is LayerShape.DISC for layer in negative + positive)

    def test_empty_region(self, barrel_layer):
        builder = LayerBuilder(LayerBuilderConfig(central_layers=[barrel_layer]))
        assert builder.negative_layers() == []
        assert builder.positive_layers() == []

    def test_aggregate_layer_holds_all_modules(self, builder_config):
        inner, outer = LayerBuilder(builder_config).central_layers()

        assert len(inner.surfaces) == 16
        assert len(outer.surfaces) == 32
        assert inner.layer_type is LayerType.ACTIVE
        assert all(s.type is SurfaceType.PLANE for s in inner.surfaces)

    def test_cylinder_dimensions_include_envelope(self, builder_config):
        inner = LayerBuilder(builder_config).central_layers()[0]

        # envelope reaches back to the layer shape: 100 - 200 mm, |z| < 500 mm
        assert_allclose(inner.bounds.r, 150.0)
        assert_allclose(inner.bounds.half_z, 500.0)
        assert_allclose(inner.thickness, 100.0)

    def test_disc_dimensions_include_envelope(self, builder_config):
        disc = LayerBuilder(builder_config).positive_layers()[0]

        assert_allclose([disc.bounds.r_min, disc.bounds.r_max], [20.0, 120.0])
        assert_allclose(disc.thickness, 10.0)
        assert_allclose(disc.transform.translation, [0.0, 0.0, 105.0])

    def test_support_material_marks_layer(self, builder_config):
        inner, outer = LayerBuilder(builder_config).central_layers()

        assert inner.approach_descriptor is not None
        assert inner.approach_descriptor.material_surface is inner.approach_descriptor.inner
        assert outer.approach_descriptor is None

    def test_idempotent(self, builder_config):
        builder = LayerBuilder(builder_config)
        first = builder.central_layers() + builder.positive_layers()
        second = builder.central_layers() + builder.positive_layers()

        assert [_layer_summary(layer) for layer in first] == [_layer_summary(layer) for layer in second]
        assert all(a is not b for a, b in zip(first, second))

    def test_accepts_sorted_elements(self, barrel_layer, endcap_layer, negative_endcap_layer):
        config = LayerBuilderConfig.from_elements([endcap_layer, barrel_layer, negative_endcap_layer])
        builder = LayerBuilder(config)

        assert len(builder.negative_layers()) == 1
        assert builder.negative_layers()[0].transform.translation[2] < 0


class TestBulkMaterial:

    @pytest.mark.parametrize('name', ['Vacuum', 'VACUUM', 'vacuum'])
    def test_vacuum_gives_no_material(self, name, make_barrel_layer):
        vacuum = DD4hepMaterial(name, 1.0e10, 1.0e10, 1.0, 1.0, 1.0e-25)
        layer = LayerBuilder(LayerBuilderConfig(central_layers=[make_barrel_layer(material=vacuum)])).central_layers()[0]

        assert vacuum.is_vacuum
        assert layer.surface_material is None

    def test_material_in_internal_units(self, barrel_layer):
        layer = LayerBuilder(LayerBuilderConfig(central_layers=[barrel_layer])).central_layers()[0]
        material = layer.surface_material

        assert isinstance(material, HomogeneousSurfaceMaterial)
        properties = material.material_properties()
        assert_allclose(properties.average_x0, 250.0)
        assert_allclose(properties.average_l0, 600.0)
        assert_allclose(properties.average_rho, 1.6e-3)
        assert (properties.average_a, properties.average_z) == (12.01, 6.0)

    def test_material_thickness_is_radial_extent(self, make_endcap_layer):
        element = make_endcap_layer()
        layer = LayerBuilder(LayerBuilderConfig(positive_layers=[element])).positive_layers()[0]

        # tight radial bounds of the trapezoids: 40 mm to hypot(80, 20) mm
        assert_allclose(layer.surface_material.material_properties().thickness, 82.46211251 - 40.0)


class TestSensitiveLayer:

    def test_barrel_single_surface(self):
        silicon = DD4hepMaterial('Silicon', 9.37, 46.52, 28.0855, 14.0, 2.33)
        element = DetectorElement('PixelShell', world_matrix(),
                                  Placement(Volume(TubeSegment(10.0, 20.0, 50.0), silicon, sensitive=True)),
                                  ActsExtension(is_barrel=True))
        layer = LayerBuilder(LayerBuilderConfig(central_layers=[element])).central_layers()[0]

        assert len(layer.surfaces) == 1
        surface = layer.surfaces[0]
        assert surface.detector_element is element
        assert surface.type is SurfaceType.CYLINDER
        assert layer.layer_type is LayerType.ACTIVE
        assert_allclose([layer.bounds.r, layer.bounds.half_z, layer.thickness], [150.0, 500.0, 100.0])

    def test_endcap_single_disc(self):
        element = DetectorElement('PixelDisc', world_matrix(None, (0.0, 0.0, 10.5)),
                                  Placement(Volume(TubeSegment(2.0, 12.0, 0.5), sensitive=True)),
                                  ActsExtension(is_endcap=True, has_support_material=True,
                                                layer_material_position=LayerMaterialPosition.OUTER))
        layer = LayerBuilder(LayerBuilderConfig(positive_layers=[element])).positive_layers()[0]

        assert layer.surfaces[0].type is SurfaceType.DISC
        assert_allclose([layer.bounds.r_min, layer.bounds.r_max, layer.thickness], [20.0, 120.0, 10.0])
        assert layer.approach_descriptor.material_surface is layer.approach_descriptor.outer
        assert layer.surface_material is None


class TestBuilderErrors:

    def test_missing_extension(self, caplog):
        element = DetectorElement('Bare', world_matrix(), Placement(Volume(TubeSegment(1.0, 2.0, 3.0))))
        builder = LayerBuilder(LayerBuilderConfig(central_layers=[element]))

        with caplog.at_level(logging.ERROR):
            with pytest.raises(MissingExtensionError) as excinfo:
                builder.central_layers()
        assert excinfo.value.element_name == 'Bare'
        assert 'Bare' in str(excinfo.value)
        assert any('Bare' in record.getMessage() for record in caplog.records)

    def test_no_shape_fails(self, make_barrel_layer):
        element = make_barrel_layer(name='NoShape', with_shape=False)
        builder = LayerBuilder(LayerBuilderConfig(central_layers=[element]))

        with pytest.raises(StructuralGeometryError, match="NoShape"):
            builder.central_layers()


class TestSortLayerElements:

    def test_split_by_region(self, make_barrel_layer, make_endcap_layer):
        outer = make_barrel_layer(name='Outer', rmin=30.0, rmax=40.0, rc=35.0)
        inner = make_barrel_layer(name='Inner')
        far = make_endcap_layer(name='Far', z=20.0)
        near = make_endcap_layer(name='Near', z=10.5)
        negative = make_endcap_layer(name='Negative', z=-10.5)

        neg, central, pos = sort_layer_elements([outer, far, negative, inner, near])

        assert [e.name for e in neg] == ['Negative']
        assert [e.name for e in central] == ['Inner', 'Outer']
        assert [e.name for e in pos] == ['Near', 'Far']

    def test_unflagged_extension(self):
        element = DetectorElement('Nowhere', extension=ActsExtension())
        with pytest.raises(ValueError, match="neither marked as barrel nor as endcap"):
            sort_layer_elements([element])
