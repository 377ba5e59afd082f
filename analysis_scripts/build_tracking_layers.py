#!/usr/bin/env python3
"""
Build the tracking layers of a compact detector description and summarise them.

Example:
    python analysis_scripts/build_tracking_layers.py analysis_scripts/compact/simple_tracker.xml \
        --digitization --root-output layers.root --plot-prefix simple_tracker
"""

import argparse
import logging
import sys

from dd4hep_layers.detector_config import LayerBuilderConfig
from dd4hep_layers.enums import BinningType, Region
from dd4hep_layers.errors import LayerBuildError
from dd4hep_layers.geometry_parsing.compact_loader import load_compact
from dd4hep_layers.layers.layer_builder import LayerBuilder
from dd4hep_layers.utils.layer_io import layer_envelope, write_layers_root


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument('compact', help='Compact XML file')
    parser.add_argument('--binning', choices=[b.value for b in BinningType], default='equidistant',
                        help='Binning of the module surfaces in aggregate layers')
    parser.add_argument('--digitization', action='store_true',
                        help='Attach digitization modules to the sensitive surfaces')
    parser.add_argument('--root-output', help='Write the layer summary to this ROOT file')
    parser.add_argument('--plot-prefix', help='Save r-z and material grid plots with this prefix')
    parser.add_argument('-v', '--verbose', action='store_true', help='Print debug messages of the builder')
    return parser.parse_args(argv)


def print_layer_summary(layer_collections):
    print(f"\n{'Region':<10} {'#':>3} {'Shape':<9} {'Type':<8} {'r [mm]':>17} {'z [mm]':>19} "
          f"{'Modules':>8} {'Material':>9}")
    print('-' * 90)
    for region, layers in layer_collections.items():
        for i, layer in enumerate(layers):
            r_min, r_max, z_min, z_max = layer_envelope(layer)
            approach = layer.approach_descriptor
            marked = 'proxy' if approach is not None and approach.material_surface is not None else '-'
            print(f"{region.value:<10} {i:>3} {layer.shape.value:<9} {layer.layer_type.value:<8} "
                  f"{r_min:>8.2f}-{r_max:<8.2f} {z_min:>9.2f}-{z_max:<9.2f} "
                  f"{len(layer.surfaces):>8} {marked:>9}")


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(levelname)s %(name)s: %(message)s')

    detector = load_compact(args.compact)
    binning = BinningType(args.binning)
    config = LayerBuilderConfig.from_elements(
        detector.layer_elements,
        b_type_r=binning, b_type_phi=binning, b_type_z=binning,
        build_digitization_modules=args.digitization,
        digitization_registry=detector.registry,
    )
    builder = LayerBuilder(config)

    try:
        layer_collections = {
            Region.NEGATIVE: builder.negative_layers(),
            Region.CENTRAL: builder.central_layers(),
            Region.POSITIVE: builder.positive_layers(),
        }
    except LayerBuildError as e:
        print(f"Layer building failed: {e}")
        return 1

    print_layer_summary(layer_collections)

    if args.root_output:
        write_layers_root(args.root_output, layer_collections)
        print(f"\nLayer summary written to {args.root_output}")

    if args.plot_prefix:
        import matplotlib.pyplot as plt
        from dd4hep_layers.utils.layer_plotting import plot_layers_rz, plot_material_grid

        fig, _ = plot_layers_rz(layer_collections, output_file=f'{args.plot_prefix}_layers_rz.png')
        plt.close(fig)
        for region, layers in layer_collections.items():
            for i, layer in enumerate(layers):
                approach = layer.approach_descriptor
                if approach is not None and approach.material_surface is not None and layer.surfaces:
                    fig, _, _ = plot_material_grid(
                        layer, output_file=f'{args.plot_prefix}_{region.value}_{i}_material_grid.png')
                    plt.close(fig)
        print(f"Plots saved with prefix {args.plot_prefix}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
