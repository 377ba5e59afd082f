import logging

import matplotlib.pyplot as plt
import mplhep as hep
import numpy as np
from matplotlib.patches import Rectangle

from dd4hep_layers.enums import BinningValue, Region
from dd4hep_layers.material.binning import SurfaceMaterialProxy, binning_value
from dd4hep_layers.utils.layer_io import layer_envelope

logger = logging.getLogger(__name__)

REGION_COLORS = {
    Region.NEGATIVE: 'tab:blue',
    Region.CENTRAL: 'tab:red',
    Region.POSITIVE: 'tab:green',
}


def plot_layers_rz(layer_collections, output_file=None, ax=None, show_modules=True):
    """
    Draw the r-z outline of all layers, optionally with their module centres.

    Parameters:
    -----------
    layer_collections : dict
        Region -> list of layers
    output_file : str, optional
        Path the figure is saved to
    ax : matplotlib.axes.Axes, optional
        Draw into existing axes instead of a new figure
    show_modules : bool
        Scatter the centres of the sensitive surfaces

    Returns:
    --------
    tuple : (fig, ax)
    """
    plt.style.use(hep.style.CMS)
    if ax is None:
        fig, ax = plt.subplots(figsize=(12, 6))
    else:
        fig = ax.figure

    z_extent, r_extent = [0.0], [0.0]
    for region, layers in layer_collections.items():
        color = REGION_COLORS[region]
        for i, layer in enumerate(layers):
            r_min, r_max, z_min, z_max = layer_envelope(layer)
            ax.add_patch(Rectangle((z_min, r_min), z_max - z_min, max(r_max - r_min, 0.1),
                                   facecolor=color, edgecolor=color, alpha=0.4,
                                   label=region.value if i == 0 else None))
            z_extent += [z_min, z_max]
            r_extent.append(r_max)
            if show_modules and layer.surfaces:
                centers = np.array([s.center for s in layer.surfaces])
                ax.scatter(centers[:, 2], np.hypot(centers[:, 0], centers[:, 1]), s=4, color='black')

    z_pad = 0.05 * (max(z_extent) - min(z_extent) or 1.0)
    ax.set_xlim(min(z_extent) - z_pad, max(z_extent) + z_pad)
    ax.set_ylim(0.0, 1.1 * (max(r_extent) or 1.0))
    ax.set_xlabel('z [mm]')
    ax.set_ylabel('r [mm]')
    ax.legend(loc='upper right')

    if output_file:
        fig.savefig(output_file)
        logger.info("Saved r-z layout to %s", output_file)
    return fig, ax


def plot_material_grid(layer, output_file=None, ax=None):
    """
    Fill the material-mapping grid of a layer with its module centres and draw it.

    The grid is the one carried by the material proxy on the layer's approach
    descriptor, so the plot shows how the later mapping will be binned.

    Returns:
    --------
    tuple : (fig, ax, hist.Hist)
    """
    approach = layer.approach_descriptor
    surface = approach.material_surface if approach is not None else None
    if surface is None or not isinstance(surface.associated_material, SurfaceMaterialProxy):
        raise ValueError(f"{layer} carries no material proxy")
    bin_utility = surface.associated_material.bin_utility

    grid = bin_utility.make_hist()
    if layer.surfaces:
        positions = np.array([s.center for s in layer.surfaces])
        if bin_utility.transform is not None:
            positions = bin_utility.transform.to_local(positions)
        coordinates = [[binning_value(p, data.value) for p in positions] for data in bin_utility.binning_data]
        grid.fill(*coordinates)

    plt.style.use(hep.style.CMS)
    if ax is None:
        fig, ax = plt.subplots(figsize=(8, 6))
    else:
        fig = ax.figure
    hep.hist2dplot(grid, ax=ax)
    labels = {BinningValue.PHI: r'$\phi$ [rad]', BinningValue.R: 'r [mm]', BinningValue.Z: 'z [mm]'}
    ax.set_xlabel(labels[bin_utility.binning_data[0].value])
    ax.set_ylabel(labels[bin_utility.binning_data[1].value])

    if output_file:
        fig.savefig(output_file)
        logger.info("Saved material grid to %s", output_file)
    return fig, ax, grid
