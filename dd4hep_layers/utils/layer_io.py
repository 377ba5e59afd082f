"""Export of built tracking layers to ROOT files."""

import logging
from typing import Dict, List, Sequence, Tuple

import awkward as ak
import numpy as np
import uproot

from dd4hep_layers.enums import LayerShape, LayerType, Region

logger = logging.getLogger(__name__)

REGION_CODES = {Region.NEGATIVE: -1, Region.CENTRAL: 0, Region.POSITIVE: 1}
LAYER_TYPE_CODES = {LayerType.PASSIVE: 0, LayerType.ACTIVE: 1, LayerType.NAVIGATION: 2}

SCALAR_FIELDS = ('region', 'index', 'is_disc', 'layer_type', 'r_min', 'r_max', 'z_min', 'z_max',
                 'thickness', 'material_x0', 'material_thickness', 'approach_material_slot')
MODULE_COUNT = 'module_count'


def layer_envelope(layer) -> Tuple[float, float, float, float]:
    """(r_min, r_max, z_min, z_max) of the volume a layer occupies, in mm"""
    z = float(layer.transform.translation[2])
    half_t = 0.5 * layer.thickness
    if layer.shape is LayerShape.DISC:
        return layer.bounds.r_min, layer.bounds.r_max, z - half_t, z + half_t
    return (max(layer.bounds.r - half_t, 0.0), layer.bounds.r + half_t,
            z - layer.bounds.half_z, z + layer.bounds.half_z)


def layer_record(layer, region: Region, index: int) -> Dict:
    """Flat summary of one layer, module centres as lists"""
    r_min, r_max, z_min, z_max = layer_envelope(layer)
    material = layer.surface_material
    properties = material.material_properties() if material is not None else None
    approach = layer.approach_descriptor
    material_surface = approach.material_surface if approach is not None else None
    material_position = -1
    if material_surface is not None:
        material_position = next(i for i, s in enumerate(approach.surfaces) if s is material_surface)
    centers = np.array([s.center for s in layer.surfaces]).reshape(-1, 3)
    return {
        'region': REGION_CODES[region],
        'index': index,
        'is_disc': int(layer.is_disc),
        'layer_type': LAYER_TYPE_CODES[layer.layer_type],
        'r_min': r_min,
        'r_max': r_max,
        'z_min': z_min,
        'z_max': z_max,
        'thickness': float(layer.thickness),
        'material_x0': properties.average_x0 if properties is not None else 0.0,
        'material_thickness': properties.thickness if properties is not None else 0.0,
        'approach_material_slot': material_position,
        'module_x': centers[:, 0].tolist(),
        'module_y': centers[:, 1].tolist(),
        'module_z': centers[:, 2].tolist(),
    }


def layers_to_awkward(layer_collections: Dict[Region, Sequence]) -> ak.Array:
    """
    Convert layer collections into one awkward record array.

    Parameters:
    -----------
    layer_collections : dict
        Region -> list of layers as returned by the layer builder

    Returns:
    --------
    ak.Array with one record per layer and a jagged ``module`` field
    """
    records: List[Dict] = []
    for region, layers in layer_collections.items():
        records.extend(layer_record(layer, region, i) for i, layer in enumerate(layers))
    if not records:
        raise ValueError("No layers to convert")
    scalars = {key: np.asarray([r[key] for r in records]) for key in SCALAR_FIELDS}
    counts = [len(r['module_x']) for r in records]
    return _with_modules(scalars, counts, {
        axis: np.asarray([v for r in records for v in r[f'module_{axis}']], dtype=float) for axis in 'xyz'
    })


def _with_modules(scalars, counts, flat_modules) -> ak.Array:
    modules = ak.zip({axis: ak.unflatten(flat_modules[axis], counts) for axis in 'xyz'})
    return ak.zip({**{k: ak.Array(v) for k, v in scalars.items()}, 'module': modules}, depth_limit=1)


def write_layers_root(path, layer_collections: Dict[Region, Sequence], tree_name: str = 'layers'):
    """
    Write the layer summary into a TTree.

    Module centres go into the flat jagged branches ``module_x``, ``module_y``
    and ``module_z`` next to an explicit ``module_count`` branch.
    """
    array = layers_to_awkward(layer_collections)
    branches = {field: array[field] for field in SCALAR_FIELDS}
    branches[MODULE_COUNT] = ak.num(array['module'], axis=1)
    for axis in 'xyz':
        branches[f'module_{axis}'] = array['module'][axis]
    with uproot.recreate(path) as output_file:
        output_file[tree_name] = branches
    logger.info("Wrote %d layers to %s:%s", len(array), path, tree_name)
    return array


def read_layers_root(path, tree_name: str = 'layers') -> ak.Array:
    """Read a tree written by :func:`write_layers_root` back into the same layout"""
    module_branches = [f'module_{axis}' for axis in 'xyz']
    with uproot.open(path) as input_file:
        arrays = input_file[tree_name].arrays(list(SCALAR_FIELDS) + [MODULE_COUNT] + module_branches,
                                              library='ak')
    counts = ak.to_numpy(arrays[MODULE_COUNT])
    scalars = {field: ak.to_numpy(arrays[field]) for field in SCALAR_FIELDS}
    return _with_modules(scalars, counts, {
        axis: np.asarray(ak.to_numpy(ak.flatten(arrays[f'module_{axis}'], axis=None)), dtype=float)
        for axis in 'xyz'
    })
