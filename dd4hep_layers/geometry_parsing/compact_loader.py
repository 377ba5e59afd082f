"""
Build detector-element trees from a compact XML description.

The description follows the DD4hep compact layout: ``<define>`` constants,
``<materials>`` and ``<detectors>``. Barrel detectors place modules with an
``rphi_layout``/``z_layout`` per layer, endcap detectors place them in
``ring`` elements. Every layer may carry an ``<acts_extension>``::

    <detector name="VertexBarrel" type="barrel">
      <layer id="1" rmin="1.3*cm" rmax="1.7*cm" dz="6.5*cm" material="Air">
        <acts_extension axes="XYZ" support_material="true" bins1="36" bins2="10"
                        material_position="inner"/>
        <module shape="box" dx="0.45*cm" dy="1.5*cm" dz="0.01*cm" material="Silicon">
          <segmentation cell_x="20*um" cell_y="20*um"/>
        </module>
        <rphi_layout nphi="12" rc="1.5*cm" phi0="0" phi_tilt="0"/>
        <z_layout nz="4" z0="4.5*cm"/>
      </layer>
    </detector>

All values are converted to DD4hep native units (cm, rad).
"""

import ast
import logging
import math
import operator
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Dict, List

import numpy as np

from dd4hep_layers.enums import LayerMaterialPosition
from dd4hep_layers.geometry.detector_element import (
    VACUUM,
    ActsExtension,
    DD4hepMaterial,
    DetectorElement,
    Placement,
    Volume,
)
from dd4hep_layers.geometry.digitization import DigitizationModule, DigitizationModuleRegistry
from dd4hep_layers.geometry.shapes import Box, Trapezoid, TubeSegment
from dd4hep_layers.geometry.transforms import world_matrix
from dd4hep_layers.units import COMPACT_UNITS, UNIT_CM

logger = logging.getLogger(__name__)

_BINARY_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Pow: operator.pow,
}

_UNARY_OPERATORS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

_FUNCTIONS = {
    'sqrt': math.sqrt,
    'sin': math.sin,
    'cos': math.cos,
    'tan': math.tan,
    'atan': math.atan,
    'floor': math.floor,
    'abs': abs,
}

_TRUE_VALUES = {'true', 'yes', '1'}


def evaluate_math_expression(expr_str):
    """
    Evaluate an arithmetic expression string (numbers, + - * / ^ **, parentheses, pi
    and a few math functions).

    Returns:
    --------
    float or None if the expression cannot be evaluated
    """
    if not isinstance(expr_str, str):
        return expr_str
    try:
        tree = ast.parse(expr_str.strip().replace('^', '**'), mode='eval')
        return float(_evaluate_node(tree.body))
    except (SyntaxError, ValueError, TypeError, ZeroDivisionError, KeyError):
        return None


def _evaluate_node(node):
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPERATORS:
        return _BINARY_OPERATORS[type(node.op)](_evaluate_node(node.left), _evaluate_node(node.right))
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPERATORS:
        return _UNARY_OPERATORS[type(node.op)](_evaluate_node(node.operand))
    if isinstance(node, ast.Name) and node.id == 'pi':
        return math.pi
    if isinstance(node, ast.Call) and isinstance(node.func, ast.Name) and len(node.args) == 1:
        return _FUNCTIONS[node.func.id](_evaluate_node(node.args[0]))
    raise ValueError(f"Unsupported expression element: {ast.dump(node)}")


def parse_value(value_str, constants=None):
    """
    Parse a value that may reference constants and carry units.

    Parameters:
    -----------
    value_str : str
        String containing the value (e.g., "VertexBarrel_rc - 0.5*mm")
    constants : dict, optional
        Already evaluated constants (native units)

    Returns:
    --------
    float or None
    """
    if value_str is None:
        return None
    if isinstance(value_str, (int, float)):
        return float(value_str)

    expr = str(value_str).strip()
    if constants:
        if expr in constants:
            return float(constants[expr])
        # longest names first to avoid partial replacements
        for name in sorted(constants, key=len, reverse=True):
            expr = re.sub(r'\b' + re.escape(name) + r'\b', f"({constants[name]!r})", expr)

    for unit, factor in COMPACT_UNITS.items():
        expr = re.sub(r'\b' + re.escape(unit) + r'\b', f"({factor!r})", expr)

    return evaluate_math_expression(expr)


def _required(elem, attribute, constants, context):
    value = parse_value(elem.get(attribute), constants)
    if value is None:
        raise ValueError(f"{context}: missing or invalid attribute '{attribute}' "
                         f"(value {elem.get(attribute)!r})")
    return value


def _flag(elem, attribute, default=False):
    value = elem.get(attribute)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def parse_detector_constants(root):
    """Evaluate all ``<constant>`` definitions, resolving references between them"""
    raw_constants = {c.get('name'): c.get('value') for c in root.iter('constant') if c.get('name')}
    constants: Dict[str, float] = {}

    def evaluate_constant(name, visited):
        if name in constants:
            return constants[name]
        if name in visited:
            logger.warning("Circular dependency detected for %s: %s", name, ' -> '.join(visited + [name]))
            return None
        visited = visited + [name]
        expr = raw_constants[name]
        references = {}
        for other in raw_constants:
            if other != name and re.search(r'\b' + re.escape(other) + r'\b', expr):
                value = evaluate_constant(other, visited)
                if value is None:
                    return None
                references[other] = value
        value = parse_value(expr, references)
        if value is None:
            logger.warning("Could not evaluate constant %s = %s", name, expr)
            return None
        constants[name] = value
        return value

    for name in raw_constants:
        evaluate_constant(name, [])
    return constants


def parse_materials(root, constants):
    materials = {'Vacuum': VACUUM}
    for elem in root.iter('material'):
        name = elem.get('name')
        context = f"Material {name}"
        materials[name] = DD4hepMaterial(
            name=name,
            rad_length=_required(elem, 'radlen', constants, context),
            int_length=_required(elem, 'intlen', constants, context),
            a=_required(elem, 'A', constants, context),
            z=_required(elem, 'Z', constants, context),
            density=_required(elem, 'density', constants, context),
        )
    return materials


def _material(materials, name, context):
    if name is None:
        return VACUUM
    if name not in materials:
        raise ValueError(f"{context}: unknown material '{name}'")
    return materials[name]


def parse_acts_extension(layer_elem, constants, is_barrel):
    """Acts extension of a layer, None when the layer declares none"""
    ext = layer_elem.find('acts_extension')
    if ext is None:
        return None
    envelope_r = parse_value(ext.get('envelope_r'), constants)
    envelope_z = parse_value(ext.get('envelope_z'), constants)
    return ActsExtension(
        axes=ext.get('axes', 'XYZ' if is_barrel else 'XZY'),
        build_envelope=envelope_r is not None or envelope_z is not None,
        envelope_r=(envelope_r or 0.0) * UNIT_CM,
        envelope_z=(envelope_z or 0.0) * UNIT_CM,
        has_support_material=_flag(ext, 'support_material'),
        material_bins=(int(parse_value(ext.get('bins1', '1'), constants)),
                       int(parse_value(ext.get('bins2', '1'), constants))),
        layer_material_position=LayerMaterialPosition.from_string(ext.get('material_position', 'inner')),
        is_barrel=is_barrel,
        is_endcap=not is_barrel,
    )


def _module_shape(module_elem, constants, context):
    shape = module_elem.get('shape', 'box').lower()
    if shape == 'box':
        return Box(*(_required(module_elem, key, constants, context) for key in ('dx', 'dy', 'dz')))
    if shape == 'trd':
        return Trapezoid(*(_required(module_elem, key, constants, context) for key in ('dx1', 'dx2', 'dy', 'dz')))
    raise ValueError(f"{context}: unsupported module shape '{shape}'")


def _digitization_module(module_elem, shape, axes, constants):
    segmentation = module_elem.find('segmentation')
    if segmentation is None:
        return None
    indices = ['xyz'.index(letter.lower()) for letter in axes]
    half = [h * UNIT_CM for h in shape.half_lengths]
    cell_x = _required(segmentation, 'cell_x', constants, 'segmentation') * UNIT_CM
    cell_y = _required(segmentation, 'cell_y', constants, 'segmentation') * UNIT_CM
    half_x, half_y, half_t = half[indices[0]], half[indices[1]], half[indices[2]]
    return DigitizationModule(half_x, half_y, half_t,
                              bins_x=max(int(round(2 * half_x / cell_x)), 1),
                              bins_y=max(int(round(2 * half_y / cell_y)), 1))


def _layer_volume(layer_elem, constants, materials, context):
    rmin = parse_value(layer_elem.get('rmin'), constants)
    rmax = parse_value(layer_elem.get('rmax'), constants)
    dz = parse_value(layer_elem.get('dz'), constants)
    shape = TubeSegment(rmin, rmax, dz) if None not in (rmin, rmax, dz) else None
    return Volume(shape=shape,
                  material=_material(materials, layer_elem.get('material'), context),
                  sensitive=_flag(layer_elem, 'sensitive'))


@dataclass
class CompactDetector:
    """Result of loading a compact description."""
    world: DetectorElement
    layer_elements: List[DetectorElement] = field(default_factory=list)
    constants: Dict[str, float] = field(default_factory=dict)
    materials: Dict[str, DD4hepMaterial] = field(default_factory=dict)
    registry: DigitizationModuleRegistry = field(default_factory=DigitizationModuleRegistry)


def _add_barrel_modules(layer, layer_elem, module_elem, extension, constants, materials, registry):
    context = f"Layer {layer.name}"
    shape = _module_shape(module_elem, constants, context)
    volume = Volume(shape=shape, material=_material(materials, module_elem.get('material'), context),
                    sensitive=_flag(module_elem, 'sensitive', True))
    rphi = layer_elem.find('rphi_layout')
    if rphi is None:
        raise ValueError(f"{context}: barrel modules need an rphi_layout")
    n_phi = int(_required(rphi, 'nphi', constants, context))
    rc = _required(rphi, 'rc', constants, context)
    phi0 = parse_value(rphi.get('phi0', '0'), constants) or 0.0
    phi_tilt = parse_value(rphi.get('phi_tilt', '0'), constants) or 0.0

    z_layout = layer_elem.find('z_layout')
    n_z = int(parse_value(z_layout.get('nz', '1'), constants)) if z_layout is not None else 1
    z0 = (parse_value(z_layout.get('z0', '0'), constants) or 0.0) if z_layout is not None else 0.0
    z_positions = np.linspace(-z0, z0, n_z) if n_z > 1 else [0.0]

    axes = extension.axes if extension is not None else 'XYZ'
    digitization = _digitization_module(module_elem, shape, axes, constants)
    if digitization is not None:
        registry.register(f"{layer.name}_module*", digitization)

    module_id = 0
    for i_phi in range(n_phi):
        phi = phi0 + i_phi * 2.0 * math.pi / n_phi
        facing = phi + phi_tilt
        # local x tangential, local y along the beam, local z radial
        rotation = np.column_stack([(-math.sin(facing), math.cos(facing), 0.0),
                                    (0.0, 0.0, 1.0),
                                    (math.cos(facing), math.sin(facing), 0.0)])
        for z in z_positions:
            translation = (rc * math.cos(phi), rc * math.sin(phi), float(z))
            layer.add_child(DetectorElement(f"{layer.name}_module{module_id}",
                                            world_matrix(rotation, translation), Placement(volume)))
            module_id += 1


def _add_endcap_modules(layer, layer_elem, z_layer, constants, materials, extension, registry):
    context = f"Layer {layer.name}"
    axes = extension.axes if extension is not None else 'XZY'
    module_id = 0
    for ring_id, ring in enumerate(layer_elem.findall('ring')):
        module_elem = ring.find('module')
        if module_elem is None:
            raise ValueError(f"{context}: ring {ring_id} has no module")
        shape = _module_shape(module_elem, constants, context)
        volume = Volume(shape=shape, material=_material(materials, module_elem.get('material'), context),
                        sensitive=_flag(module_elem, 'sensitive', True))
        r = _required(ring, 'r', constants, context)
        n_modules = int(_required(ring, 'nmodules', constants, context))
        phi0 = parse_value(ring.get('phi0', '0'), constants) or 0.0
        z_offset = parse_value(ring.get('zoffset', '0'), constants) or 0.0

        digitization = _digitization_module(module_elem, shape, axes, constants)
        if digitization is not None:
            registry.register(f"{layer.name}_ring{ring_id}_module*", digitization)

        for i in range(n_modules):
            phi = phi0 + i * 2.0 * math.pi / n_modules
            # local x azimuthal, local y along the beam, local z radial
            rotation = np.column_stack([(-math.sin(phi), math.cos(phi), 0.0),
                                        (0.0, 0.0, 1.0),
                                        (math.cos(phi), math.sin(phi), 0.0)])
            z = z_layer + (z_offset if i % 2 == 0 else -z_offset)
            translation = (r * math.cos(phi), r * math.sin(phi), z)
            layer.add_child(DetectorElement(f"{layer.name}_ring{ring_id}_module{module_id}",
                                            world_matrix(rotation, translation), Placement(volume)))
            module_id += 1


def _build_barrel(detector_elem, constants, materials, registry):
    name = detector_elem.get('name')
    detector = DetectorElement(name)
    layers = []
    for layer_elem in detector_elem.findall('layer'):
        layer_id = layer_elem.get('id', str(len(layers)))
        layer_name = f"{name}_layer{layer_id}"
        volume = _layer_volume(layer_elem, constants, materials, f"Layer {layer_name}")
        extension = parse_acts_extension(layer_elem, constants, is_barrel=True)
        layer = detector.add_child(DetectorElement(layer_name, world_matrix(), Placement(volume), extension))
        module_elem = layer_elem.find('module')
        if module_elem is not None:
            _add_barrel_modules(layer, layer_elem, module_elem, extension, constants, materials, registry)
        layers.append(layer)
    return detector, layers


def _build_endcap(detector_elem, constants, materials, registry):
    name = detector_elem.get('name')
    detector = DetectorElement(name)
    sides = [(1, '_pos')]
    if _flag(detector_elem, 'reflect'):
        sides.append((-1, '_neg'))
    layers = []
    for sign, suffix in sides:
        for index, layer_elem in enumerate(detector_elem.findall('layer')):
            layer_id = layer_elem.get('id', str(index))
            layer_name = f"{name}{suffix}_layer{layer_id}"
            context = f"Layer {layer_name}"
            z_layer = sign * _required(layer_elem, 'z', constants, context)
            volume = _layer_volume(layer_elem, constants, materials, context)
            extension = parse_acts_extension(layer_elem, constants, is_barrel=False)
            layer = detector.add_child(DetectorElement(layer_name, world_matrix(None, (0.0, 0.0, z_layer)),
                                                       Placement(volume), extension))
            _add_endcap_modules(layer, layer_elem, z_layer, constants, materials, extension, registry)
            layers.append(layer)
    return detector, layers


def load_compact(xml_file) -> CompactDetector:
    """
    Parse a compact XML file into a detector-element tree.

    Parameters:
    -----------
    xml_file : str or path-like
        Path to the compact description

    Returns:
    --------
    CompactDetector with the world element and the layer elements in file order
    """
    root = ET.parse(xml_file).getroot()
    constants = parse_detector_constants(root)
    materials = parse_materials(root, constants)
    world = DetectorElement('world')
    result = CompactDetector(world=world, constants=constants, materials=materials)

    detectors = root.findall('.//detectors/detector')
    if not detectors:
        raise ValueError(f"No detector element found in {xml_file}")
    for detector_elem in detectors:
        detector_type = detector_elem.get('type', '').lower()
        if detector_type == 'barrel':
            detector, layers = _build_barrel(detector_elem, constants, materials, result.registry)
        elif detector_type == 'endcap':
            detector, layers = _build_endcap(detector_elem, constants, materials, result.registry)
        else:
            raise ValueError(f"Detector {detector_elem.get('name')} has unknown type '{detector_type}'")
        world.add_child(detector)
        result.layer_elements.extend(layers)
        logger.info("Loaded %s (%s) with %d layers", detector.name, detector_type, len(layers))
    return result
