"""Diagram serialization — convert Diagram models back to JSON-safe values."""

from __future__ import annotations

import copy

from .models import Component, Diagram, FlatDiagram, InputSpec, ModuleDefinition, ModuleInstance
from .primitives import primitive_definition_to_dict


def diagram_to_dict(diagram: Diagram) -> list | dict:
    """Convert a Diagram to the JSON shape it was parsed from.

    Template definitions are written back as templates, not expanded.
    """
    if isinstance(diagram, FlatDiagram):
        return [component_to_dict(c) for c in diagram.components]
    return {
        "entryPointModule": diagram.entry_point,
        "moduleDefinitions": {
            name: _definition_to_dict(d)
            for name, d in diagram.module_definitions.items()
        },
        **({"primitiveDefinitions": {
            ptype: primitive_definition_to_dict(p)
            for ptype, p in diagram.primitive_definitions.items()
        }} if diagram.primitive_definitions else {}),
    }


def component_to_dict(comp: Component) -> dict:
    if isinstance(comp, ModuleInstance):
        return {
            "id": comp.id,
            "type": comp.type,
            "moduleType": comp.module_type,
            **({"label": comp.label} if comp.label != comp.module_type else {}),
            "inputs": {
                port: list(conn) if isinstance(conn, list) else conn
                for port, conn in comp.inputs.items()
            },
            **({"parameters": dict(comp.parameters)} if comp.parameters else {}),
        }
    return {
        "id": comp.id,
        "type": comp.type,
        **({"label": comp.label} if comp.label != comp.type else {}),
        **({"inputs": dict(comp.inputs)} if comp.inputs else {}),
    }


def _definition_to_dict(definition: ModuleDefinition) -> dict:
    if definition.template is not None:
        return copy.deepcopy(definition.template)
    return {
        **({"parameters": dict(definition.parameters)} if definition.parameters else {}),
        "inputs": [_input_spec_to_json(s) for s in definition.inputs],
        "outputs": list(definition.outputs),
        "components": [component_to_dict(c) for c in definition.components],
        "outputMappings": dict(definition.output_mappings),
    }


def _input_spec_to_json(spec: InputSpec) -> str | dict:
    return {"name": spec.name, "size": spec.size} if spec.is_bus else spec.name
