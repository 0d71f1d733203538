"""Diagram parsing — convert validated JSON values into Diagram models."""

from __future__ import annotations

import copy
from collections.abc import Mapping

from .models import (
    MODULE_TYPE, Component, Diagram, FlatDiagram, HierarchicalDiagram,
    InputSpec, ModuleDefinition, ModuleInstance, Primitive,
)
from .primitives import parse_primitive_definitions
from .templates import expand_definition, is_template


def parse_diagram(data: list | dict) -> Diagram:
    """Parse a raw value (from JSON) into a FlatDiagram or HierarchicalDiagram.

    The value is expected to have passed ``validate_diagram``; malformed
    input raises ``KeyError`` / ``TypeError`` here rather than producing
    diagnostics.  Template definitions are expanded with their default
    parameter values.
    """
    if isinstance(data, list):
        return FlatDiagram(components=[parse_component(c) for c in data])

    return HierarchicalDiagram(
        entry_point=data["entryPointModule"],
        module_definitions={
            name: parse_definition(name, d)
            for name, d in data["moduleDefinitions"].items()
        },
        primitive_definitions=parse_primitive_definitions(data.get("primitiveDefinitions")),
    )


def parse_component(data: dict) -> Component:
    if data["type"] == MODULE_TYPE:
        return ModuleInstance(
            id=data["id"],
            module_type=data["moduleType"],
            inputs={
                port: list(conn) if isinstance(conn, list) else conn
                for port, conn in data["inputs"].items()
            },
            label=data.get("label") or "",
            parameters=dict(data.get("parameters") or {}),
        )
    return Primitive(
        id=data["id"],
        type=data["type"],
        label=data.get("label") or "",
        inputs=dict(data.get("inputs") or {}),
    )


def parse_definition(
    name: str, data: dict, overrides: Mapping[str, int] | None = None,
) -> ModuleDefinition:
    """Parse one module definition, expanding it first if it is a template.

    Raises ``ExpressionError`` if the template cannot be expanded with
    *overrides*.
    """
    template = None
    if is_template(data):
        template = copy.deepcopy(data)
        data = expand_definition(data, overrides)
    return ModuleDefinition(
        name=name,
        inputs=[_parse_input_spec(s) for s in data["inputs"]],
        outputs=list(data["outputs"]),
        components=[parse_component(c) for c in data["components"]],
        output_mappings=dict(data["outputMappings"]),
        parameters=dict(data.get("parameters") or {}),
        template=template,
    )


def _parse_input_spec(data: str | dict) -> InputSpec:
    """Inputs are either a bare name (scalar) or ``{name, size}``."""
    if isinstance(data, str):
        return InputSpec(name=data)
    return InputSpec(name=data["name"], size=int(data.get("size", 1)))
