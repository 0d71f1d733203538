"""Diagram description — dataclasses, validation, parsing, and serialization.

Submodules:
  models         Tagged-union diagram dataclasses.
  connections    Connection grammar ("id.port", "$.name[i]").
  primitives     User-declared primitive types.
  expressions    "${...}" integer expressions.
  templates      Module parameters and component loops.
  validation     Never-raising structural checks on raw JSON.
  parsing        JSON to models.
  loader         Reading diagram files.
  serialization  Models back to JSON.
"""

from .models import (
    InputSpec, Primitive, ModuleInstance, ModuleDefinition,
    FlatDiagram, HierarchicalDiagram, Component, Diagram,
)
from .connections import ComponentRef, ModuleInputRef, parse_connection, qualify
from .primitives import PortSpec, PrimitiveDefinition
from .expressions import ExpressionError, evaluate, substitute
from .templates import expand_definition, is_template
from .validation import ValidationResult, validate_diagram
from .parsing import parse_definition, parse_diagram
from .loader import DiagramLoadError, load_diagram_file
from .serialization import diagram_to_dict

__all__ = [
    # Models
    "InputSpec", "Primitive", "ModuleInstance", "ModuleDefinition",
    "FlatDiagram", "HierarchicalDiagram", "Component", "Diagram",
    "PortSpec", "PrimitiveDefinition",
    # Connections
    "ComponentRef", "ModuleInputRef", "parse_connection", "qualify",
    # Templates
    "ExpressionError", "evaluate", "substitute", "expand_definition", "is_template",
    # Validation / Parsing / Loading / Serialization
    "ValidationResult", "validate_diagram", "parse_diagram", "parse_definition",
    "DiagramLoadError", "load_diagram_file", "diagram_to_dict",
]
