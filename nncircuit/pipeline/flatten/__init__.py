"""Flattener — expands module instances into a flat primitive graph.

Submodules:
  models        Output dataclasses and resolution errors.
  engine        Recursive expansion with connection rewriting.
  serialization JSON conversion (flat_graph_to_list, flat_graph_to_dict, parse_flat_graph).
"""

from .models import (
    FlatPrimitive, InstanceRecord, FlatGraph,
    FlattenError, ResolutionError, CyclicModuleError,
)
from .engine import flatten_diagram
from .serialization import flat_graph_to_list, flat_graph_to_dict, parse_flat_graph

__all__ = [
    # Models
    "FlatPrimitive", "InstanceRecord", "FlatGraph",
    "FlattenError", "ResolutionError", "CyclicModuleError",
    # Engine
    "flatten_diagram",
    # Serialization
    "flat_graph_to_list", "flat_graph_to_dict", "parse_flat_graph",
]
