"""Layout engine — places flat primitives on a cycle/row grid.

Submodules:
  models        Output dataclasses, LayoutError and defaults.
  engine        Fixed-point cycle and row assignment with register feedback.
  geometry      Canvas boxes, overlap detection and bounds (shapely).
  serialization JSON conversion (layout_to_dict, parse_layout).
"""

from .models import Position, Layout, LayoutError, DEFAULT_OUTPUT_OFFSET
from .engine import compute_layout
from .geometry import canvas_xy, node_box, find_overlaps, canvas_bounds
from .serialization import layout_to_dict, parse_layout

__all__ = [
    # Models
    "Position", "Layout", "LayoutError", "DEFAULT_OUTPUT_OFFSET",
    # Engine
    "compute_layout",
    # Geometry
    "canvas_xy", "node_box", "find_overlaps", "canvas_bounds",
    # Serialization
    "layout_to_dict", "parse_layout",
]
