"""Canvas geometry for a computed layout.

Renderers draw each primitive as a box centred on its grid position,
scaled by the spacing in LayoutRules.  These helpers expose the same
boxes so callers can check a layout before drawing it.
"""

from __future__ import annotations

from shapely.geometry import Polygon, box as shapely_box
from shapely.ops import unary_union

from nncircuit.pipeline.config import LAYOUT_RULES, LayoutRules

from .models import Layout, Position


def canvas_xy(pos: Position, rules: LayoutRules = LAYOUT_RULES) -> tuple[float, float]:
    """Centre of a primitive on the canvas."""
    return (pos.cycle * rules.cycle_spacing, pos.row * rules.row_spacing)


def node_box(pos: Position, rules: LayoutRules = LAYOUT_RULES) -> Polygon:
    """Axis-aligned box a renderer draws for a primitive at *pos*."""
    cx, cy = canvas_xy(pos, rules)
    hw, hh = rules.half_node
    return shapely_box(cx - hw, cy - hh, cx + hw, cy + hh)


def find_overlaps(
    layout: Layout, rules: LayoutRules = LAYOUT_RULES,
) -> list[tuple[str, str]]:
    """Pairs of primitives whose boxes overlap, in flat order.

    Boxes that merely touch along an edge do not count.  Rows are
    averages, so two primitives in the same cycle can land on the
    same or nearly the same row.
    """
    boxes = [(nid, node_box(pos, rules)) for nid, pos in layout.positions.items()]
    overlaps: list[tuple[str, str]] = []
    for i, (a_id, a_box) in enumerate(boxes):
        for b_id, b_box in boxes[i + 1:]:
            if a_box.intersection(b_box).area > 1e-9:
                overlaps.append((a_id, b_id))
    return overlaps


def canvas_bounds(
    layout: Layout, rules: LayoutRules = LAYOUT_RULES,
) -> tuple[float, float, float, float]:
    """(minx, miny, maxx, maxy) of all primitive boxes."""
    if not layout.positions:
        return (0.0, 0.0, 0.0, 0.0)
    union = unary_union([node_box(pos, rules) for pos in layout.positions.values()])
    return tuple(float(v) for v in union.bounds)
