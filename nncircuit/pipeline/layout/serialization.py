"""Layout serialization — JSON conversion."""

from __future__ import annotations

from nncircuit.pipeline.config import LAYOUT_RULES, LayoutRules

from .geometry import canvas_bounds, canvas_xy, find_overlaps
from .models import Layout, Position


def layout_to_dict(layout: Layout, rules: LayoutRules = LAYOUT_RULES) -> dict:
    """Serialize a Layout to a JSON-safe dict.

    Canvas coordinates, overlapping pairs and bounds are derived from
    *rules* and are ignored by ``parse_layout``.
    """
    positions = {}
    for nid, pos in layout.positions.items():
        x, y = canvas_xy(pos, rules)
        positions[nid] = {"cycle": pos.cycle, "row": pos.row, "x": x, "y": y}
    return {
        "positions": positions,
        "feedback_edges": [list(edge) for edge in layout.feedback_edges],
        "overlaps": [list(pair) for pair in find_overlaps(layout, rules)],
        "bounds": list(canvas_bounds(layout, rules)),
    }


def parse_layout(data: dict) -> Layout:
    """Parse a ``layout_to_dict`` value back into a Layout."""
    return Layout(
        positions={
            nid: Position(cycle=int(p["cycle"]), row=float(p["row"]))
            for nid, p in data["positions"].items()
        },
        feedback_edges=[(src, dst) for src, dst in data.get("feedback_edges", [])],
    )
