"""Shared layout rules for the diagram pipeline.

The layout engine works in grid units (clock-cycle columns and
fractional rows).  These values describe how those grid units map onto
the drawing canvas and how large a node is drawn there.  Both the
**layout** stage (output offset) and the canvas **geometry** helpers
read from this single source of truth.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class LayoutRules:
    """Grid-to-canvas rules for schematic rendering.

    All distances are in canvas units.
    """

    cycle_spacing: float = 100.0
    """Horizontal distance between two clock-cycle columns."""

    row_spacing: float = 100.0
    """Vertical distance between two integer rows."""

    node_width: float = 60.0
    """Width of a drawn primitive."""

    node_height: float = 40.0
    """Height of a drawn primitive."""

    output_cycle_offset: int = 0
    """Extra trailing cycles added to every ``output`` primitive."""

    # ── Derived helpers ────────────────────────────────────────────

    @property
    def half_node(self) -> tuple[float, float]:
        """(half_width, half_height) of a node footprint."""
        return (self.node_width / 2, self.node_height / 2)


# Module-level singleton, importable everywhere.
LAYOUT_RULES = LayoutRules()
