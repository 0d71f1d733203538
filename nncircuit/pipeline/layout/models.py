"""Layout output dataclasses and configuration constants."""

from __future__ import annotations

from dataclasses import dataclass, field

from nncircuit.pipeline.config import LAYOUT_RULES


# ── Output dataclasses ─────────────────────────────────────────────


@dataclass(frozen=True)
class Position:
    """Grid position: discrete clock-cycle column and continuous row."""

    cycle: int
    row: float


@dataclass
class Layout:
    """Position of every primitive of a flat graph, in flat-graph order."""

    positions: dict[str, Position]
    feedback_edges: list[tuple[str, str]] = field(default_factory=list)   # (reg id, consumer id)

    def __getitem__(self, node_id: str) -> Position:
        return self.positions[node_id]

    def __len__(self) -> int:
        return len(self.positions)

    @property
    def max_cycle(self) -> int:
        return max((p.cycle for p in self.positions.values()), default=0)


class LayoutError(Exception):
    """Raised when primitives cannot be ordered into clock cycles."""

    def __init__(self, primitive_id: str, reason: str, primitive_ids: list[str] | None = None) -> None:
        self.primitive_id = primitive_id
        self.primitive_ids = primitive_ids or [primitive_id]
        self.reason = reason
        super().__init__(f"Cannot lay out '{primitive_id}': {reason}")


# ── Configuration ──────────────────────────────────────────────────

DEFAULT_OUTPUT_OFFSET = LAYOUT_RULES.output_cycle_offset
