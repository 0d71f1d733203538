"""Flattener output dataclasses and errors."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator


# ── Output dataclasses ─────────────────────────────────────────────


@dataclass
class FlatPrimitive:
    """A primitive with a globally unique id and fully qualified inputs."""

    id: str
    type: str
    label: str
    inputs: dict[str, str] = field(default_factory=dict)
    scope: str = field(default="", compare=False)   # instantiation path
    latency: int = 1                                # cycles after the latest input


@dataclass
class InstanceRecord:
    """One expanded module instance, kept for drawing module boundaries."""

    path: str
    module_type: str
    members: list[str] = field(default_factory=list)    # flat primitive ids


@dataclass
class FlatGraph:
    """Ordered primitive-only graph, ready for the layout engine."""

    nodes: list[FlatPrimitive]
    instances: list[InstanceRecord] = field(default_factory=list, compare=False)

    def __iter__(self) -> Iterator[FlatPrimitive]:
        return iter(self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)

    @property
    def ids(self) -> list[str]:
        return [n.id for n in self.nodes]

    def get(self, node_id: str) -> FlatPrimitive | None:
        return next((n for n in self.nodes if n.id == node_id), None)


# ── Errors ─────────────────────────────────────────────────────────


class FlattenError(Exception):
    """Base class for failures while expanding module instances."""


class ResolutionError(FlattenError):
    """A reference, module type or input binding cannot be resolved."""


class CyclicModuleError(ResolutionError):
    """A module definition (transitively) instantiates itself."""

    def __init__(self, chain: tuple[str, ...]) -> None:
        self.chain = chain
        super().__init__(
            f"Cyclic module instantiation: {' -> '.join(chain)}"
        )
