"""Diagram dataclasses — the parsed form of a diagram description."""

from __future__ import annotations

from dataclasses import dataclass, field

from .primitives import PrimitiveDefinition


MODULE_TYPE = "module"
INPUT_TYPE = "input"
OUTPUT_TYPE = "output"
REG_TYPE = "reg"


@dataclass(frozen=True)
class InputSpec:
    """A declared module input.  ``size > 1`` makes it a bus."""
    name: str
    size: int = 1

    @property
    def is_bus(self) -> bool:
        return self.size > 1


@dataclass
class Primitive:
    id: str
    type: str
    label: str = ""
    inputs: dict[str, str] = field(default_factory=dict)   # port -> connection

    def __post_init__(self) -> None:
        if not self.label:
            self.label = self.type


@dataclass
class ModuleInstance:
    """One use of a module definition inside another graph.

    Bus inputs carry a list of connections, one per element.
    """
    id: str
    module_type: str
    inputs: dict[str, str | list[str]] = field(default_factory=dict)
    label: str = ""
    parameters: dict[str, int] = field(default_factory=dict)    # overrides

    def __post_init__(self) -> None:
        if not self.label:
            self.label = self.module_type

    @property
    def type(self) -> str:
        return MODULE_TYPE


Component = Primitive | ModuleInstance


@dataclass
class ModuleDefinition:
    """A module body.  For a template, the fields hold its expansion with
    ``parameters`` bound, and ``template`` keeps the raw JSON so that
    instances can expand it again with their own overrides.
    """
    name: str
    inputs: list[InputSpec]
    outputs: list[str]
    components: list[Component]
    output_mappings: dict[str, str]     # output port -> "componentId.port"
    parameters: dict[str, int] = field(default_factory=dict)
    template: dict | None = field(default=None, compare=False, repr=False)

    def input_spec(self, name: str) -> InputSpec | None:
        return next((spec for spec in self.inputs if spec.name == name), None)

    def component(self, component_id: str) -> Component | None:
        return next((c for c in self.components if c.id == component_id), None)


@dataclass
class FlatDiagram:
    """Legacy shape: a bare array of primitives with no module definitions."""
    components: list[Component]
    kind: str = field(default="flat", init=False)


@dataclass
class HierarchicalDiagram:
    """Entry-point module plus the definitions it (transitively) uses."""
    entry_point: str
    module_definitions: dict[str, ModuleDefinition]
    primitive_definitions: dict[str, PrimitiveDefinition] = field(default_factory=dict)
    kind: str = field(default="hierarchical", init=False)

    @property
    def entry_definition(self) -> ModuleDefinition:
        return self.module_definitions[self.entry_point]


Diagram = FlatDiagram | HierarchicalDiagram
