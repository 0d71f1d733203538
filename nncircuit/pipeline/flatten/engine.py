"""Module flattener — expands module instances into a flat primitive graph.

Every primitive of a definition instantiated at path ``p`` becomes
``p/<id>``; the entry point is instantiated at the empty path, so its
own primitives keep their declared ids.  Connections are rewritten as
the primitives are emitted:

  ``x.port``        x is a primitive      ->  ``p/x.port``
                    x is a module instance ->  whatever that instance's
                                               output mapping designates,
                                               followed through nested
                                               instances
  ``$.name[i]``                            ->  the connection bound to the
                                               input at the instantiation
                                               site (bus element ``i``)

Nested instances are expanded in place, so the flat order is the
declaration order with each instance replaced by its contents.

An instance that sets ``parameters`` expands its module's template again
with those values before any of the rewriting above, so loop-generated
ids and parameter-sized buses are concrete by the time paths are built.
"""

from __future__ import annotations

import logging

from nncircuit.pipeline.diagram.connections import (
    ComponentRef, ModuleInputRef, parse_connection, qualify,
)
from nncircuit.pipeline.diagram.expressions import ExpressionError
from nncircuit.pipeline.diagram.models import (
    Component, Diagram, FlatDiagram, HierarchicalDiagram,
    ModuleDefinition, ModuleInstance, Primitive,
)
from nncircuit.pipeline.diagram.parsing import parse_definition

from .models import (
    CyclicModuleError, FlatGraph, FlatPrimitive, InstanceRecord, ResolutionError,
)


log = logging.getLogger("nncircuit.flatten")

Binding = str | list[str]


def flatten_diagram(diagram: Diagram | FlatGraph) -> FlatGraph:
    """Expand all module instances of *diagram* into primitives.

    A FlatDiagram (or an already flat graph) is returned as an equal
    copy, which makes flattening idempotent.

    Raises
    ------
    CyclicModuleError
        If a module type appears in its own instantiation chain.
    ResolutionError
        If a module type, output mapping or ``$.`` reference cannot be
        resolved, or if an instance's parameters do not expand its
        module into a consistent definition.
    """
    if isinstance(diagram, FlatGraph):
        return FlatGraph(
            nodes=[
                FlatPrimitive(n.id, n.type, n.label, dict(n.inputs), n.scope, n.latency)
                for n in diagram.nodes
            ],
            instances=[
                InstanceRecord(r.path, r.module_type, list(r.members))
                for r in diagram.instances
            ],
        )
    if isinstance(diagram, FlatDiagram):
        return _flatten_flat(diagram)

    graph = _Flattener(diagram).run()
    log.info(
        "Flattened '%s': %d primitives from %d module instances",
        diagram.entry_point, len(graph.nodes), len(graph.instances),
    )
    return graph


def _flatten_flat(diagram: FlatDiagram) -> FlatGraph:
    ids = {c.id for c in diagram.components}
    nodes: list[FlatPrimitive] = []
    for comp in diagram.components:
        if isinstance(comp, ModuleInstance):
            raise ResolutionError(
                f"Module instance '{comp.id}' ({comp.module_type}) cannot be "
                f"resolved in a diagram without module definitions"
            )
        for port, conn in comp.inputs.items():
            ref = parse_connection(conn)
            if not isinstance(ref, ComponentRef) or ref.component_id not in ids:
                raise ResolutionError(
                    f"Primitive '{comp.id}' port '{port}': cannot resolve '{conn}'"
                )
        nodes.append(FlatPrimitive(comp.id, comp.type, comp.label, dict(comp.inputs)))
    return FlatGraph(nodes=nodes)


class _Flattener:
    """Single-use expansion state for one hierarchical diagram."""

    def __init__(self, diagram: HierarchicalDiagram) -> None:
        self.diagram = diagram
        self.nodes: list[FlatPrimitive] = []
        self.instances: list[InstanceRecord] = []
        self._by_id: dict[tuple, dict[str, Component]] = {}
        self._bound: dict[tuple, ModuleDefinition] = {}

    def run(self) -> FlatGraph:
        entry = self._definition(self.diagram.entry_point, ())
        bindings = self._entry_bindings(entry)
        self._expand(entry, "", bindings, (entry.name,))
        return FlatGraph(nodes=self.nodes, instances=self.instances)

    def _entry_bindings(self, entry: ModuleDefinition) -> dict[str, Binding]:
        """Nothing instantiates the entry point, so its own declared inputs
        become ``input`` primitives (``name`` or ``name[i]`` per bus element).
        """
        taken = set(self._components(entry))
        bindings: dict[str, Binding] = {}
        for spec in entry.inputs:
            ids = [f"{spec.name}[{i}]" for i in range(spec.size)] if spec.is_bus else [spec.name]
            for node_id in ids:
                if node_id in taken:
                    raise ResolutionError(
                        f"Entry module '{entry.name}' input '{spec.name}' collides "
                        f"with component id '{node_id}'"
                    )
                self.nodes.append(FlatPrimitive(node_id, "input", spec.name))
            refs = [str(ComponentRef(node_id, "out")) for node_id in ids]
            bindings[spec.name] = refs if spec.is_bus else refs[0]
        return bindings

    # ── Lookups ────────────────────────────────────────────────────

    def _definition(self, module_type: str, chain: tuple[str, ...]) -> ModuleDefinition:
        if module_type in chain:
            raise CyclicModuleError(chain + (module_type,))
        definition = self.diagram.module_definitions.get(module_type)
        if definition is None:
            raise ResolutionError(f"Unknown module type '{module_type}'")
        return definition

    def _components(self, definition: ModuleDefinition) -> dict[str, Component]:
        key = _binding_key(definition.name, definition.parameters)
        by_id = self._by_id.get(key)
        if by_id is None:
            by_id = {c.id: c for c in definition.components}
            self._by_id[key] = by_id
        return by_id

    def _bind(
        self, definition: ModuleDefinition, overrides: dict[str, int], path: str,
    ) -> ModuleDefinition:
        """*definition* re-expanded with an instance's parameter overrides."""
        if not overrides:
            return definition
        where = f"Module instance '{path}' ({definition.name})"
        if definition.template is None:
            raise ResolutionError(
                f"{where} sets parameters {sorted(overrides)} but the module declares none"
            )
        key = _binding_key(definition.name, {**definition.parameters, **overrides})
        bound = self._bound.get(key)
        if bound is not None:
            return bound

        try:
            bound = parse_definition(definition.name, definition.template, overrides)
        except ExpressionError as e:
            raise ResolutionError(f"{where}: {e}") from e
        for spec in bound.inputs:
            if spec.size < 1:
                raise ResolutionError(f"{where}: input '{spec.name}' has size {spec.size}")
        ids = [c.id for c in bound.components]
        duplicates = sorted({cid for cid in ids if ids.count(cid) > 1})
        if duplicates:
            raise ResolutionError(f"{where}: duplicate component ids {duplicates}")
        log.debug("Bound %s with %s", definition.name, bound.parameters)
        self._bound[key] = bound
        return bound

    # ── Expansion ──────────────────────────────────────────────────

    def _expand(
        self,
        definition: ModuleDefinition,
        path: str,
        bindings: dict[str, Binding],
        chain: tuple[str, ...],
    ) -> None:
        for comp in definition.components:
            if isinstance(comp, ModuleInstance):
                self._expand_instance(comp, definition, path, bindings, chain)
                continue

            inputs: dict[str, str] = {}
            for port, conn in comp.inputs.items():
                resolved = self._rewrite(conn, definition, path, bindings, chain)
                if isinstance(resolved, list):
                    raise ResolutionError(
                        f"Primitive '{qualify(path, comp.id)}' port '{port}': bus "
                        f"reference '{conn}' must select one element"
                    )
                inputs[port] = resolved
            pdef = self.diagram.primitive_definitions.get(comp.type)
            node = FlatPrimitive(
                qualify(path, comp.id), comp.type, comp.label, inputs, path,
                latency=pdef.latency if pdef is not None else 1,
            )
            log.debug("  %s (%s) <- %s", node.id, node.type, node.inputs)
            self.nodes.append(node)

    def _expand_instance(
        self,
        inst: ModuleInstance,
        parent: ModuleDefinition,
        path: str,
        bindings: dict[str, Binding],
        chain: tuple[str, ...],
    ) -> None:
        child_path = qualify(path, inst.id)
        child = self._bind(self._definition(inst.module_type, chain), inst.parameters, child_path)

        # Bindings are rewritten in the parent's context before descending.
        child_bindings: dict[str, Binding] = {}
        for spec in child.inputs:
            supplied = inst.inputs.get(spec.name)
            if supplied is None:
                raise ResolutionError(
                    f"Module instance '{child_path}' ({child.name}) has no "
                    f"connection for input '{spec.name}'"
                )
            if isinstance(supplied, list):
                bound: Binding = []
                for conn in supplied:
                    element = self._rewrite(conn, parent, path, bindings, chain)
                    if isinstance(element, list):
                        raise ResolutionError(
                            f"Module instance '{child_path}' input '{spec.name}': "
                            f"bus element '{conn}' must select one element"
                        )
                    bound.append(element)
            else:
                bound = self._rewrite(supplied, parent, path, bindings, chain)
            if spec.is_bus and (not isinstance(bound, list) or len(bound) != spec.size):
                raise ResolutionError(
                    f"Module instance '{child_path}' ({child.name}) input '{spec.name}' "
                    f"expects {spec.size} connections"
                )
            child_bindings[spec.name] = bound

        record = InstanceRecord(child_path, child.name)
        self.instances.append(record)
        start = len(self.nodes)
        self._expand(child, child_path, child_bindings, chain + (child.name,))
        record.members = [n.id for n in self.nodes[start:]]

    # ── Connection rewriting ───────────────────────────────────────

    def _rewrite(
        self,
        conn: str,
        definition: ModuleDefinition,
        path: str,
        bindings: dict[str, Binding],
        chain: tuple[str, ...],
    ) -> Binding:
        """Rewrite *conn* from *definition*'s scope into a flat connection.

        Returns a list only for an unindexed reference to a bus input.
        """
        ref = parse_connection(conn)
        if ref is None:
            raise ResolutionError(f"Malformed connection '{conn}' in module '{definition.name}'")

        if isinstance(ref, ModuleInputRef):
            if ref.name not in bindings:
                raise ResolutionError(
                    f"Unresolvable reference '{conn}' in module '{definition.name}' "
                    f"at '{path or '<root>'}': input '{ref.name}' is not bound"
                )
            bound = bindings[ref.name]
            if ref.index is None:
                return list(bound) if isinstance(bound, list) else bound
            if not isinstance(bound, list) or ref.index >= len(bound):
                raise ResolutionError(
                    f"Unresolvable reference '{conn}' in module '{definition.name}' "
                    f"at '{path or '<root>'}': no bus element {ref.index}"
                )
            return bound[ref.index]

        source = self._components(definition).get(ref.component_id)
        if source is None:
            raise ResolutionError(
                f"Unresolvable reference '{conn}' in module '{definition.name}': "
                f"no component '{ref.component_id}'"
            )
        if isinstance(source, ModuleInstance):
            return self._resolve_output(source, path, ref.port, chain)
        return str(ComponentRef(qualify(path, source.id), ref.port))

    def _resolve_output(
        self,
        inst: ModuleInstance,
        path: str,
        port: str,
        chain: tuple[str, ...],
    ) -> str:
        """Follow output mappings down through nested instances to a primitive."""
        while True:
            path = qualify(path, inst.id)
            definition = self._bind(self._definition(inst.module_type, chain), inst.parameters, path)
            chain = chain + (definition.name,)

            mapping = definition.output_mappings.get(port)
            ref = parse_connection(mapping) if mapping is not None else None
            if not isinstance(ref, ComponentRef):
                raise ResolutionError(
                    f"Module '{definition.name}' has no usable output mapping for '{port}'"
                )
            inner = self._components(definition).get(ref.component_id)
            if inner is None:
                raise ResolutionError(
                    f"Output mapping '{port}' of module '{definition.name}' refers to "
                    f"non-existent component '{ref.component_id}'"
                )
            if isinstance(inner, Primitive):
                return str(ComponentRef(qualify(path, inner.id), ref.port))
            inst, port = inner, ref.port


def _binding_key(name: str, parameters: dict[str, int]) -> tuple:
    return (name, tuple(sorted(parameters.items())))
