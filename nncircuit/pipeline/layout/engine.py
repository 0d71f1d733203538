"""Layout engine — clock-cycle columns and rows for a flat primitive graph.

Pass 1 (cycles):  inputs sit at cycle 0; every other primitive sits its
                  latency (one cycle unless its primitive definition
                  says otherwise) after its latest predecessor.
Pass 2 (rows):    inputs take rows 0, 1, 2, ... in flat order; every other
                  primitive takes the mean row of its predecessors.

Both passes are fixed-point sweeps over the flat order, so forward
references resolve on a later sweep without recursion.  When a sweep
stalls, the graph contains a loop.  Loops through a ``reg`` primitive
are broken by ignoring the register's outgoing edge inside the loop
(a *feedback edge*); a loop without any register is a combinational
cycle and cannot be laid out.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable

from nncircuit.pipeline.diagram.connections import ComponentRef, parse_connection
from nncircuit.pipeline.diagram.models import INPUT_TYPE, OUTPUT_TYPE, REG_TYPE
from nncircuit.pipeline.flatten.models import FlatPrimitive

from .models import DEFAULT_OUTPUT_OFFSET, Layout, LayoutError, Position


log = logging.getLogger("nncircuit.layout")

Edge = tuple[str, str]      # (source id, consumer id)


def compute_layout(
    graph: Iterable[FlatPrimitive],
    *,
    output_offset: int = DEFAULT_OUTPUT_OFFSET,
) -> Layout:
    """Assign every primitive a (cycle, row) position.

    Parameters
    ----------
    graph : FlatGraph or iterable of FlatPrimitive
        The flattened graph, in flat declaration order.
    output_offset : int
        Extra cycles added to ``output`` primitives after pass 1.

    Returns
    -------
    Layout
        Positions keyed by primitive id, in flat order.

    Raises
    ------
    LayoutError
        On duplicate ids, unresolved references, or a combinational cycle.
    ValueError
        If *output_offset* is negative.
    """
    if output_offset < 0:
        raise ValueError(f"output_offset must not be negative, got {output_offset}")
    nodes = list(graph)
    by_id: dict[str, FlatPrimitive] = {}
    for node in nodes:
        if node.id in by_id:
            raise LayoutError(node.id, "duplicate primitive id")
        by_id[node.id] = node

    preds = {node.id: _predecessors(node, by_id) for node in nodes}

    # ── Pass 1: cycles ──
    cycles, feedback = _assign_cycles(nodes, preds)
    if output_offset:
        for node in nodes:
            if node.type == OUTPUT_TYPE:
                cycles[node.id] += output_offset

    # ── Pass 2: rows ──
    rows = _assign_rows(nodes, preds, feedback)

    order = {n.id: i for i, n in enumerate(nodes)}
    layout = Layout(
        positions={n.id: Position(cycle=cycles[n.id], row=rows[n.id]) for n in nodes},
        feedback_edges=sorted(feedback, key=lambda e: (order[e[1]], order[e[0]])),
    )
    log.info(
        "Laid out %d primitives over %d cycles (%d feedback edges)",
        len(nodes), layout.max_cycle + 1 if nodes else 0, len(layout.feedback_edges),
    )
    return layout


def _predecessors(node: FlatPrimitive, by_id: dict[str, FlatPrimitive]) -> list[str]:
    """Source ids of *node*'s input ports, in port order."""
    sources: list[str] = []
    for port, conn in node.inputs.items():
        ref = parse_connection(conn)
        if not isinstance(ref, ComponentRef):
            raise LayoutError(node.id, f"port '{port}' has unflattened connection '{conn}'")
        if ref.component_id not in by_id:
            raise LayoutError(node.id, f"port '{port}' references unknown primitive '{ref.component_id}'")
        sources.append(ref.component_id)
    return sources


# ── Pass 1 ─────────────────────────────────────────────────────────


def _assign_cycles(
    nodes: list[FlatPrimitive], preds: dict[str, list[str]],
) -> tuple[dict[str, int], set[Edge]]:
    order = {n.id: i for i, n in enumerate(nodes)}
    cycles: dict[str, int] = {}
    feedback: set[Edge] = set()

    def sweep(pending: list[FlatPrimitive]) -> list[FlatPrimitive]:
        remaining = []
        for node in pending:
            if node.type == INPUT_TYPE:
                cycles[node.id] = 0
                continue
            sources = [s for s in preds[node.id] if (s, node.id) not in feedback]
            if any(s not in cycles for s in sources):
                remaining.append(node)
                continue
            cycles[node.id] = max(cycles[s] for s in sources) + node.latency if sources else 0
        return remaining

    pending = list(nodes)
    # Every iteration resolves at least one primitive or raises.
    for _ in range(len(nodes)):
        if not pending:
            break
        remaining = sweep(pending)
        while len(remaining) == len(pending):
            broken = _register_loop_edges(remaining, preds, feedback, order)
            if not broken:
                _raise_combinational(remaining, preds, feedback)
            log.debug("Breaking register feedback edges: %s", sorted(broken))
            feedback |= broken
            remaining = sweep(remaining)
        pending = remaining

    if pending:
        _raise_combinational(pending, preds, feedback)
    return cycles, feedback


def _successors(
    pending: list[FlatPrimitive], preds: dict[str, list[str]], feedback: set[Edge],
) -> dict[str, list[str]]:
    """Edges among the unresolved primitives that are still in play."""
    ids = {n.id for n in pending}
    succ: dict[str, list[str]] = {n.id: [] for n in pending}
    for node in pending:
        for s in preds[node.id]:
            if s in ids and (s, node.id) not in feedback and node.id not in succ[s]:
                succ[s].append(node.id)
    return succ


def _reaches(succ: dict[str, list[str]], start: str, target: str) -> bool:
    seen = {start}
    stack = [start]
    while stack:
        cur = stack.pop()
        if cur == target:
            return True
        for nxt in succ[cur]:
            if nxt not in seen:
                seen.add(nxt)
                stack.append(nxt)
    return False


def _register_loop_edges(
    pending: list[FlatPrimitive],
    preds: dict[str, list[str]],
    feedback: set[Edge],
    order: dict[str, int],
) -> set[Edge]:
    """Outgoing ``reg`` edges to break so that some loop opens up.

    Edges that point back to an earlier (or the same) primitive in flat
    order are broken first; otherwise only the loop edges of the first
    register are.  An empty set means no loop runs through a register.
    """
    succ = _successors(pending, preds, feedback)
    on_loop = [
        (n.id, consumer)
        for n in pending if n.type == REG_TYPE
        for consumer in succ[n.id]
        if _reaches(succ, consumer, n.id)
    ]
    back = {(reg, consumer) for reg, consumer in on_loop if order[consumer] <= order[reg]}
    if back or not on_loop:
        return back
    first = on_loop[0][0]
    return {edge for edge in on_loop if edge[0] == first}


def _raise_combinational(
    pending: list[FlatPrimitive], preds: dict[str, list[str]], feedback: set[Edge],
) -> None:
    succ = _successors(pending, preds, feedback)
    on_loop = [
        n.id for n in pending
        if any(_reaches(succ, nxt, n.id) for nxt in succ[n.id])
    ] or [n.id for n in pending]
    raise LayoutError(
        on_loop[0],
        f"combinational cycle through {', '.join(on_loop)} has no '{REG_TYPE}' stage",
        on_loop,
    )


# ── Pass 2 ─────────────────────────────────────────────────────────


def _assign_rows(
    nodes: list[FlatPrimitive], preds: dict[str, list[str]], feedback: set[Edge],
) -> dict[str, float]:
    rows: dict[str, float] = {}
    next_row = 0
    for node in nodes:
        if node.type == INPUT_TYPE:
            rows[node.id] = float(next_row)
            next_row += 1

    pending = [n for n in nodes if n.type != INPUT_TYPE]
    for _ in range(len(nodes)):
        if not pending:
            break
        remaining = []
        for node in pending:
            sources = [s for s in preds[node.id] if (s, node.id) not in feedback]
            if any(s not in rows for s in sources):
                remaining.append(node)
                continue
            # fsum keeps the mean independent of port order
            rows[node.id] = math.fsum(rows[s] for s in sources) / len(sources) if sources else 0.0
        if len(remaining) == len(pending):
            _raise_combinational(remaining, preds, feedback)
        pending = remaining

    if pending:
        _raise_combinational(pending, preds, feedback)
    return rows
