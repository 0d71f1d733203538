"""Flat graph serialization — JSON conversion."""

from __future__ import annotations

from .models import FlatGraph, FlatPrimitive, InstanceRecord


def flat_graph_to_list(graph: FlatGraph) -> list[dict]:
    """Serialize a FlatGraph in the flat-array diagram shape.

    The result is itself a valid flat diagram description.  That shape
    has no room for primitive definitions, so latencies are not kept.
    """
    return [
        {
            "id": n.id,
            "type": n.type,
            **({"label": n.label} if n.label != n.type else {}),
            **({"inputs": dict(n.inputs)} if n.inputs else {}),
        }
        for n in graph.nodes
    ]


def flat_graph_to_dict(graph: FlatGraph) -> dict:
    """Serialize a FlatGraph including scopes, latencies and instance records."""
    extras = {
        n.id: {
            **({"scope": n.scope} if n.scope else {}),
            **({"latency": n.latency} if n.latency != 1 else {}),
        }
        for n in graph.nodes
    }
    return {
        "nodes": [{**entry, **extras[entry["id"]]} for entry in flat_graph_to_list(graph)],
        "instances": [
            {"path": r.path, "moduleType": r.module_type, "members": list(r.members)}
            for r in graph.instances
        ],
    }


def parse_flat_graph(data: dict) -> FlatGraph:
    """Parse a ``flat_graph_to_dict`` value back into a FlatGraph."""
    nodes = [
        FlatPrimitive(
            id=n["id"],
            type=n["type"],
            label=n.get("label", n["type"]),
            inputs=dict(n.get("inputs", {})),
            scope=n.get("scope", ""),
            latency=int(n.get("latency", 1)),
        )
        for n in data["nodes"]
    ]
    instances = [
        InstanceRecord(path=r["path"], module_type=r["moduleType"], members=list(r["members"]))
        for r in data.get("instances", [])
    ]
    return FlatGraph(nodes=nodes, instances=instances)
