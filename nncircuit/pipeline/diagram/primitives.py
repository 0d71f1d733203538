"""User-declared primitive types (``primitiveDefinitions``).

Built-in types (input, output, add, mul, relu2, clamp, reg) are opaque to
the pipeline and need no declaration.  A diagram may declare further
primitive types with explicit ports and a latency; components of such a
type are checked against those ports and are placed ``latency`` cycles
after their latest input (built-in types use 1).
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PortSpec:
    name: str
    size: int = 1


@dataclass
class PrimitiveDefinition:
    type: str
    inputs: list[PortSpec]
    outputs: list[PortSpec]
    latency: int = 1

    @property
    def input_names(self) -> list[str]:
        return [p.name for p in self.inputs]

    @property
    def output_names(self) -> list[str]:
        return [p.name for p in self.outputs]


def parse_primitive_definitions(data: dict | None) -> dict[str, PrimitiveDefinition]:
    """Parse a validated ``primitiveDefinitions`` object."""
    if not data:
        return {}
    return {
        ptype: PrimitiveDefinition(
            type=ptype,
            inputs=[_parse_port(p) for p in d["inputs"]],
            outputs=[_parse_port(p) for p in d["outputs"]],
            latency=int(d.get("latency", 1)),
        )
        for ptype, d in data.items()
    }


def primitive_definition_to_dict(pdef: PrimitiveDefinition) -> dict:
    return {
        "is_primitive": True,
        "inputs": [_port_to_dict(p) for p in pdef.inputs],
        "outputs": [_port_to_dict(p) for p in pdef.outputs],
        "latency": pdef.latency,
    }


def _parse_port(data: dict) -> PortSpec:
    return PortSpec(name=data["name"], size=int(data.get("size", 1)))


def _port_to_dict(port: PortSpec) -> dict:
    return {"name": port.name, **({"size": port.size} if port.size != 1 else {})}
