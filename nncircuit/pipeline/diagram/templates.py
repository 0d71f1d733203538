"""Module templates — integer parameters and component loops.

A module definition may declare ``parameters`` (integer defaults that
each instance can override) and ``component_loops`` that stamp out
components once per iterator value::

    "parameters": {"N": 2},
    "inputs": [{"name": "x", "size": "${N}"}, {"name": "w", "size": "${N}"}],
    "component_loops": [{
        "iterator": "i",
        "range": [0, "${N - 1}"],
        "components": [
            {"id": "m${i}", "type": "mul", "inputs": {"a": "$.x[${i}]", "b": "$.w[${i}]"}}
        ]
    }]

:func:`expand_definition` binds the values and returns a plain
definition.  Placeholders are substituted everywhere (ids, connections,
sizes, instance parameters, output mappings), loops are unrolled after
the regular components, and range bounds are inclusive.
"""

from __future__ import annotations

from collections.abc import Mapping

from .expressions import ExpressionError, has_placeholder, substitute


TEMPLATE_KEYS = ("parameters", "component_loops")

# Keys whose substituted value is always text, even for "${i}".
_TEXT_KEYS = ("id", "label")


def is_template(definition: dict) -> bool:
    return any(key in definition for key in TEMPLATE_KEYS)


def parameter_values(definition: dict, overrides: Mapping[str, int] | None = None) -> dict[str, int]:
    """Defaults of *definition* updated with *overrides*.

    Raises ExpressionError when an override names an undeclared parameter.
    """
    defaults = definition.get("parameters")
    values = dict(defaults) if isinstance(defaults, dict) else {}
    for name, value in (overrides or {}).items():
        if name not in values:
            raise ExpressionError(f"no parameter '{name}' is declared")
        values[name] = value
    return values


def expand_definition(definition: dict, overrides: Mapping[str, int] | None = None) -> dict:
    """Bind parameters and unroll loops; the result has no placeholders.

    The bound values are kept under ``"parameters"``.  Raises
    ExpressionError for a bad placeholder, range or parameter name.
    """
    values = parameter_values(definition, overrides)
    expanded = {
        key: _substitute(value, values)
        for key, value in definition.items()
        if key not in TEMPLATE_KEYS and key != "components"
    }
    components = [_substitute(c, values) for c in definition.get("components") or []]
    for loop in definition.get("component_loops") or []:
        components.extend(unroll_loop(loop, values))
    expanded["components"] = components
    expanded["parameters"] = values
    return expanded


def bound_inputs(definition: dict, overrides: Mapping[str, int] | None = None) -> list:
    """Just the ``inputs`` array of *definition* with sizes evaluated."""
    return _substitute(definition.get("inputs") or [], parameter_values(definition, overrides))


def unroll_loop(loop: dict, values: Mapping[str, int]) -> list[dict]:
    iterator = loop["iterator"]
    start, end = (_range_bound(bound, values) for bound in loop["range"])
    components: list[dict] = []
    for i in range(start, end + 1):
        scope = {**values, iterator: i}
        components.extend(_substitute(c, scope) for c in loop["components"])
    return components


def _range_bound(bound: int | str, values: Mapping[str, int]) -> int:
    value = substitute(bound, values) if isinstance(bound, str) else bound
    if not isinstance(value, int):
        raise ExpressionError(f"loop range bound {bound!r} must evaluate to an integer")
    return value


def _substitute(value: object, values: Mapping[str, int]) -> object:
    if has_placeholder(value):
        return substitute(value, values)
    if isinstance(value, list):
        return [_substitute(v, values) for v in value]
    if isinstance(value, dict):
        return {
            key: str(_substitute(v, values)) if key in _TEXT_KEYS and isinstance(v, str)
            else _substitute(v, values)
            for key, v in value.items()
        }
    return value
