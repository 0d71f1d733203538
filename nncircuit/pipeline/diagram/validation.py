"""Diagram validation — structural and cross-reference checks on raw JSON.

Works on the undecoded JSON value (``list`` or ``dict``) so that any
malformed description yields diagnostics instead of exceptions.  Template
definitions (``parameters``, ``component_loops``) are checked as
templates first and then expanded with their default parameter values,
so every later check sees concrete ids, connections and sizes.  Checks
run in dependency order; once a check fails, the checks that assume it
held are skipped for that scope, while sibling scopes keep being checked.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator

from .connections import (
    ComponentRef, ModuleInputRef, PATH_SEPARATOR, parse_connection,
)
from .expressions import ExpressionError, free_names, has_placeholder
from .models import INPUT_TYPE, MODULE_TYPE
from .templates import bound_inputs, expand_definition, is_template


log = logging.getLogger("nncircuit.diagram.validation")


@dataclass
class ValidationResult:
    """Outcome of :func:`validate_diagram`.  Unpacks as ``(ok, diagnostics)``."""

    diagnostics: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.diagnostics

    def __iter__(self) -> Iterator:
        return iter((self.ok, list(self.diagnostics)))


@dataclass
class _Scope:
    """One component array together with what its references may resolve to."""

    where: str
    module_inputs: dict[str, int] | None     # None = flat diagram, no "$." allowed
    siblings: dict[str, dict]
    definitions: dict
    primitive_defs: dict


def validate_diagram(data: object) -> ValidationResult:
    """Validate a diagram description.  Never raises for JSON-like input."""
    errors: list[str] = []

    if isinstance(data, list):
        _check_flat(data, errors)
    elif isinstance(data, dict):
        _check_hierarchical(data, errors)
    else:
        errors.append(
            "Diagram must be an array of components or an object with "
            "'entryPointModule' and 'moduleDefinitions'"
        )

    if errors:
        log.warning("Diagram rejected: %d problem(s), first: %s", len(errors), errors[0])
    else:
        log.debug("Diagram is valid")
    return ValidationResult(errors)


# ── Root shapes ────────────────────────────────────────────────────


def _check_flat(components: list, errors: list[str]) -> None:
    where = "Diagram"
    before = len(errors)
    siblings = _check_component_shapes(where, components, errors, nested=False)
    if len(errors) > before:
        return
    scope = _Scope(where, None, siblings, {}, {})
    for comp in siblings.values():
        _check_component(scope, comp, errors)


def _check_hierarchical(data: dict, errors: list[str]) -> None:
    if "entryPointModule" not in data or "moduleDefinitions" not in data:
        errors.append(
            "Diagram object must have 'entryPointModule' and 'moduleDefinitions' keys"
        )
        return

    entry = data["entryPointModule"]
    if not isinstance(entry, str) or not entry:
        errors.append("'entryPointModule' must be a non-empty string")
        return

    definitions = data["moduleDefinitions"]
    if not isinstance(definitions, dict):
        errors.append("'moduleDefinitions' must be an object")
        return
    if entry not in definitions:
        errors.append(f"entryPointModule '{entry}' is not defined in moduleDefinitions")
        return

    # ── Optional primitive definitions ──
    primitive_defs = data.get("primitiveDefinitions")
    if primitive_defs is None:
        primitive_defs = {}
    elif not isinstance(primitive_defs, dict):
        errors.append("'primitiveDefinitions' must be an object when present")
        return
    else:
        for ptype, pdef in primitive_defs.items():
            _check_primitive_definition(ptype, pdef, errors)
        if errors:
            return

    for name, definition in definitions.items():
        _check_definition(name, definition, definitions, primitive_defs, errors)


def _check_primitive_definition(ptype: str, pdef: object, errors: list[str]) -> None:
    where = f"Primitive definition '{ptype}'"
    if ptype == MODULE_TYPE:
        errors.append(f"{where}: type name 'module' is reserved for module instances")
        return
    if not isinstance(pdef, dict):
        errors.append(f"{where}: must be an object")
        return
    if pdef.get("is_primitive") is not True:
        errors.append(f"{where}: 'is_primitive' must be true")

    for key in ("inputs", "outputs"):
        ports = pdef.get(key)
        if not isinstance(ports, list):
            errors.append(f"{where}: '{key}' must be an array")
            continue
        for port in ports:
            if not isinstance(port, dict) or not isinstance(port.get("name"), str) or not port["name"]:
                errors.append(f"{where}: {key} entry {port!r} must be an object with a non-empty 'name'")
            elif "size" in port and _positive_int(port["size"]) is None:
                errors.append(
                    f"{where}: port '{port['name']}' has invalid size {port['size']!r}; "
                    f"must be a positive integer"
                )

    if "latency" in pdef:
        latency = pdef["latency"]
        if isinstance(latency, bool) or not isinstance(latency, int) or latency < 0:
            errors.append(f"{where}: 'latency' must be a non-negative integer")


# ── Module definitions ─────────────────────────────────────────────


def _check_definition(
    name: str,
    definition: object,
    definitions: dict,
    primitive_defs: dict,
    errors: list[str],
) -> None:
    where = f"Module '{name}'"
    if not isinstance(definition, dict):
        errors.append(f"{where}: definition must be an object")
        return

    before = len(errors)
    for key, kind, noun in (
        ("inputs", list, "an array"),
        ("outputs", list, "an array"),
        ("components", list, "an array"),
        ("outputMappings", dict, "an object"),
    ):
        value = definition.get(key)
        if key == "components" and value is None and "component_loops" in definition:
            continue
        if not isinstance(value, kind):
            errors.append(f"{where}: '{key}' must be {noun}")
    if len(errors) > before:
        return

    _check_template(where, definition, errors)
    if len(errors) > before:
        return
    if is_template(definition):
        try:
            definition = expand_definition(definition)
        except ExpressionError as e:
            errors.append(f"{where}: cannot expand with default parameters: {e}")
            return

    input_sizes = _check_input_specs(where, definition["inputs"], errors)
    output_names = _check_output_names(where, definition["outputs"], errors)
    siblings = _check_component_shapes(where, definition["components"], errors)
    if len(errors) > before:
        return

    scope = _Scope(where, input_sizes, siblings, definitions, primitive_defs)

    # ── Output mappings ──
    for port, conn in definition["outputMappings"].items():
        if port not in output_names:
            errors.append(f"{where}: output mapping '{port}' is not a declared output")
            continue
        ref = parse_connection(conn) if isinstance(conn, str) else None
        if not isinstance(ref, ComponentRef):
            errors.append(
                f"{where}: output mapping '{port}' -> {conn!r} must be "
                f"'componentId.portName' naming an internal component"
            )
            continue
        _check_source(scope, ref, conn, f"output mapping '{port}'", errors)

    # ── Components ──
    for comp in siblings.values():
        _check_component(scope, comp, errors)


def _check_input_specs(where: str, specs: list, errors: list[str]) -> dict[str, int]:
    """Return ``{input_name: size}`` for the well-formed specs."""
    sizes: dict[str, int] = {}
    for spec in specs:
        if isinstance(spec, str):
            if not spec:
                errors.append(f"{where}: input names must be non-empty strings")
                continue
            name, size = spec, 1
        elif isinstance(spec, dict) and isinstance(spec.get("name"), str) and spec["name"]:
            name = spec["name"]
            size = _positive_int(spec.get("size", 1))
            if size is None:
                errors.append(
                    f"{where}: input '{name}' has invalid size {spec.get('size')!r}; "
                    f"must be a positive integer"
                )
                continue
        else:
            errors.append(
                f"{where}: invalid input definition {spec!r}; expected a non-empty "
                f"string or an object {{name, size?}}"
            )
            continue
        if name in sizes:
            errors.append(f"{where}: duplicate input '{name}'")
            continue
        sizes[name] = size
    return sizes


def _check_output_names(where: str, outputs: list, errors: list[str]) -> list[str]:
    names: list[str] = []
    for out in outputs:
        if not isinstance(out, str) or not out:
            errors.append(f"{where}: invalid output name {out!r}; must be a non-empty string")
        elif out in names:
            errors.append(f"{where}: duplicate output '{out}'")
        else:
            names.append(out)
    return names


def _check_component_shapes(
    where: str, components: list, errors: list[str], *, nested: bool = True,
) -> dict[str, dict]:
    """Check id/type of every component and id uniqueness within the scope.

    Inside module definitions ids may not contain the path separator,
    which flattening uses to prefix instance paths.
    """
    reserved = (".", PATH_SEPARATOR) if nested else (".",)
    by_id: dict[str, dict] = {}
    for i, comp in enumerate(components):
        if not isinstance(comp, dict):
            errors.append(f"{where}: component #{i} must be an object")
            continue
        cid = comp.get("id")
        if not isinstance(cid, str) or not cid:
            errors.append(f"{where}: component #{i} is missing a valid 'id'")
            continue
        if any(ch in cid for ch in reserved):
            errors.append(
                f"{where}: component id '{cid}' must not contain "
                f"{' or '.join(repr(ch) for ch in reserved)}"
            )
            continue
        ctype = comp.get("type")
        if not isinstance(ctype, str) or not ctype:
            errors.append(f"{where}: component '{cid}' is missing a valid 'type'")
            continue
        if cid in by_id:
            errors.append(f"{where}: duplicate component id '{cid}'")
            continue
        by_id[cid] = comp
    return by_id


# ── Templates ──────────────────────────────────────────────────────


def _check_template(where: str, definition: dict, errors: list[str]) -> None:
    """Parameters, component loops and every ``${...}`` placeholder.

    Placeholders may only name declared parameters, plus the iterator
    inside a loop's own components.
    """
    params = definition.get("parameters", {})
    names: set[str] = set()
    if not isinstance(params, dict):
        errors.append(f"{where}: 'parameters' must be an object")
    else:
        for pname, value in params.items():
            if not isinstance(pname, str) or not pname.isidentifier():
                errors.append(f"{where}: parameter name {pname!r} must be an identifier")
            elif isinstance(value, bool) or not isinstance(value, int):
                errors.append(f"{where}: parameter '{pname}' default {value!r} must be an integer")
            else:
                names.add(pname)

    for key in ("inputs", "components", "outputMappings"):
        _check_placeholders(where, definition.get(key), names, errors)

    loops = definition.get("component_loops")
    if loops is None:
        return
    if not isinstance(loops, list):
        errors.append(f"{where}: 'component_loops' must be an array")
        return
    for i, loop in enumerate(loops):
        _check_loop(where, f"component loop #{i}", loop, names, errors)


def _check_loop(where: str, context: str, loop: object, names: set[str], errors: list[str]) -> None:
    if not isinstance(loop, dict):
        errors.append(f"{where}: {context} must be an object")
        return
    iterator = loop.get("iterator")
    if not isinstance(iterator, str) or not iterator.isidentifier():
        errors.append(f"{where}: {context} needs an 'iterator' that is an identifier")
        return
    if iterator in names:
        errors.append(f"{where}: {context} iterator '{iterator}' shadows a parameter")
        return

    bounds = loop.get("range")
    if not isinstance(bounds, list) or len(bounds) != 2:
        errors.append(f"{where}: {context} 'range' must be an array [start, end]")
    else:
        for bound in bounds:
            if has_placeholder(bound):
                _check_placeholders(where, bound, names, errors)
            elif isinstance(bound, bool) or not isinstance(bound, int):
                errors.append(
                    f"{where}: {context} range bound {bound!r} must be an integer "
                    f"or a '${{...}}' expression"
                )

    components = loop.get("components")
    if not isinstance(components, list) or not components:
        errors.append(f"{where}: {context} 'components' must be a non-empty array")
    else:
        _check_placeholders(where, components, names | {iterator}, errors)


def _check_placeholders(where: str, value: object, names: set[str], errors: list[str]) -> None:
    if isinstance(value, list):
        for item in value:
            _check_placeholders(where, item, names, errors)
    elif isinstance(value, dict):
        for item in value.values():
            _check_placeholders(where, item, names, errors)
    elif has_placeholder(value):
        try:
            unknown = sorted(free_names(value) - names)
        except ExpressionError as e:
            errors.append(f"{where}: {e}")
            return
        if unknown:
            errors.append(
                f"{where}: '{value}' uses unknown name(s) {', '.join(unknown)}; "
                f"declare them under 'parameters'"
            )


# ── Components ─────────────────────────────────────────────────────


def _check_component(scope: _Scope, comp: dict, errors: list[str]) -> None:
    cid, ctype = comp["id"], comp["type"]
    if ctype == MODULE_TYPE:
        _check_instance(scope, comp, errors)
        return

    if "inputs" not in comp or (ctype == INPUT_TYPE and comp["inputs"] is None):
        return
    inputs = comp["inputs"]
    if not isinstance(inputs, dict):
        errors.append(
            f"{scope.where}: primitive '{cid}' ({ctype}) has invalid 'inputs' "
            f"{inputs!r}; expected an object"
        )
        return
    if ctype == INPUT_TYPE:
        if inputs:
            errors.append(f"{scope.where}: input primitive '{cid}' must not have inputs")
        return

    pdef = scope.primitive_defs.get(ctype)
    declared = [p["name"] for p in pdef["inputs"]] if pdef else None
    for port, conn in inputs.items():
        context = f"primitive '{cid}' port '{port}'"
        if declared is not None and port not in declared:
            errors.append(f"{scope.where}: {context} is not an input of primitive type '{ctype}'")
            continue
        if not isinstance(conn, str):
            errors.append(f"{scope.where}: {context} connection {conn!r} must be a string")
            continue
        ref = parse_connection(conn)
        if ref is None:
            errors.append(
                f"{scope.where}: {context} has malformed connection '{conn}'; "
                f"expected 'componentId.portName' or '$.inputName'"
            )
        elif isinstance(ref, ModuleInputRef):
            _check_module_input(scope, ref, conn, context, errors)
        else:
            _check_source(scope, ref, conn, context, errors)


def _check_instance(scope: _Scope, comp: dict, errors: list[str]) -> None:
    cid, where = comp["id"], scope.where
    if scope.module_inputs is None:
        errors.append(
            f"{where}: module instance '{cid}' needs a diagram with 'moduleDefinitions'"
        )
        return

    module_type = comp.get("moduleType")
    if not isinstance(module_type, str) or not module_type:
        errors.append(f"{where}: module instance '{cid}' is missing 'moduleType'")
        return
    target = scope.definitions.get(module_type)
    if target is None:
        errors.append(f"{where}: module instance '{cid}' references undefined moduleType '{module_type}'")
        return
    inputs = comp.get("inputs")
    if not isinstance(inputs, dict):
        errors.append(f"{where}: module instance '{cid}' must have an 'inputs' object")
        return
    if not isinstance(target, dict) or not isinstance(target.get("inputs"), list):
        return  # reported with the target definition itself

    overrides = comp.get("parameters", {})
    if not isinstance(overrides, dict) or any(
        isinstance(v, bool) or not isinstance(v, int) for v in overrides.values()
    ):
        errors.append(f"{where}: module instance '{cid}' 'parameters' must map names to integers")
        return
    target_inputs = target["inputs"]
    if overrides or is_template(target):
        # Bus sizes may depend on the instance's parameter values
        try:
            target_inputs = bound_inputs(target, overrides)
        except ExpressionError as e:
            errors.append(f"{where}: module instance '{cid}' ({module_type}): {e}")
            return

    for spec in target_inputs:
        name, size = _spec_name_size(spec)
        if name is None:
            continue  # reported with the target definition itself
        context = f"module instance '{cid}' ({module_type}) input '{name}'"
        if name not in inputs:
            errors.append(f"{where}: {context} is missing")
            continue
        supplied = inputs[name]
        if size > 1:
            if not isinstance(supplied, list) or len(supplied) != size:
                errors.append(
                    f"{where}: {context} expects an array of {size} connections, got {supplied!r}"
                )
                continue
            for i, conn in enumerate(supplied):
                _check_instance_connection(scope, conn, f"{context}[{i}]", errors)
        else:
            _check_instance_connection(scope, supplied, context, errors)


def _check_instance_connection(scope: _Scope, conn: object, context: str, errors: list[str]) -> None:
    ref = parse_connection(conn) if isinstance(conn, str) else None
    if not isinstance(ref, ComponentRef):
        errors.append(f"{scope.where}: {context} connection {conn!r} must be 'componentId.portName'")
        return
    _check_source(scope, ref, conn, context, errors)


# ── References ─────────────────────────────────────────────────────


def _check_source(scope: _Scope, ref: ComponentRef, conn: str, context: str, errors: list[str]) -> None:
    """A component-qualified reference must name a sibling (and a real output)."""
    source = scope.siblings.get(ref.component_id)
    if source is None:
        errors.append(
            f"{scope.where}: {context} references non-existent component "
            f"'{ref.component_id}' via '{conn}'"
        )
        return

    if source["type"] == MODULE_TYPE:
        module_type = source.get("moduleType")
        target = scope.definitions.get(module_type) if isinstance(module_type, str) else None
        outputs = target.get("outputs") if isinstance(target, dict) else None
        if isinstance(outputs, list) and ref.port not in outputs:
            errors.append(
                f"{scope.where}: {context} references unknown output '{ref.port}' of "
                f"module instance '{ref.component_id}' ({module_type})"
            )
        return

    pdef = scope.primitive_defs.get(source["type"])
    if pdef is not None and ref.port not in [p["name"] for p in pdef["outputs"]]:
        errors.append(
            f"{scope.where}: {context} references unknown output '{ref.port}' of "
            f"primitive '{ref.component_id}' ({source['type']})"
        )


def _check_module_input(
    scope: _Scope, ref: ModuleInputRef, conn: str, context: str, errors: list[str],
) -> None:
    where = scope.where
    if scope.module_inputs is None:
        errors.append(f"{where}: {context} uses '{conn}' outside a module definition")
        return
    size = scope.module_inputs.get(ref.name)
    if size is None:
        errors.append(f"{where}: {context} references non-existent module input '{ref.name}' via '{conn}'")
    elif ref.index is None and size > 1:
        errors.append(
            f"{where}: {context} uses bus input '{ref.name}' (size {size}) as a scalar "
            f"via '{conn}'; index it like '$.{ref.name}[0]'"
        )
    elif ref.index is not None and size == 1:
        errors.append(f"{where}: {context} indexes scalar module input '{ref.name}' via '{conn}'")
    elif ref.index is not None and ref.index >= size:
        errors.append(
            f"{where}: {context} index {ref.index} out of range for module input "
            f"'{ref.name}' (0–{size - 1}) via '{conn}'"
        )


# ── Helpers ────────────────────────────────────────────────────────


def _positive_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, int) and value >= 1:
        return value
    return None


def _spec_name_size(spec: object) -> tuple[str | None, int]:
    if isinstance(spec, str):
        return (spec or None, 1)
    if isinstance(spec, dict) and isinstance(spec.get("name"), str) and spec["name"]:
        size = _positive_int(spec.get("size", 1))
        return (spec["name"], size) if size is not None else (None, 1)
    return (None, 1)
