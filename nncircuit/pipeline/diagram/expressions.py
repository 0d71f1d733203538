"""Parameter expressions — ``${...}`` placeholders in module templates.

A placeholder holds integer arithmetic over module parameters and loop
iterators::

    "n${i}"            ->  "n2"          (embedded: text substitution)
    "${N - 1}"         ->  3             (whole string: an integer)
    "$.x[${i + 1}]"    ->  "$.x[3]"

Allowed syntax is a small whitelist checked on the parsed ``ast``:
integer literals, names, ``+ - * / // %``, unary ``+``/``-``,
parentheses, and calls to ``min``, ``max``, ``abs``, ``floor``,
``ceil`` and ``round``.  Arithmetic is exact (``Fraction``), so ``N/2``
is fine when N is even; a result that is not a whole number is an error.
Nothing is ever passed to ``eval``.
"""

from __future__ import annotations

import ast
import math
import re
from collections.abc import Mapping
from fractions import Fraction


PLACEHOLDER = re.compile(r"\$\{([^}]*)\}")

_BINARY = {
    ast.Add: lambda a, b: a + b,
    ast.Sub: lambda a, b: a - b,
    ast.Mult: lambda a, b: a * b,
    ast.Div: lambda a, b: a / b,
    ast.FloorDiv: lambda a, b: a // b,
    ast.Mod: lambda a, b: a % b,
}

_FUNCTIONS = {
    "min": min,
    "max": max,
    "abs": abs,
    "floor": lambda v: Fraction(math.floor(v)),
    "ceil": lambda v: Fraction(math.ceil(v)),
    "round": lambda v: Fraction(round(v)),
}


class ExpressionError(ValueError):
    """A placeholder is malformed, names an unknown value, or is not an integer."""


def has_placeholder(text: object) -> bool:
    return isinstance(text, str) and "${" in text


def free_names(text: str) -> set[str]:
    """Names referenced by the placeholders in *text*.

    Raises ExpressionError for a placeholder outside the allowed syntax.
    """
    names: set[str] = set()
    for expr in _placeholders(text):
        for node in ast.walk(_parse(expr)):
            if isinstance(node, ast.Name) and node.id not in _FUNCTIONS:
                names.add(node.id)
    return names


def evaluate(expr: str, values: Mapping[str, int]) -> int:
    """Evaluate a single expression (without the ``${}``) to an integer."""
    result = _eval(_parse(expr).body, values, expr)
    if result.denominator != 1:
        raise ExpressionError(f"Expression '{expr}' is not a whole number ({result})")
    return int(result)


def substitute(text: str, values: Mapping[str, int]) -> str | int:
    """Replace every placeholder in *text*.

    A string that is exactly one placeholder yields an ``int``; anything
    else yields the substituted string.
    """
    _placeholders(text)
    whole = PLACEHOLDER.fullmatch(text)
    if whole:
        return evaluate(whole.group(1), values)
    return PLACEHOLDER.sub(lambda m: str(evaluate(m.group(1), values)), text)


# ── Internals ──────────────────────────────────────────────────────


def _placeholders(text: str) -> list[str]:
    """The expressions inside *text*; an unterminated ``${`` is an error."""
    exprs = PLACEHOLDER.findall(text)
    if text.count("${") != len(exprs):
        raise ExpressionError(f"Unterminated placeholder in '{text}'")
    return exprs


def _parse(expr: str) -> ast.Expression:
    try:
        tree = ast.parse(expr.strip(), mode="eval")
    except SyntaxError:
        raise ExpressionError(f"Malformed expression '{expr}'") from None
    for node in ast.walk(tree):
        if isinstance(node, (ast.Expression, ast.Name, ast.Load, ast.UnaryOp,
                             ast.UAdd, ast.USub, ast.BinOp)):
            continue
        if isinstance(node, tuple(_BINARY)):
            continue
        if isinstance(node, ast.Constant) and type(node.value) is int:
            continue
        if (isinstance(node, ast.Call) and isinstance(node.func, ast.Name)
                and node.func.id in _FUNCTIONS and not node.keywords and node.args):
            continue
        raise ExpressionError(
            f"Unsupported syntax in expression '{expr}': {type(node).__name__}"
        )
    return tree


def _eval(node: ast.AST, values: Mapping[str, int], expr: str) -> Fraction:
    if isinstance(node, ast.Constant):
        return Fraction(node.value)
    if isinstance(node, ast.Name):
        if node.id not in values:
            raise ExpressionError(f"Unknown name '{node.id}' in expression '{expr}'")
        return Fraction(values[node.id])
    if isinstance(node, ast.UnaryOp):
        operand = _eval(node.operand, values, expr)
        return -operand if isinstance(node.op, ast.USub) else operand
    if isinstance(node, ast.BinOp):
        left = _eval(node.left, values, expr)
        right = _eval(node.right, values, expr)
        if right == 0 and isinstance(node.op, (ast.Div, ast.FloorDiv, ast.Mod)):
            raise ExpressionError(f"Division by zero in expression '{expr}'")
        return Fraction(_BINARY[type(node.op)](left, right))
    # Only whitelisted calls survive _parse
    args = [_eval(arg, values, expr) for arg in node.args]
    func = _FUNCTIONS[node.func.id]
    if node.func.id in ("min", "max"):
        return func(args)
    if len(args) != 1:
        raise ExpressionError(f"{node.func.id}() takes one argument in expression '{expr}'")
    return Fraction(func(args[0]))
