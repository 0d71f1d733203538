"""Connection grammar — parsing and qualifying port references.

Two textual forms exist:

  ``sourceId.portName``        output port of a sibling component
  ``$.inputName[index]``       input of the enclosing module definition
                               (the ``[index]`` suffix only for buses)

Flattened ids are joined with ``/`` so they never contain a ``.``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass


MODULE_INPUT_PREFIX = "$."
PATH_SEPARATOR = "/"

_MODULE_INPUT_RE = re.compile(r"\$\.([A-Za-z0-9_]+)(?:\[(\d+)\])?")


@dataclass(frozen=True)
class ComponentRef:
    component_id: str
    port: str

    def __str__(self) -> str:
        return f"{self.component_id}.{self.port}"


@dataclass(frozen=True)
class ModuleInputRef:
    name: str
    index: int | None = None

    def __str__(self) -> str:
        if self.index is None:
            return f"{MODULE_INPUT_PREFIX}{self.name}"
        return f"{MODULE_INPUT_PREFIX}{self.name}[{self.index}]"


def parse_connection(text: str) -> ComponentRef | ModuleInputRef | None:
    """Parse a connection string.  Returns None when it is malformed."""
    if not isinstance(text, str):
        return None
    if text.startswith(MODULE_INPUT_PREFIX):
        match = _MODULE_INPUT_RE.fullmatch(text)
        if match is None:
            return None
        index = match.group(2)
        return ModuleInputRef(match.group(1), int(index) if index is not None else None)
    component_id, dot, port = text.partition(".")
    if not dot or not component_id or not port:
        return None
    return ComponentRef(component_id, port)


def qualify(path: str, local_id: str) -> str:
    """Prefix *local_id* with an instantiation path (empty path = root)."""
    return f"{path}{PATH_SEPARATOR}{local_id}" if path else local_id
