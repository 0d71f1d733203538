"""Diagram loader — reads a diagram description from a JSON file."""

from __future__ import annotations

import json
from pathlib import Path


class DiagramLoadError(Exception):
    """Raised when a diagram file cannot be read or is not valid JSON."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot load '{path}': {reason}")


def load_diagram_file(path: str | Path) -> list | dict:
    """Read and decode a diagram file.  The result is not yet validated."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise DiagramLoadError(path, e.strerror or str(e)) from e
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise DiagramLoadError(path, f"invalid JSON ({e})") from e
