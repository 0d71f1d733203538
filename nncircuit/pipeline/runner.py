"""
Pipeline orchestrator — runs validate → flatten → layout on raw JSON.

This is the single entry point the command line calls.  It:

1. Validates the diagram description and stops on any diagnostic
2. Parses it into the diagram model
3. Flattens module instances into a primitive graph
4. Assigns every primitive a cycle and a row
5. Returns every intermediate artifact plus a short stage log
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from nncircuit.pipeline.diagram import ValidationResult, parse_diagram, validate_diagram
from nncircuit.pipeline.flatten import FlatGraph, FlattenError, flatten_diagram
from nncircuit.pipeline.layout import DEFAULT_OUTPUT_OFFSET, Layout, LayoutError, compute_layout

log = logging.getLogger("nncircuit.pipeline")


@dataclass
class PipelineResult:
    """Full result of one pipeline run."""

    success: bool
    message: str
    validation: ValidationResult | None = None
    graph: FlatGraph | None = None
    layout: Layout | None = None
    stages: list[str] = field(default_factory=list)


def run_pipeline(
    data: object,
    *,
    output_offset: int | None = None,
    stop_after: str = "layout",
) -> PipelineResult:
    """Run the pipeline on a JSON-compatible diagram value.

    Parameters
    ----------
    data : object
        The decoded diagram description (flat array or hierarchical object).
    output_offset : int, optional
        Extra cycles for ``output`` primitives.  If *None*, uses the default.
    stop_after : str
        ``"validate"``, ``"flatten"`` or ``"layout"``.

    Returns
    -------
    PipelineResult

    Raises
    ------
    ValueError
        For an unknown *stop_after* stage or a negative *output_offset*.
    """
    if stop_after not in ("validate", "flatten", "layout"):
        raise ValueError(f"Unknown pipeline stage: {stop_after!r}")
    if output_offset is not None and output_offset < 0:
        raise ValueError(f"output_offset must not be negative, got {output_offset}")
    stages: list[str] = []

    # ── 1. Validate ───────────────────────────────────────────────
    validation = validate_diagram(data)
    if not validation.ok:
        return PipelineResult(
            success=False,
            message=f"Validation failed with {len(validation.diagnostics)} error(s)",
            validation=validation,
            stages=stages,
        )
    stages.append("Validation passed")
    if stop_after == "validate":
        return PipelineResult(True, "Diagram is valid", validation, stages=stages)

    # ── 2. Flatten ────────────────────────────────────────────────
    diagram = parse_diagram(data)
    try:
        graph = flatten_diagram(diagram)
    except FlattenError as e:
        log.error("Flattening failed: %s", e)
        return PipelineResult(
            success=False,
            message=f"Flattening failed: {e}",
            validation=validation,
            stages=stages,
        )
    stages.append(f"Flattened: {len(graph)} primitives, {len(graph.instances)} module instances")
    if stop_after == "flatten":
        return PipelineResult(True, "Diagram flattened", validation, graph, stages=stages)

    # ── 3. Layout ─────────────────────────────────────────────────
    if output_offset is None:
        output_offset = DEFAULT_OUTPUT_OFFSET
    try:
        layout = compute_layout(graph, output_offset=output_offset)
    except LayoutError as e:
        log.error("Layout failed: %s", e)
        return PipelineResult(
            success=False,
            message=f"Layout failed: {e}",
            validation=validation,
            graph=graph,
            stages=stages,
        )
    stages.append(
        f"Layout: {layout.max_cycle + 1 if len(layout) else 0} cycles, "
        f"{len(layout.feedback_edges)} feedback edges"
    )

    return PipelineResult(
        success=True,
        message="Layout complete",
        validation=validation,
        graph=graph,
        layout=layout,
        stages=stages,
    )
