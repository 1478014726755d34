"""Plain-text rendering of a console snapshot for the CLI."""

from __future__ import annotations

from syncconsole.client.state import (
    ConsoleState,
    help_text,
    readiness,
    surfaced_error,
)


def _mark(enabled: bool) -> str:
    return "on" if enabled else "off"


def render(state: ConsoleState) -> str:
    """Render a snapshot as a few human readable lines."""
    flags = readiness(state)
    selection = state.selection
    lines = [
        help_text(state).value,
        (
            f"Dataset: {selection.dataset or '-'}  "
            f"Key field: {selection.field or '-'}  "
            f"({len(state.datasets)} datasets, {len(state.fields)} fields)"
        ),
        (
            f"Phase: {state.pipeline.phase.value}  "
            f"Status: {state.pipeline.status.value}"
        ),
        (
            f"Actions: initialize={_mark(flags.initialize)} "
            f"full-sync={_mark(flags.full_sync)} "
            f"incremental-sync={_mark(flags.incremental_sync)}"
        ),
    ]

    error = surfaced_error(state)
    if error is not None:
        lines.append(f"Error ({error.kind.value}): {error.message}")
    return "\n".join(lines)
