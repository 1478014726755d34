"""Console state snapshot and its derived views.

This module provides:
- Selection, PipelineState, ConsoleError: parts of the snapshot
- ConsoleState: Immutable snapshot of everything the console shows
- ReadinessFlags / readiness(): which actions are currently allowed
- HelpText / help_text(): guidance line for the user
- surfaced_error(): the single error to show, tagged by source

Nothing here is stored twice: readiness and help text are recomputed
from the snapshot every time they are read.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum

from syncconsole.client.api import Dataset, Field
from syncconsole.core.types import (
    SUCCESS_MARKER,
    ErrorKind,
    PipelinePhase,
    PipelineStatus,
)


@dataclass(frozen=True)
class Selection:
    """Currently selected dataset and key field.

    The field only means something relative to the selected dataset.
    """

    dataset: str | None = None
    field: str | None = None


@dataclass(frozen=True)
class PipelineState:
    """Last observed pipeline phase, status and error text.

    This is whatever the most recent call result or channel message
    said; it can lag behind the real backend state.
    """

    phase: PipelinePhase = PipelinePhase.NONE
    status: PipelineStatus = PipelineStatus.NOT_STARTED
    error: str = ""

    @property
    def has_issues(self) -> bool:
        """Check if the error text reports a problem.

        The backend publishes the literal "Success" in the error field
        when a phase completes, so that value is not an issue.
        """
        return bool(self.error) and self.error.lower() != SUCCESS_MARKER


@dataclass(frozen=True)
class ConsoleError:
    """User-visible error tagged with where it came from."""

    kind: ErrorKind
    message: str


@dataclass(frozen=True)
class ConsoleState:
    """Immutable snapshot of the console.

    Attributes:
        datasets: Selectable catalog (never contains the error record).
        fields: Key field candidates of the selected dataset.
        selection: Selected dataset and field.
        pipeline: Last observed pipeline phase/status/error.
        console_error: Last call-layer or channel-layer error.
        sync_completed: Whether the selected dataset has been fully synced.
        field_catalog_loaded: Field catalog for the selected dataset loaded.
        full_sync_unlocked: Set by the first Initialize success notification.
        catalog_version: Number of catalog loads applied so far.
    """

    datasets: tuple[Dataset, ...] = ()
    fields: tuple[Field, ...] = ()
    selection: Selection = field(default_factory=Selection)
    pipeline: PipelineState = field(default_factory=PipelineState)
    console_error: ConsoleError | None = None
    sync_completed: bool = False
    field_catalog_loaded: bool = False
    full_sync_unlocked: bool = False
    catalog_version: int = 0

    def get_dataset(self, name: str | None) -> Dataset | None:
        """Get a dataset from the catalog by name."""
        if name is None:
            return None
        for dataset in self.datasets:
            if dataset.name == name:
                return dataset
        return None

    @property
    def selected_dataset(self) -> Dataset | None:
        """Get the selected dataset, if it is still in the catalog."""
        return self.get_dataset(self.selection.dataset)

    def with_dataset(self, dataset: Dataset) -> ConsoleState:
        """Return a copy with one catalog entry replaced by name."""
        datasets = tuple(
            dataset if d.name == dataset.name else d for d in self.datasets
        )
        return replace(self, datasets=datasets)


@dataclass(frozen=True)
class ReadinessFlags:
    """Which user actions are currently permitted."""

    field_selection: bool
    initialize: bool
    full_sync: bool
    incremental_sync: bool


def readiness(state: ConsoleState) -> ReadinessFlags:
    """Derive readiness flags from a snapshot.

    Initialize is always allowed. With an empty catalog nothing else is.
    Full sync opens either when the selected dataset's field catalog
    loaded or when an Initialize success notification unlocked it.
    """
    has_catalog = bool(state.datasets)
    dataset_selected = state.selected_dataset is not None
    return ReadinessFlags(
        field_selection=dataset_selected,
        initialize=True,
        full_sync=has_catalog and (
            state.full_sync_unlocked
            or (dataset_selected and state.field_catalog_loaded)
        ),
        incremental_sync=(
            has_catalog
            and dataset_selected
            and state.selection.field is not None
        ),
    )


class HelpText(str, Enum):
    """Guidance shown above the console actions."""

    NEEDS_INITIALIZATION = "Please click on Initialize to fetch the Calculated Insights."
    SYNC_HAS_ISSUES = (
        "There are issues during sync. "
        "Please refer the processing error for more details."
    )
    READY_FOR_FULL_SYNC = (
        "Ready for Sync. Please choose one calculated insight & click on Full Sync."
    )
    READY_FOR_INCREMENTAL = (
        "Ready for Incremental Sync. Please choose one Key & click on Incremental Sync."
    )


def full_sync_observed(state: ConsoleState) -> bool:
    """Check if the snapshot shows the selected dataset as fully synced.

    Only meaningful when the help text gets past the catalog and issue
    checks; the reducer uses it to latch ``sync_completed``.
    """
    return state.sync_completed or (
        state.pipeline.phase == PipelinePhase.FULL_SYNC
        and state.pipeline.status == PipelineStatus.SUCCESS
    )


def help_text(state: ConsoleState) -> HelpText:
    """Derive the help text, first match wins."""
    if not state.datasets:
        return HelpText.NEEDS_INITIALIZATION
    if state.pipeline.has_issues:
        return HelpText.SYNC_HAS_ISSUES
    if full_sync_observed(state):
        return HelpText.READY_FOR_INCREMENTAL
    return HelpText.READY_FOR_FULL_SYNC


def surfaced_error(state: ConsoleState) -> ConsoleError | None:
    """Get the error to show to the user, if any.

    A console-level error (call or channel) is shown first since it is
    the most recent local failure; otherwise a pipeline failure.
    """
    if state.console_error is not None:
        return state.console_error
    if state.pipeline.has_issues:
        return ConsoleError(ErrorKind.PIPELINE_FAILURE, state.pipeline.error)
    return None
