"""Console state transitions.

Every input the console reacts to is an event; ``reduce`` takes the
current snapshot and one event and returns the next snapshot. The
controller owns side effects (backend calls, resubscribe) and decides
them by comparing snapshots before and after a transition.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from syncconsole.client.api import Dataset, Field
from syncconsole.client.channel import ChannelError, ChannelMessage
from syncconsole.client.state import (
    ConsoleError,
    ConsoleState,
    PipelineState,
    Selection,
    full_sync_observed,
)
from syncconsole.core.types import ErrorKind, PipelinePhase, PipelineStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Events
# =============================================================================


@dataclass(frozen=True)
class CatalogLoaded:
    records: tuple[Dataset, ...]


@dataclass(frozen=True)
class CatalogLoadFailed:
    message: str


@dataclass(frozen=True)
class DatasetSelected:
    name: str


@dataclass(frozen=True)
class FieldsLoaded:
    dataset: str
    fields: tuple[Field, ...]


@dataclass(frozen=True)
class FieldsLoadFailed:
    dataset: str
    message: str


@dataclass(frozen=True)
class FieldSelected:
    name: str


@dataclass(frozen=True)
class ActionTriggered:
    phase: PipelinePhase


@dataclass(frozen=True)
class ActionRejected:
    phase: PipelinePhase
    message: str


@dataclass(frozen=True)
class NotificationReceived:
    message: ChannelMessage


@dataclass(frozen=True)
class ChannelFailed:
    error: ChannelError


ConsoleEvent = (
    CatalogLoaded
    | CatalogLoadFailed
    | DatasetSelected
    | FieldsLoaded
    | FieldsLoadFailed
    | FieldSelected
    | ActionTriggered
    | ActionRejected
    | NotificationReceived
    | ChannelFailed
)


# =============================================================================
# Transitions
# =============================================================================


def can_dispatch(state: ConsoleState, phase: PipelinePhase) -> bool:
    """Check the selection preconditions of an action.

    Initialize has none; full sync needs a dataset; incremental sync
    needs a dataset and a key field.
    """
    selection = state.selection
    if phase == PipelinePhase.FULL_SYNC:
        return selection.dataset is not None
    if phase == PipelinePhase.INCREMENTAL_SYNC:
        return selection.dataset is not None and selection.field is not None
    return phase == PipelinePhase.INITIALIZE


def reduce(state: ConsoleState, event: ConsoleEvent) -> ConsoleState:
    """Apply one event to a snapshot and return the next snapshot."""
    if isinstance(event, CatalogLoaded):
        state = _apply_catalog(state, event.records)
    elif isinstance(event, CatalogLoadFailed):
        state = replace(
            state, console_error=ConsoleError(ErrorKind.CALL_ERROR, event.message)
        )
    elif isinstance(event, DatasetSelected):
        state = _select_dataset(state, event.name)
    elif isinstance(event, FieldsLoaded):
        if event.dataset != state.selection.dataset:
            logger.debug("Discarding stale field catalog for %s", event.dataset)
            return state
        state = replace(state, fields=event.fields, field_catalog_loaded=True)
    elif isinstance(event, FieldsLoadFailed):
        if event.dataset != state.selection.dataset:
            logger.debug("Discarding stale field load error for %s", event.dataset)
            return state
        state = replace(
            state,
            fields=(),
            field_catalog_loaded=False,
            console_error=ConsoleError(ErrorKind.CALL_ERROR, event.message),
        )
    elif isinstance(event, FieldSelected):
        state = _select_field(state, event.name)
    elif isinstance(event, ActionTriggered):
        state = _start_action(state, event.phase)
    elif isinstance(event, ActionRejected):
        state = replace(
            state,
            pipeline=PipelineState(event.phase, PipelineStatus.FAILURE, event.message),
            console_error=ConsoleError(ErrorKind.CALL_ERROR, event.message),
        )
    elif isinstance(event, NotificationReceived):
        state = _merge_notification(state, event.message)
    elif isinstance(event, ChannelFailed):
        state = replace(
            state,
            console_error=ConsoleError(
                ErrorKind.CHANNEL_ERROR, f"Event channel error: {event.error}"
            ),
        )
    return _latch_sync_completed(state)


def _apply_catalog(state: ConsoleState, records: tuple[Dataset, ...]) -> ConsoleState:
    """Replace the catalog, keeping the selection and pipeline state."""
    datasets = tuple(r for r in records if not r.is_error_record)
    error_record = next((r for r in records if r.is_error_record), None)

    state = replace(state, datasets=datasets, catalog_version=state.catalog_version + 1)
    if error_record is not None and error_record.error:
        state = replace(
            state,
            pipeline=replace(
                state.pipeline,
                status=PipelineStatus.FAILURE,
                error=error_record.error,
            ),
        )

    # Keep a local latch for the selected dataset across refreshes
    selected = state.selected_dataset
    if selected is not None and state.sync_completed and not selected.sync_completed:
        state = state.with_dataset(replace(selected, sync_completed=True))
    return state


def _select_dataset(state: ConsoleState, name: str) -> ConsoleState:
    dataset = state.get_dataset(name)
    if dataset is None:
        logger.warning("Ignoring selection of unknown dataset %s", name)
        return state
    return replace(
        state,
        selection=Selection(dataset=name, field=None),
        fields=(),
        field_catalog_loaded=False,
        sync_completed=dataset.sync_completed,
    )


def _select_field(state: ConsoleState, name: str) -> ConsoleState:
    if state.selection.dataset is None:
        logger.warning("Ignoring field %s selected without a dataset", name)
        return state
    if all(f.name != name for f in state.fields):
        logger.warning(
            "Ignoring unknown field %s for %s", name, state.selection.dataset
        )
        return state
    return replace(state, selection=replace(state.selection, field=name))


def _start_action(state: ConsoleState, phase: PipelinePhase) -> ConsoleState:
    if not can_dispatch(state, phase):
        return state

    state = replace(
        state,
        pipeline=PipelineState(phase, PipelineStatus.IN_PROGRESS, ""),
        console_error=None,
    )
    if phase == PipelinePhase.INITIALIZE:
        # Re-arm the Initialize success edge
        state = replace(state, full_sync_unlocked=False)
    elif phase == PipelinePhase.FULL_SYNC:
        state = replace(state, sync_completed=False)
        selected = state.selected_dataset
        if selected is not None:
            state = state.with_dataset(replace(selected, sync_completed=False))
    return state


def _merge_notification(state: ConsoleState, message: ChannelMessage) -> ConsoleState:
    """Overwrite the pipeline state with a channel message, last one wins."""
    state = replace(
        state,
        pipeline=PipelineState(message.phase, message.status, message.error),
    )
    if (
        message.phase == PipelinePhase.INITIALIZE
        and message.status == PipelineStatus.SUCCESS
    ):
        state = replace(state, full_sync_unlocked=True)
    return state


def _latch_sync_completed(state: ConsoleState) -> ConsoleState:
    """Remember a completed full sync for the rest of the session.

    Mirrors the help text precedence: the latch only applies when the
    catalog is non-empty and the pipeline reports no issues.
    """
    if state.sync_completed or not state.datasets or state.pipeline.has_issues:
        return state
    if not full_sync_observed(state):
        return state

    state = replace(state, sync_completed=True)
    selected = state.selected_dataset
    if selected is not None and not selected.sync_completed:
        state = state.with_dataset(replace(selected, sync_completed=True))
    return state
