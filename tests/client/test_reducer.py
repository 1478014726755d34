"""Tests for console state transitions."""

from __future__ import annotations

from syncconsole.client.api import Dataset, Field
from syncconsole.client.channel import ChannelError, ChannelMessage
from syncconsole.client.reducer import (
    ActionRejected,
    ActionTriggered,
    CatalogLoaded,
    CatalogLoadFailed,
    ChannelFailed,
    DatasetSelected,
    FieldSelected,
    FieldsLoaded,
    FieldsLoadFailed,
    NotificationReceived,
    can_dispatch,
    reduce,
)
from syncconsole.client.state import ConsoleError, ConsoleState, Selection
from syncconsole.core.types import ErrorKind, PipelinePhase, PipelineStatus

REVENUE = Dataset(name="Revenue", label="Revenue")
CHURN = Dataset(name="Churn", label="Churn", sync_completed=True)
ERROR_RECORD = Dataset(
    name="Initialization_Error", label="Initialization_Error", error="No metadata"
)
REGION = Field(name="Region", label="Region")


def loaded(*records: Dataset) -> ConsoleState:
    """Create a state with a loaded catalog."""
    return reduce(ConsoleState(), CatalogLoaded(records))


def with_fields(state: ConsoleState, dataset: str = "Revenue") -> ConsoleState:
    """Select a dataset and load its fields."""
    state = reduce(state, DatasetSelected(dataset))
    return reduce(state, FieldsLoaded(dataset, (REGION,)))


class TestCatalog:
    """Tests for catalog load transitions."""

    def test_error_record_excluded(self) -> None:
        """The error record is never selectable and its message becomes the error."""
        state = loaded(REVENUE, ERROR_RECORD)
        assert [d.name for d in state.datasets] == ["Revenue"]
        assert state.pipeline.status == PipelineStatus.FAILURE
        assert state.pipeline.error == "No metadata"

    def test_reload_replaces_catalog(self) -> None:
        """A reload replaces the whole catalog."""
        state = loaded(REVENUE)
        state = reduce(state, CatalogLoaded((CHURN,)))
        assert state.datasets == (CHURN,)
        assert state.catalog_version == 2

    def test_failed_load_keeps_catalog(self) -> None:
        """A failed load leaves the catalog and pipeline state untouched."""
        state = loaded(REVENUE)
        after = reduce(state, CatalogLoadFailed("Backend down"))
        assert after.datasets == state.datasets
        assert after.pipeline == state.pipeline
        assert after.console_error == ConsoleError(ErrorKind.CALL_ERROR, "Backend down")

    def test_reload_keeps_selection(self) -> None:
        """Background refresh never resets the selection."""
        state = reduce(with_fields(loaded(REVENUE)), FieldSelected("Region"))
        state = reduce(state, CatalogLoaded((REVENUE, CHURN)))
        assert state.selection == Selection("Revenue", "Region")
        assert state.fields == (REGION,)


class TestSelection:
    """Tests for selection transitions."""

    def test_select_dataset_resets_field(self) -> None:
        """Selecting a dataset clears field and field catalog."""
        state = reduce(with_fields(loaded(REVENUE, CHURN)), FieldSelected("Region"))
        state = reduce(state, DatasetSelected("Churn"))
        assert state.selection == Selection("Churn", None)
        assert state.fields == ()
        assert not state.field_catalog_loaded

    def test_reselect_same_dataset_resets_field(self) -> None:
        """Reselecting the same dataset still resets the field."""
        state = reduce(with_fields(loaded(REVENUE)), FieldSelected("Region"))
        state = reduce(state, DatasetSelected("Revenue"))
        assert state.selection.field is None
        assert state.fields == ()

    def test_select_copies_sync_completed(self) -> None:
        """The dataset's sync flag becomes the readiness context."""
        state = reduce(loaded(REVENUE, CHURN), DatasetSelected("Churn"))
        assert state.sync_completed is True
        state = reduce(state, DatasetSelected("Revenue"))
        assert state.sync_completed is False

    def test_unknown_dataset_ignored(self) -> None:
        """Selecting a dataset outside the catalog changes nothing."""
        state = loaded(REVENUE)
        assert reduce(state, DatasetSelected("Missing")) == state

    def test_stale_fields_discarded(self) -> None:
        """Fields for a dataset no longer selected are dropped."""
        state = reduce(loaded(REVENUE, CHURN), DatasetSelected("Revenue"))
        state = reduce(state, DatasetSelected("Churn"))
        after = reduce(state, FieldsLoaded("Revenue", (REGION,)))
        assert after == state

    def test_field_load_failure(self) -> None:
        """A failed field load keeps the dataset and empties the fields."""
        state = reduce(loaded(REVENUE), DatasetSelected("Revenue"))
        state = reduce(state, FieldsLoadFailed("Revenue", "Timeout"))
        assert state.selection.dataset == "Revenue"
        assert state.fields == ()
        assert state.console_error == ConsoleError(ErrorKind.CALL_ERROR, "Timeout")

    def test_field_without_dataset_ignored(self) -> None:
        """A field cannot be selected without a dataset."""
        state = loaded(REVENUE)
        assert reduce(state, FieldSelected("Region")) == state

    def test_unknown_field_ignored(self) -> None:
        """Only fields from the loaded catalog can be selected."""
        state = with_fields(loaded(REVENUE))
        assert reduce(state, FieldSelected("Country")) == state


class TestActions:
    """Tests for action transitions."""

    def test_can_dispatch(self) -> None:
        """Preconditions follow the selection."""
        empty = ConsoleState()
        assert can_dispatch(empty, PipelinePhase.INITIALIZE)
        assert not can_dispatch(empty, PipelinePhase.FULL_SYNC)
        assert not can_dispatch(empty, PipelinePhase.INCREMENTAL_SYNC)

        state = reduce(with_fields(loaded(REVENUE)), FieldSelected("Region"))
        assert can_dispatch(state, PipelinePhase.FULL_SYNC)
        assert can_dispatch(state, PipelinePhase.INCREMENTAL_SYNC)

    def test_trigger_sets_in_progress_and_clears_error(self) -> None:
        """Triggering sets the phase in progress and clears prior errors."""
        state = reduce(loaded(REVENUE, ERROR_RECORD), CatalogLoadFailed("x"))
        state = reduce(state, ActionTriggered(PipelinePhase.INITIALIZE))
        assert state.pipeline.phase == PipelinePhase.INITIALIZE
        assert state.pipeline.status == PipelineStatus.IN_PROGRESS
        assert state.pipeline.error == ""
        assert state.console_error is None

    def test_full_sync_resets_sync_completed(self) -> None:
        """Full sync clears the completed flag before dispatch."""
        state = with_fields(loaded(CHURN), "Churn")
        assert state.sync_completed
        state = reduce(state, ActionTriggered(PipelinePhase.FULL_SYNC))
        assert not state.sync_completed
        assert not state.selected_dataset.sync_completed

    def test_incremental_without_selection_is_noop(self) -> None:
        """Incremental sync without dataset and field changes nothing."""
        state = loaded(REVENUE)
        assert reduce(state, ActionTriggered(PipelinePhase.INCREMENTAL_SYNC)) == state

    def test_rejection_sets_failure(self) -> None:
        """A rejected call marks the phase failed with the call error."""
        state = reduce(loaded(REVENUE), ActionTriggered(PipelinePhase.INITIALIZE))
        state = reduce(state, ActionRejected(PipelinePhase.INITIALIZE, "Forbidden"))
        assert state.pipeline.status == PipelineStatus.FAILURE
        assert state.pipeline.error == "Forbidden"
        assert state.console_error == ConsoleError(ErrorKind.CALL_ERROR, "Forbidden")


class TestNotifications:
    """Tests for channel notification transitions."""

    def test_last_message_wins(self) -> None:
        """Each message overwrites phase, status and error."""
        state = loaded(REVENUE)
        state = reduce(state, NotificationReceived(ChannelMessage(
            PipelinePhase.FULL_SYNC, PipelineStatus.FAILURE, "Timeout"
        )))
        state = reduce(state, NotificationReceived(ChannelMessage(
            PipelinePhase.INCREMENTAL_SYNC, PipelineStatus.IN_PROGRESS, ""
        )))
        assert state.pipeline.phase == PipelinePhase.INCREMENTAL_SYNC
        assert state.pipeline.status == PipelineStatus.IN_PROGRESS
        assert state.pipeline.error == ""

    def test_initialize_success_unlocks(self) -> None:
        """Initialize success sets the full sync latch."""
        state = reduce(ConsoleState(), NotificationReceived(ChannelMessage(
            PipelinePhase.INITIALIZE, PipelineStatus.SUCCESS, "Success"
        )))
        assert state.full_sync_unlocked

    def test_initialize_trigger_rearms(self) -> None:
        """Triggering Initialize again clears the latch."""
        state = ConsoleState(full_sync_unlocked=True)
        state = reduce(state, ActionTriggered(PipelinePhase.INITIALIZE))
        assert not state.full_sync_unlocked

    def test_full_sync_success_latches(self) -> None:
        """Full sync success latches sync_completed on the dataset."""
        state = reduce(with_fields(loaded(REVENUE)), ActionTriggered(PipelinePhase.FULL_SYNC))
        state = reduce(state, NotificationReceived(ChannelMessage(
            PipelinePhase.FULL_SYNC, PipelineStatus.SUCCESS, ""
        )))
        assert state.sync_completed
        assert state.selected_dataset.sync_completed

        state = reduce(state, NotificationReceived(ChannelMessage(
            PipelinePhase.FULL_SYNC, PipelineStatus.IN_PROGRESS, ""
        )))
        assert state.sync_completed

    def test_no_latch_with_issues(self) -> None:
        """A success reported with an error text does not latch."""
        state = with_fields(loaded(REVENUE))
        state = reduce(state, NotificationReceived(ChannelMessage(
            PipelinePhase.FULL_SYNC, PipelineStatus.SUCCESS, "Partial failure"
        )))
        assert not state.sync_completed

    def test_channel_failure_is_console_error(self) -> None:
        """Channel errors never touch the pipeline state."""
        state = loaded(REVENUE)
        after = reduce(state, ChannelFailed(ChannelError("parse", "bad json")))
        assert after.pipeline == state.pipeline
        assert after.console_error is not None
        assert after.console_error.kind == ErrorKind.CHANNEL_ERROR
        assert "bad json" in after.console_error.message
