"""Sync console controller.

This module provides:
- Subscription: The controller-owned channel subscription record
- SyncConsoleController: Orchestrates catalog loads, user actions and
  channel notifications on top of the console state reducer

Architecture:
    user ──on_*()──► controller ──call──► SyncBackend
                         ▲                     │
                         │                (async work)
                         │                     ▼
                   EventChannel ◄──publish── pipeline

All handlers run on one asyncio event loop. A handler updates the
snapshot synchronously and spawns tasks for backend calls; results come
back as events through dispatch(), so no handler ever sees another one
half done.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass
from typing import Any

from syncconsole.client.api import APIError, SyncBackend
from syncconsole.client.channel import (
    REPLAY_NEW_ONLY,
    ChannelError,
    ChannelMessage,
    EventChannel,
    SubscribeError,
    SubscriptionHandle,
)
from syncconsole.client.reducer import (
    ActionRejected,
    ActionTriggered,
    CatalogLoaded,
    CatalogLoadFailed,
    ChannelFailed,
    ConsoleEvent,
    DatasetSelected,
    FieldSelected,
    FieldsLoaded,
    FieldsLoadFailed,
    NotificationReceived,
    can_dispatch,
    reduce,
)
from syncconsole.client.state import (
    ConsoleState,
    HelpText,
    ReadinessFlags,
    help_text,
    readiness,
)
from syncconsole.core.config import DEFAULT_TOPIC
from syncconsole.core.types import PipelinePhase, SubscriptionState

logger = logging.getLogger(__name__)

StateListener = Callable[[ConsoleState], None]


@dataclass(frozen=True)
class Subscription:
    """Channel subscription as seen by the controller.

    RECONNECTING covers any subscribe call in flight, including the
    first one made by start().
    """

    state: SubscriptionState = SubscriptionState.DISCONNECTED
    handle: SubscriptionHandle | None = None

    @property
    def live(self) -> bool:
        """Check if the subscription is connected with an active handle."""
        return (
            self.state == SubscriptionState.CONNECTED
            and self.handle is not None
            and self.handle.active
        )


class SyncConsoleController:
    """Drives the console state machine.

    Usage:
        controller = SyncConsoleController(backend, channel)
        await controller.start()

        controller.on_dataset_selected("Revenue")
        await controller.wait_idle()
        if controller.readiness.full_sync:
            controller.on_full_sync_triggered()

        await controller.stop()
    """

    def __init__(
        self,
        backend: SyncBackend,
        channel: EventChannel,
        topic: str = DEFAULT_TOPIC,
    ) -> None:
        """Initialize the controller.

        Args:
            backend: Backend operations.
            channel: Event channel the pipeline publishes on.
            topic: Topic to subscribe to.
        """
        self._backend = backend
        self._channel = channel
        self._topic = topic

        self._state = ConsoleState()
        self._subscription = Subscription()
        self._listeners: list[StateListener] = []

        # Outstanding backend/subscribe tasks
        self._tasks: set[asyncio.Task[Any]] = set()

        # Bumped on every dataset selection to discard late field loads
        self._field_request = 0

        channel.on_error(self.on_channel_error)

    # === Read-only surface ===

    @property
    def state(self) -> ConsoleState:
        """Get the current snapshot."""
        return self._state

    @property
    def readiness(self) -> ReadinessFlags:
        """Get the readiness flags of the current snapshot."""
        return readiness(self._state)

    @property
    def help_text(self) -> HelpText:
        """Get the help text of the current snapshot."""
        return help_text(self._state)

    @property
    def subscription(self) -> Subscription:
        """Get the channel subscription record."""
        return self._subscription

    @property
    def topic(self) -> str:
        """Get the subscribed topic."""
        return self._topic

    def add_listener(self, listener: StateListener) -> None:
        """Register a callback invoked with every new snapshot."""
        self._listeners.append(listener)

    # === Lifecycle ===

    async def start(self) -> None:
        """Load the catalog and subscribe to the channel."""
        self.load_catalog()
        self._subscription = Subscription(SubscriptionState.RECONNECTING)
        await self._subscribe()

    async def stop(self) -> None:
        """Wait for outstanding calls and drop the subscription."""
        await self.wait_idle()
        handle = self._subscription.handle
        self._subscription = Subscription()
        if handle is not None:
            await self._channel.unsubscribe(handle)

    async def wait_idle(self) -> None:
        """Wait until no backend call or subscribe is outstanding."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def dispatch(self, event: ConsoleEvent) -> ConsoleState:
        """Apply an event and notify listeners if the snapshot changed.

        Returns:
            The new snapshot.
        """
        before = self._state
        self._state = reduce(before, event)
        if self._state != before:
            for listener in list(self._listeners):
                listener(self._state)
        return self._state

    # === Catalog ===

    def load_catalog(self) -> None:
        """Fetch the dataset catalog in the background."""
        self._spawn(self._load_catalog(), "load-catalog")

    async def _load_catalog(self) -> None:
        try:
            records = await self._backend.list_datasets()
        except APIError as e:
            logger.warning("Failed to load catalog: %s", e.message)
            self.dispatch(CatalogLoadFailed(e.message))
            return

        self.dispatch(CatalogLoaded(tuple(records)))
        logger.info("Catalog loaded: %d datasets", len(self._state.datasets))

    # === Selection ===

    def on_dataset_selected(self, name: str) -> None:
        """Select a dataset and load its key field candidates."""
        if self._state.get_dataset(name) is None:
            logger.warning("Unknown dataset selected: %s", name)
            return

        self._field_request += 1
        self.dispatch(DatasetSelected(name))
        self._spawn(self._load_fields(name, self._field_request), f"load-fields-{name}")

    async def _load_fields(self, name: str, request: int) -> None:
        try:
            fields = await self._backend.list_fields(name)
        except APIError as e:
            if request != self._field_request:
                logger.debug("Discarding stale field load error for %s", name)
                return
            logger.warning("Failed to load fields of %s: %s", name, e.message)
            self.dispatch(FieldsLoadFailed(name, e.message))
            return

        if request != self._field_request:
            logger.debug("Discarding stale field catalog for %s", name)
            return
        self.dispatch(FieldsLoaded(name, tuple(fields)))

    def on_field_selected(self, name: str) -> None:
        """Select a key field of the selected dataset."""
        self.dispatch(FieldSelected(name))

    # === Actions ===

    def on_initialize_triggered(self) -> None:
        """Ask the backend to initialize dataset metadata."""
        self._trigger(PipelinePhase.INITIALIZE, self._backend.initialize)

    def on_full_sync_triggered(self) -> None:
        """Run a full sync of the selected dataset."""
        dataset = self._state.selection.dataset
        if dataset is None:
            logger.debug("Full sync skipped: no dataset selected")
            return
        self._trigger(PipelinePhase.FULL_SYNC, lambda: self._backend.full_sync(dataset))

    def on_incremental_sync_triggered(self) -> None:
        """Run an incremental sync of the selected dataset and key field."""
        dataset = self._state.selection.dataset
        field = self._state.selection.field
        if dataset is None or field is None:
            logger.debug("Incremental sync skipped: dataset or key field missing")
            return
        self._trigger(
            PipelinePhase.INCREMENTAL_SYNC,
            lambda: self._backend.incremental_sync(dataset, field),
        )

    def _trigger(
        self,
        phase: PipelinePhase,
        call: Callable[[], Awaitable[None]],
    ) -> None:
        if not can_dispatch(self._state, phase):
            return
        self.dispatch(ActionTriggered(phase))
        self._spawn(self._invoke(phase, call), f"invoke-{phase.name.lower()}")

    async def _invoke(
        self,
        phase: PipelinePhase,
        call: Callable[[], Awaitable[None]],
    ) -> None:
        try:
            await call()
        except APIError as e:
            logger.warning("%s rejected: %s", phase.value, e.message)
            self.dispatch(ActionRejected(phase, e.message))

    # === Channel ===

    def on_channel_message(self, message: ChannelMessage) -> None:
        """Merge a pipeline notification into the snapshot."""
        before = self._state
        after = self.dispatch(NotificationReceived(message))
        logger.info(
            "Pipeline %s: %s %s",
            message.phase.value,
            message.status.value,
            message.error,
        )

        # Edge: only the first Initialize success after the latch re-arms
        if after.full_sync_unlocked and not before.full_sync_unlocked:
            logger.info("Initialization succeeded, reloading catalog")
            self.load_catalog()

    def on_channel_error(self, error: ChannelError) -> None:
        """Surface a channel error and resubscribe if the server lost us."""
        handle = self._subscription.handle
        if (
            self._subscription.state == SubscriptionState.CONNECTED
            and handle is not None
            and not handle.active
        ):
            self._subscription = Subscription()

        self.dispatch(ChannelFailed(error))

        if not error.is_unknown_client:
            logger.error("Event channel error: %s", error)
            return

        logger.warning("Event channel reconnect warning: %s", error)
        if self._subscription.live:
            logger.debug("Subscription still active, not resubscribing")
            return
        if self._subscription.state == SubscriptionState.RECONNECTING:
            logger.debug("Resubscribe already in progress")
            return
        self.resubscribe()

    def resubscribe(self) -> None:
        """Subscribe again to the same topic in the background."""
        logger.info("Re-subscribing to %s...", self._topic)
        self._subscription = Subscription(
            SubscriptionState.RECONNECTING, self._subscription.handle
        )
        self._spawn(self._subscribe(), "subscribe")

    async def _subscribe(self) -> None:
        previous = self._subscription.handle
        try:
            handle = await self._channel.subscribe(
                self._topic, self.on_channel_message, REPLAY_NEW_ONLY
            )
        except SubscribeError as e:
            logger.warning("Subscribe to %s failed: %s", self._topic, e.error)
            self._subscription = Subscription()
            self.dispatch(ChannelFailed(e.error))
            if previous is not None and previous.active:
                await self._channel.unsubscribe(previous)
            return

        # Swap first, then close the old one
        self._subscription = Subscription(SubscriptionState.CONNECTED, handle)
        if previous is not None and previous is not handle:
            await self._channel.unsubscribe(previous)

    # === Tasks ===

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> None:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Task %s failed: %s", task.get_name(), exc,
                exc_info=(type(exc), exc, exc.__traceback__),
            )
