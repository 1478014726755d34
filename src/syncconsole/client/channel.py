"""Event channel for pipeline progress notifications.

This module provides:
- ChannelMessage: Decoded {phase, status, error} notification
- ChannelError: Error reported by the channel layer
- SubscriptionHandle: Handle to a live topic subscription
- EventChannel: Protocol the console controller consumes
- WebSocketEventChannel: websockets implementation of EventChannel

Architecture:
    Backend pipeline ─publish─► topic ─ws─► WebSocketEventChannel ─► controller

Each subscription owns its own WebSocket connection so that a
resubscribe can briefly overlap with the subscription it replaces.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import ssl
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

import websockets
from websockets.exceptions import WebSocketException

from syncconsole.core.types import PipelinePhase, PipelineStatus

if TYPE_CHECKING:
    from websockets.asyncio.client import ClientConnection

    from syncconsole.core.config import ConsoleConfig

logger = logging.getLogger(__name__)

# Replay only events published after the subscription
REPLAY_NEW_ONLY = -1

PARSE_ERROR_CODE = "parse"
CONNECTION_ERROR_CODE = "connection"


@dataclass(frozen=True)
class ChannelMessage:
    """Pipeline notification delivered on the topic."""

    phase: PipelinePhase
    status: PipelineStatus
    error: str = ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ChannelMessage:
        """Create from an event payload dictionary.

        Raises:
            ValueError: If phase or status is present but not a string.
        """
        for key in ("phase", "status"):
            value = payload.get(key)
            if value is not None and not isinstance(value, str):
                raise ValueError(f"Invalid {key}: {value!r}")
        return cls(
            phase=PipelinePhase.parse(payload.get("phase")),
            status=PipelineStatus.parse(payload.get("status")),
            error=str(payload.get("error") or ""),
        )


@dataclass(frozen=True)
class ChannelError:
    """Error reported by the channel layer.

    Attributes:
        error_code: Server error code, or "parse"/"connection" for
            errors raised on the client side.
        message: Human readable message.
    """

    error_code: str
    message: str

    @property
    def is_unknown_client(self) -> bool:
        """Check if the server no longer recognizes this client.

        The server reports this as code 403 with an "Unknown client"
        message, sometimes folded into the message as "403::Unknown client".
        """
        message = self.message.lower()
        if "403::unknown client" in message:
            return True
        return self.error_code == "403" and "unknown client" in message

    def __str__(self) -> str:
        return f"{self.error_code}: {self.message}"


@dataclass
class SubscriptionHandle:
    """Handle to a live topic subscription.

    ``active`` is cleared by the channel once the underlying connection
    is gone or the server reports the client as unknown; a handle is
    never reused after that.
    """

    topic: str
    subscription_id: str
    active: bool = True


class SubscribeError(Exception):
    """Subscribing to a topic failed."""

    def __init__(self, error: ChannelError) -> None:
        super().__init__(str(error))
        self.error = error


MessageCallback = Callable[[ChannelMessage], None]
ErrorCallback = Callable[[ChannelError], None]


class EventChannel(Protocol):
    """Publish/subscribe channel consumed by the console controller."""

    async def subscribe(
        self,
        topic: str,
        on_message: MessageCallback,
        replay_from: int = REPLAY_NEW_ONLY,
    ) -> SubscriptionHandle: ...

    async def unsubscribe(self, handle: SubscriptionHandle) -> None: ...

    def on_error(self, callback: ErrorCallback) -> None: ...


@dataclass
class _Subscription:
    handle: SubscriptionHandle
    ws: ClientConnection
    on_message: MessageCallback
    task: asyncio.Task[None] | None = field(default=None, repr=False)


class WebSocketEventChannel:
    """WebSocket implementation of the event channel.

    Usage:
        channel = WebSocketEventChannel(config)
        channel.on_error(lambda err: print(err))
        handle = await channel.subscribe(config.topic, print)
        ...
        await channel.close()
    """

    def __init__(
        self,
        config: ConsoleConfig,
        subscribe_timeout: float = 10.0,
    ) -> None:
        """Initialize the event channel.

        Args:
            config: Console configuration with URL, token and SSL settings.
            subscribe_timeout: Seconds to wait for the subscribe ack.
        """
        self._config = config
        self._subscribe_timeout = subscribe_timeout
        self._subscriptions: dict[str, _Subscription] = {}
        self._error_callbacks: list[ErrorCallback] = []

    @property
    def ws_url(self) -> str:
        """Get the WebSocket URL."""
        return self._config.ws_url

    def on_error(self, callback: ErrorCallback) -> None:
        """Register a global error callback.

        Args:
            callback: Called with a ChannelError for server errors,
                undecodable payloads and dropped connections.
        """
        self._error_callbacks.append(callback)

    async def subscribe(
        self,
        topic: str,
        on_message: MessageCallback,
        replay_from: int = REPLAY_NEW_ONLY,
    ) -> SubscriptionHandle:
        """Subscribe to a topic.

        Args:
            topic: Topic name.
            on_message: Called for every notification on the topic.
            replay_from: Replay position, -1 for new events only.

        Returns:
            Handle of the new subscription.

        Raises:
            SubscribeError: If the server rejects the subscription or
                the connection cannot be established.
        """
        try:
            ws = await self._connect()
        except (WebSocketException, OSError) as e:
            raise SubscribeError(ChannelError(CONNECTION_ERROR_CODE, str(e))) from e

        try:
            await ws.send(json.dumps({
                "type": "subscribe",
                "topic": topic,
                "replay_from": replay_from,
            }))
            subscription_id = await asyncio.wait_for(
                self._await_ack(ws, topic),
                timeout=self._subscribe_timeout,
            )
        except SubscribeError:
            await self._close_ws(ws)
            raise
        except (TimeoutError, WebSocketException) as e:
            await self._close_ws(ws)
            raise SubscribeError(
                ChannelError(CONNECTION_ERROR_CODE, f"Subscribe to {topic} failed: {e}")
            ) from e

        handle = SubscriptionHandle(topic=topic, subscription_id=subscription_id)
        subscription = _Subscription(handle=handle, ws=ws, on_message=on_message)
        subscription.task = asyncio.create_task(
            self._listen(subscription),
            name=f"channel-{subscription_id}",
        )
        self._subscriptions[subscription_id] = subscription
        logger.info("Subscribed to %s (%s)", topic, subscription_id)
        return handle

    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        """Close a subscription.

        Args:
            handle: Handle returned by subscribe().
        """
        handle.active = False
        subscription = self._subscriptions.pop(handle.subscription_id, None)
        if subscription is None:
            return

        if subscription.task and subscription.task is not asyncio.current_task():
            subscription.task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await subscription.task
        await self._close_ws(subscription.ws)
        logger.info("Unsubscribed from %s (%s)", handle.topic, handle.subscription_id)

    async def close(self) -> None:
        """Close every subscription."""
        for subscription in list(self._subscriptions.values()):
            await self.unsubscribe(subscription.handle)

    async def _connect(self) -> ClientConnection:
        """Establish WebSocket connection."""
        ssl_context: ssl.SSLContext | None = None
        if self.ws_url.startswith("wss://"):
            ssl_context = ssl.create_default_context()
            if not self._config.verify_ssl:
                ssl_context.check_hostname = False
                ssl_context.verify_mode = ssl.CERT_NONE

        return await websockets.connect(
            self.ws_url,
            ssl=ssl_context,
            open_timeout=self._config.timeout,
            close_timeout=5,
        )

    async def _await_ack(self, ws: ClientConnection, topic: str) -> str:
        """Wait for the server to acknowledge a subscribe request.

        Returns:
            Server-assigned subscription id.
        """
        while True:
            data = self._decode(await ws.recv())
            if data is None:
                continue

            msg_type = data.get("type")
            if msg_type == "subscribed" and data.get("topic", topic) == topic:
                return str(data.get("subscription_id") or uuid.uuid4().hex)
            if msg_type == "error":
                raise SubscribeError(self._error_from(data))

    async def _listen(self, subscription: _Subscription) -> None:
        """Deliver messages until the connection goes away."""
        handle = subscription.handle
        try:
            async for raw in subscription.ws:
                self._handle_frame(subscription, raw)
                if not handle.active:
                    await self._close_ws(subscription.ws)
                    break
        except websockets.ConnectionClosed as e:
            logger.info("Channel connection closed: %s", e)
        except WebSocketException as e:
            logger.warning("Channel error on %s: %s", handle.topic, e)
        finally:
            if handle.active:
                handle.active = False
                self._subscriptions.pop(handle.subscription_id, None)
                self._report(ChannelError(
                    CONNECTION_ERROR_CODE,
                    f"Connection to {handle.topic} lost",
                ))

    def _handle_frame(self, subscription: _Subscription, raw: str | bytes) -> None:
        """Handle one frame from the server.

        Supported message types:
        - event: {"type": "event", "topic": "...", "payload": {"phase", "status", "error"}}
        - error: {"type": "error", "error_code": "...", "message": "..."}
        """
        data = self._decode(raw)
        if data is None:
            return

        msg_type = data.get("type")
        if msg_type == "event":
            payload = data.get("payload")
            if not isinstance(payload, dict):
                self._report(ChannelError(PARSE_ERROR_CODE, f"Invalid event payload: {payload!r}"))
                return
            try:
                message = ChannelMessage.from_payload(payload)
            except ValueError as e:
                logger.warning("Invalid event payload: %s", e)
                self._report(ChannelError(PARSE_ERROR_CODE, f"Invalid event payload: {e}"))
                return
            logger.debug(
                "Received event: %s %s", message.phase.value, message.status.value
            )
            try:
                subscription.on_message(message)
            except Exception as e:
                logger.warning("Event handler failed: %s", e)
                logger.debug("Full traceback:", exc_info=True)
        elif msg_type == "error":
            error = self._error_from(data)
            if error.is_unknown_client:
                # Server dropped this subscription
                handle = subscription.handle
                handle.active = False
                self._subscriptions.pop(handle.subscription_id, None)
                logger.info("Server no longer knows %s (%s)", handle.topic, handle.subscription_id)
            self._report(error)

        # Ignore other message types (heartbeats, acks)

    def _decode(self, raw: str | bytes) -> dict[str, Any] | None:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Invalid message received: %s", raw[:100])
            self._report(ChannelError(PARSE_ERROR_CODE, f"Invalid message: {raw[:100]}"))
            return None
        if not isinstance(data, dict):
            self._report(ChannelError(PARSE_ERROR_CODE, f"Invalid message: {raw[:100]}"))
            return None
        return data

    @staticmethod
    def _error_from(data: dict[str, Any]) -> ChannelError:
        return ChannelError(
            error_code=str(data.get("error_code") or "unknown"),
            message=str(data.get("message") or ""),
        )

    def _report(self, error: ChannelError) -> None:
        """Deliver an error to every registered callback."""
        for callback in self._error_callbacks:
            try:
                callback(error)
            except Exception as e:
                logger.warning("Channel error callback failed: %s", e)

    @staticmethod
    async def _close_ws(ws: ClientConnection) -> None:
        with contextlib.suppress(WebSocketException):
            await ws.close()
