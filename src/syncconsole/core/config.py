"""Shared configuration classes for syncconsole.

This module defines the connection settings used by both the HTTP backend
client and the WebSocket event channel.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_TOPIC = "/event/SmartSync_Event__e"


@dataclass
class ConsoleConfig:
    """Connection settings of one console.

    BackendClient talks HTTP to ``server_url``; WebSocketEventChannel
    subscribes to ``topic`` on ``ws_url``, derived from the same URL.

    Attributes:
        server_url: Base URL of the backend (e.g., "https://sync.example.com").
        token: Authentication token for the console.
        topic: Event channel topic the pipeline publishes on.
        timeout: Request/connection timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
    """

    server_url: str
    token: str
    topic: str = DEFAULT_TOPIC
    timeout: float = 30.0
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize server URL."""
        self.server_url = self.server_url.rstrip("/")

    @property
    def ws_url(self) -> str:
        """Event channel endpoint: ws(s)://host/ws/events/{token}."""
        url = self.server_url
        if url.startswith("https://"):
            url = "wss://" + url[8:]
        elif url.startswith("http://"):
            url = "ws://" + url[7:]
        return f"{url}/ws/events/{self.token}"

    @property
    def is_secure(self) -> bool:
        """Check if using HTTPS/WSS."""
        return self.server_url.startswith("https://")
