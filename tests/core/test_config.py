"""Tests for core configuration classes."""

from __future__ import annotations

from syncconsole.core.config import DEFAULT_TOPIC, ConsoleConfig


class TestConsoleConfig:
    """Tests for ConsoleConfig class."""

    def test_init_basic(self) -> None:
        """Should initialize with required fields."""
        config = ConsoleConfig(server_url="https://example.com", token="test-token")
        assert config.server_url == "https://example.com"
        assert config.token == "test-token"
        assert config.topic == DEFAULT_TOPIC
        assert config.timeout == 30.0
        assert config.verify_ssl is True

    def test_init_custom_topic(self) -> None:
        """Should accept a custom topic."""
        config = ConsoleConfig(
            server_url="https://example.com",
            token="test-token",
            topic="/event/Other__e",
        )
        assert config.topic == "/event/Other__e"

    def test_url_trailing_slash_removed(self) -> None:
        """Should strip trailing slash from server URL."""
        config = ConsoleConfig(server_url="https://example.com/", token="test-token")
        assert config.server_url == "https://example.com"

    def test_ws_url_https(self) -> None:
        """Should convert HTTPS to WSS for WebSocket URL."""
        config = ConsoleConfig(server_url="https://example.com", token="test-token")
        assert config.ws_url == "wss://example.com/ws/events/test-token"

    def test_ws_url_http(self) -> None:
        """Should convert HTTP to WS for WebSocket URL."""
        config = ConsoleConfig(server_url="http://localhost:8000", token="test-token")
        assert config.ws_url == "ws://localhost:8000/ws/events/test-token"

    def test_is_secure(self) -> None:
        """Should report HTTPS as secure."""
        assert ConsoleConfig(server_url="https://example.com", token="t").is_secure
        assert not ConsoleConfig(server_url="http://example.com", token="t").is_secure
