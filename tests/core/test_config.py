"""Tests for core configuration classes."""

from __future__ import annotations

from pomosync.core.config import ServerConfig


class TestServerConfig:
    """Tests for ServerConfig class."""

    def test_init_basic(self) -> None:
        """Should initialize with required fields."""
        config = ServerConfig(server_url="https://example.com", token="test-token")
        assert config.server_url == "https://example.com"
        assert config.token == "test-token"
        assert config.timeout == 30.0
        assert config.verify_ssl is True

    def test_init_verify_ssl_false(self) -> None:
        """Should accept verify_ssl=False."""
        config = ServerConfig(
            server_url="https://example.com",
            token="test-token",
            verify_ssl=False,
        )
        assert config.verify_ssl is False

    def test_url_trailing_slash_removed(self) -> None:
        """Should strip trailing slash from server URL."""
        config = ServerConfig(server_url="https://example.com/", token="test-token")
        assert config.server_url == "https://example.com"

    def test_ws_url_https(self) -> None:
        """Should convert HTTPS to WSS for WebSocket URL."""
        config = ServerConfig(server_url="https://example.com", token="test-token")
        assert config.ws_url == "wss://example.com/ws/timer/test-token"

    def test_ws_url_http(self) -> None:
        """Should convert HTTP to WS for WebSocket URL."""
        config = ServerConfig(server_url="http://localhost:8000", token="test-token")
        assert config.ws_url == "ws://localhost:8000/ws/timer/test-token"

    def test_api_url(self) -> None:
        """Should append /api to the server URL."""
        config = ServerConfig(server_url="http://localhost:8000/", token="t")
        assert config.api_url == "http://localhost:8000/api"

    def test_is_secure(self) -> None:
        """Should detect HTTPS."""
        assert ServerConfig(server_url="https://a", token="t").is_secure
        assert not ServerConfig(server_url="http://a", token="t").is_secure
