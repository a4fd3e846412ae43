"""Real-time channel carrying timer events between a user's sessions.

This module provides:
- SyncChannel: WebSocket client with automatic reconnection

Architecture:
    TimerSession ─send─► SyncChannel ──ws──► Server (TimerHub) ──ws──► other sessions
                 ◄─on_event─┘

While disconnected nothing is buffered: the session keeps running locally
and asks its peers for a fresh snapshot (requestSync) once reconnected.
Reconnection backs off quickly up to the policy's attempt limit, then keeps
probing at the slower offline interval until stopped.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import ssl
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import websockets
from websockets.exceptions import WebSocketException

from pomosync.client.sync.retry import ReconnectPolicy
from pomosync.core.events import SyncEvent

if TYPE_CHECKING:
    from pomosync.core.config import ServerConfig

logger = logging.getLogger(__name__)

# Seconds between checks of the run flag while waiting for a frame
RECV_TIMEOUT = 30.0


class SyncChannel:
    """WebSocket client for exchanging SyncEvents.

    Runs as a task on the caller's event loop. Incoming events are handed
    to ``on_event`` in arrival order.

    Usage:
        channel = SyncChannel(server_config)
        channel.set_callbacks(on_event=reconciler.apply)
        await channel.start()
        channel.send(event)
        ...
        await channel.stop()
    """

    def __init__(
        self,
        config: ServerConfig,
        policy: ReconnectPolicy | None = None,
        connect: Callable[..., Any] = websockets.connect,
    ) -> None:
        """Initialize the channel.

        Args:
            config: Server configuration with URL, token and SSL settings.
            policy: Reconnection backoff.
            connect: Connection factory (``websockets.connect`` signature).
        """
        self._config = config
        self._policy = policy or ReconnectPolicy()
        self._connect_factory = connect

        self._ws: Any = None
        self._connected = False
        self._should_run = False
        self._offline = False
        self._task: asyncio.Task[None] | None = None
        self._wake: asyncio.Event | None = None
        self._outbox: asyncio.Queue[str] | None = None

        self._on_event: Callable[[SyncEvent], Any] | None = None
        self._on_connected: Callable[[], None] | None = None
        self._on_disconnected: Callable[[], None] | None = None

    @property
    def connected(self) -> bool:
        """Check if currently connected."""
        return self._connected

    @property
    def offline(self) -> bool:
        """Check if the fast attempts are used up (retrying slowly)."""
        return self._offline

    @property
    def ws_url(self) -> str:
        """Get the WebSocket URL."""
        return self._config.ws_url

    def set_callbacks(
        self,
        on_event: Callable[[SyncEvent], Any] | None = None,
        on_connected: Callable[[], None] | None = None,
        on_disconnected: Callable[[], None] | None = None,
    ) -> None:
        """Set channel callbacks.

        Args:
            on_event: Called with each valid inbound event.
            on_connected: Called when a connection is established.
            on_disconnected: Called when an established connection is lost.
        """
        self._on_event = on_event
        self._on_connected = on_connected
        self._on_disconnected = on_disconnected

    async def start(self) -> None:
        """Start connecting in the background."""
        if self._task and not self._task.done():
            logger.warning("SyncChannel already running")
            return
        self._should_run = True
        self._offline = False
        self._wake = asyncio.Event()
        self._task = asyncio.create_task(self._connection_loop(), name="SyncChannel")
        logger.info("SyncChannel started")

    async def stop(self) -> None:
        """Close the connection and stop reconnecting."""
        self._should_run = False
        if self._wake:
            self._wake.set()
        await self._close_connection()
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("SyncChannel stopped")

    def reconnect(self) -> None:
        """Retry now instead of waiting out the current delay."""
        if self._should_run and not self._connected and self._wake is not None:
            self._wake.set()

    def send(self, event: SyncEvent) -> bool:
        """Queue an event for sending.

        Args:
            event: Event to broadcast.

        Returns:
            False if disconnected (the event is dropped).
        """
        if not self._connected or self._outbox is None:
            logger.debug("Not connected, dropping %s event", event.type.value)
            return False
        self._outbox.put_nowait(event.to_json())
        return True

    async def _connection_loop(self) -> None:
        """Main connection loop; reconnects until stopped."""
        attempt = 0

        while self._should_run:
            was_connected = False
            try:
                await self._connect()
                attempt = 0
                was_connected = True
                await self._run_connected()
            except WebSocketException as e:
                logger.debug("WebSocket error: %s", e)
            except (ConnectionRefusedError, OSError, TimeoutError) as e:
                logger.debug("Connection error: %s", e)
            except Exception as e:
                logger.warning("SyncChannel error: %s", e)
                logger.debug("Full traceback:", exc_info=True)

            await self._close_connection()
            if was_connected:
                logger.warning("SyncChannel disconnected from server")
                self._notify(self._on_disconnected)

            if not self._should_run:
                break

            attempt += 1
            if self._policy.exhausted(attempt):
                if not self._offline:
                    logger.warning(
                        "SyncChannel unreachable after %d attempts, running offline "
                        "(retrying every %.0fs)",
                        attempt, self._policy.offline_delay,
                    )
                    self._offline = True
                delay = self._policy.offline_delay
            else:
                delay = self._policy.delay(attempt)
                logger.info("SyncChannel reconnecting in %.0fs...", delay)

            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._wake.wait(), timeout=delay)  # type: ignore[union-attr]
            self._wake.clear()  # type: ignore[union-attr]

    async def _connect(self) -> None:
        """Establish WebSocket connection."""
        ssl_context: ssl.SSLContext | None = None
        if self.ws_url.startswith("wss://"):
            ssl_context = ssl.create_default_context()
            if not self._config.verify_ssl:
                ssl_context.check_hostname = False
                ssl_context.verify_mode = ssl.CERT_NONE

        self._ws = await self._connect_factory(
            self.ws_url,
            ssl=ssl_context,
            open_timeout=10,
            close_timeout=5,
        )
        self._outbox = asyncio.Queue()
        self._connected = True
        self._offline = False
        logger.info("SyncChannel connected")
        self._notify(self._on_connected)

    async def _run_connected(self) -> None:
        """Read frames until the connection closes; a writer task drains the outbox."""
        writer = asyncio.create_task(self._writer_loop())
        try:
            while self._should_run and self._ws is not None:
                try:
                    message = await asyncio.wait_for(self._ws.recv(), timeout=RECV_TIMEOUT)
                except TimeoutError:
                    continue
                except websockets.ConnectionClosed:
                    logger.info("Connection closed by server")
                    break
                if isinstance(message, bytes):
                    message = message.decode("utf-8")
                self._handle_message(message)
                if writer.done():
                    break
        finally:
            writer.cancel()
            with contextlib.suppress(asyncio.CancelledError, WebSocketException):
                await writer

    async def _writer_loop(self) -> None:
        """Send queued frames in order."""
        assert self._outbox is not None
        while self._ws is not None:
            frame = await self._outbox.get()
            await self._ws.send(frame)

    def _handle_message(self, message: str) -> None:
        """Decode a frame and hand it to ``on_event``."""
        try:
            event = SyncEvent.from_json(message)
        except ValueError as e:
            logger.warning("Invalid sync message received: %s", e)
            return
        logger.debug("Received %s event from %s", event.type.value, event.origin)
        if self._on_event is None:
            return
        try:
            self._on_event(event)
        except Exception:
            logger.exception("Failed to apply %s event", event.type.value)

    def _notify(self, callback: Callable[[], None] | None) -> None:
        if callback is None:
            return
        try:
            callback()
        except Exception:
            logger.exception("SyncChannel callback failed")

    async def _close_connection(self) -> None:
        """Close the WebSocket connection."""
        self._connected = False
        self._outbox = None
        if self._ws is not None:
            with contextlib.suppress(WebSocketException, OSError):
                await self._ws.close()
            self._ws = None
