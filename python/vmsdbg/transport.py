"""
Transport layer for vmsdbg.

Responsibilities:
    * Own exactly one WebSocket channel to a VM service endpoint.
    * Write raw text frames (no acknowledgment at this layer).
    * Surface ready/closed/error/message notifications to the owner.

The transport knows nothing about ids or streams; the client facade wires
the notifications into the correlator and the stream dispatcher.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from .config import TransportConfig
from .errors import ConnectFailed, NotConnected
from .protocol import normalise_address

logger = logging.getLogger(__name__)

RawMessage = Union[str, bytes]


class WebSocketTransport:
    """Single-channel WebSocket transport driven by the running event loop."""

    def __init__(
        self,
        config: Optional[TransportConfig] = None,
        *,
        on_ready: Optional[Callable[[], None]] = None,
        on_closed: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
        on_message: Optional[Callable[[RawMessage], None]] = None,
    ) -> None:
        self.config = config or TransportConfig()
        self.on_ready = on_ready
        self.on_closed = on_closed
        self.on_error = on_error
        self.on_message = on_message
        self.address: Optional[str] = None
        self._ws: Optional[Any] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._state = "disconnected"
        self._close_requested = False

    #
    # Connection lifecycle helpers
    #
    @property
    def state(self) -> str:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._ws is not None and self._state == "open"

    def detach(self) -> None:
        """Drop every notification handler; later channel activity goes nowhere."""
        self.on_ready = None
        self.on_closed = None
        self.on_error = None
        self.on_message = None

    async def open(self, address: str) -> None:
        """Open the channel; returns once the WebSocket handshake has completed."""
        url = normalise_address(address)
        if self._state != "disconnected":
            raise ConnectFailed(f"transport busy ({self._state})")
        self._state = "opening"
        self._close_requested = False
        self.address = url
        logger.info("connecting to %s", url)
        try:
            ws = await websockets.connect(
                url,
                open_timeout=self.config.open_timeout,
                close_timeout=self.config.close_timeout,
                ping_interval=self.config.ping_interval,
                ping_timeout=self.config.ping_timeout,
                max_size=self.config.max_size,
            )
        except asyncio.CancelledError:
            self._state = "disconnected"
            raise
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            self._state = "disconnected"
            raise ConnectFailed(f"connect to {url} failed: {exc}") from exc
        if self._close_requested:
            self._state = "disconnected"
            await ws.close()
            raise ConnectFailed(f"connect to {url} aborted: transport closed during handshake")
        self._ws = ws
        self._state = "open"
        self._reader_task = asyncio.get_running_loop().create_task(self._reader_loop(ws))
        logger.info("channel to %s ready", url)
        self._notify("ready", self.on_ready)

    async def send(self, raw: str) -> None:
        ws = self._ws
        if ws is None or self._state != "open":
            raise NotConnected("channel is not open")
        try:
            await ws.send(raw)
        except ConnectionClosed as exc:
            raise NotConnected(f"channel closed: {exc}") from exc
        logger.debug("sent %d bytes", len(raw))

    async def close(self) -> None:
        """Close the channel if open; waits until ``on_closed`` has fired."""
        self._close_requested = True
        ws = self._ws
        if ws is None:
            return
        task = self._reader_task
        self._state = "closing"
        try:
            await ws.close()
        except (OSError, WebSocketException) as exc:
            logger.debug("websocket close failed: %s", exc)
        if task is not None and task is not asyncio.current_task():
            await asyncio.wait({task})

    #
    # Internal helpers
    #
    async def _reader_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                self._notify("message", self.on_message, raw)
        except ConnectionClosed as exc:
            if not self._close_requested:
                logger.warning("channel to %s closed abnormally: %s", self.address, exc)
                self._notify("error", self.on_error, f"connection closed abnormally: {exc}")
        finally:
            if self._ws is ws:
                self._ws = None
                self._reader_task = None
                self._state = "disconnected"
            logger.info("channel to %s closed", self.address)
            self._notify("closed", self.on_closed)

    def _notify(self, name: str, handler: Optional[Callable[..., None]], *args: Any) -> None:
        if handler is None:
            return
        try:
            handler(*args)
        except Exception:
            # Handlers must not disrupt the reader loop.
            logger.exception("transport %s handler failed", name)
