"""Client facade: one object to connect, call and listen."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Set

from .config import ClientConfig, TransportConfig
from .errors import ConnectFailed, ConnectionLost, NotConnected, ProtocolError, RemoteError
from .events import StreamDispatcher, StreamObserver
from .protocol import (
    STREAM_CANCEL,
    STREAM_LISTEN,
    StreamName,
    decode_message,
    normalise_address,
    stream_name,
)
from .rpc import RequestCorrelator
from .state import ConnectionStateMachine, ConnectionStatus, StatusListener
from .transport import RawMessage, WebSocketTransport

logger = logging.getLogger(__name__)

TransportFactory = Callable[[TransportConfig], WebSocketTransport]

# Service error codes for listening to a stream twice / cancelling an unknown one.
STREAM_ALREADY_SUBSCRIBED = 103
STREAM_NOT_SUBSCRIBED = 104


class VMServiceClient:
    """Protocol client for a VM service endpoint.

    Instances are independent: each owns at most one live channel, its own
    request ids, its own stream observers and its own connection status.
    Observers and the set of subscribed streams survive disconnects; the
    streams are listened to again on the next successful ``connect``.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        transport_factory: Optional[TransportFactory] = None,
    ) -> None:
        self.config = config or ClientConfig()
        self.dispatcher = StreamDispatcher()
        self.address: Optional[str] = None
        self._transport_factory = transport_factory or WebSocketTransport
        self._state = ConnectionStateMachine(history=self.config.state_history)
        self._transport: Optional[WebSocketTransport] = None
        self._correlator: Optional[RequestCorrelator] = None
        self._listening: Set[str] = set()
        self._disposed = False

    async def __aenter__(self) -> "VMServiceClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.dispose()

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    def get_connection_status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def status_history(self) -> List[ConnectionStatus]:
        return self._state.history

    @property
    def is_connected(self) -> bool:
        return self._state.status == ConnectionStatus.CONNECTED and self._correlator is not None

    @property
    def pending_calls(self) -> int:
        return self._correlator.pending_count if self._correlator else 0

    def add_connection_status_listener(self, listener: StatusListener) -> None:
        self._state.add_listener(listener)

    def remove_connection_status_listener(self, listener: StatusListener) -> None:
        self._state.remove_listener(listener)

    async def connect(self, address: str) -> None:
        """Connect to ``address``, superseding any existing connection."""
        if self._disposed:
            raise ConnectFailed("client has been disposed")
        url = normalise_address(address)
        await self._teardown("superseded by a new connection")
        self._state.restart()

        transport = self._transport_factory(self.config.transport)
        transport.on_ready = lambda: self._handle_ready(transport)
        transport.on_closed = lambda: self._handle_closed(transport)
        transport.on_error = lambda detail: self._handle_error(transport, detail)
        transport.on_message = lambda raw: self._handle_message(transport, raw)
        correlator = RequestCorrelator(transport.send)
        self._transport = transport
        self._correlator = correlator
        self.address = url

        try:
            await transport.open(url)
        except (ConnectFailed, asyncio.CancelledError) as exc:
            if self._transport is transport:
                self._transport = None
                self._correlator = None
                correlator.fail_all(f"connect failed: {exc}")
                if isinstance(exc, asyncio.CancelledError):
                    transport.detach()
                    await transport.close()
                    self._state.transition(ConnectionStatus.DISCONNECTED)
                else:
                    self._state.transition(ConnectionStatus.ERROR)
            raise
        if self._transport is not transport:
            raise ConnectFailed(f"connect to {url} superseded by a newer attempt")
        logger.info("connected to %s", url)
        if self.config.resubscribe_on_reconnect:
            await self._resubscribe()

    async def disconnect(self) -> None:
        """Close the channel; pending calls fail, observers stay registered."""
        transport = self._transport
        if transport is not None:
            await transport.close()
        await self._teardown("disconnected by client")
        self._state.transition(ConnectionStatus.DISCONNECTED)

    async def dispose(self) -> None:
        """Disconnect and forget every listener, observer and subscription."""
        await self.disconnect()
        self._disposed = True
        self.dispatcher.clear()
        self._state.clear_listeners()

    async def _teardown(self, reason: str) -> None:
        transport = self._transport
        correlator = self._correlator
        self._transport = None
        self._correlator = None
        self._listening.clear()
        if correlator is not None:
            correlator.fail_all(reason)
        if transport is not None:
            transport.detach()
            await transport.close()

    # ------------------------------------------------------------------
    # Transport notifications
    # ------------------------------------------------------------------

    def _handle_ready(self, transport: WebSocketTransport) -> None:
        if transport is not self._transport:
            return
        self._state.transition(ConnectionStatus.CONNECTED)

    def _handle_closed(self, transport: WebSocketTransport) -> None:
        if transport is not self._transport:
            return
        correlator = self._correlator
        self._transport = None
        self._correlator = None
        self._listening.clear()
        if correlator is not None:
            correlator.fail_all("connection closed")
        if self._state.status == ConnectionStatus.CONNECTED:
            self._state.transition(ConnectionStatus.DISCONNECTED)

    def _handle_error(self, transport: WebSocketTransport, detail: str) -> None:
        if transport is not self._transport:
            return
        if self._correlator is not None:
            self._correlator.fail_all(detail)
        if self._state.status in (ConnectionStatus.CONNECTED, ConnectionStatus.CONNECTING):
            self._state.transition(ConnectionStatus.ERROR)

    def _handle_message(self, transport: WebSocketTransport, raw: RawMessage) -> None:
        if transport is not self._transport:
            return
        try:
            envelope = decode_message(raw)
        except ProtocolError as exc:
            logger.warning("dropping malformed message: %s", exc)
            return
        if envelope.is_response:
            if self._correlator is not None:
                self._correlator.handle_response(envelope)
        elif envelope.is_stream_notification:
            self.dispatcher.dispatch(envelope.stream_id, envelope.event)
        else:
            logger.debug("ignoring unsolicited message method=%s id=%s", envelope.method, envelope.id)

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    async def call(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Issue a raw service call and return its ``result``."""
        correlator = self._correlator
        if correlator is None or self._state.status != ConnectionStatus.CONNECTED:
            raise NotConnected("not connected to a VM service")
        return await correlator.call(method, params)

    async def get_vm(self) -> Any:
        return await self.call("getVM")

    async def get_version(self) -> Any:
        return await self.call("getVersion")

    async def get_isolate(self, isolate_id: str) -> Any:
        return await self.call("getIsolate", {"isolateId": isolate_id})

    async def get_memory_usage(self, isolate_id: str) -> Any:
        return await self.call("getMemoryUsage", {"isolateId": isolate_id})

    async def get_allocation_profile(
        self,
        isolate_id: str,
        gc: Optional[bool] = None,
        reset: Optional[bool] = None,
    ) -> Any:
        """Fetch the allocation profile; ``gc=True`` collects garbage first."""
        return await self.call("getAllocationProfile", {"isolateId": isolate_id, "gc": gc, "reset": reset})

    async def evaluate(self, isolate_id: str, target_id: str, expression: str) -> Any:
        return await self.call(
            "evaluate",
            {"isolateId": isolate_id, "targetId": target_id, "expression": expression},
        )

    async def resume(self, isolate_id: str) -> Any:
        return await self.call("resume", {"isolateId": isolate_id})

    async def pause(self, isolate_id: str) -> Any:
        return await self.call("pause", {"isolateId": isolate_id})

    async def call_service_extension(self, method: str, isolate_id: Optional[str] = None, **args: Any) -> Any:
        """Invoke a registered ``ext.*`` service extension."""
        if not method.startswith("ext."):
            raise ValueError(f"service extension methods start with 'ext.': {method!r}")
        params: Dict[str, Any] = dict(args)
        params["isolateId"] = isolate_id
        return await self.call(method, params)

    # ------------------------------------------------------------------
    # Streams
    # ------------------------------------------------------------------

    def add_channel_observer(self, stream: StreamName, observer: StreamObserver) -> None:
        self.dispatcher.add_observer(stream, observer)

    def remove_channel_observer(self, stream: StreamName, observer: StreamObserver) -> None:
        self.dispatcher.remove_observer(stream, observer)

    def listening_streams(self) -> List[str]:
        """Streams listened to on the current channel."""
        return sorted(self._listening)

    async def subscribe_to_channel(self, stream: StreamName) -> None:
        """Listen to ``stream`` on the service unless this channel already does."""
        name = stream_name(stream)
        if not self.is_connected:
            raise NotConnected(f"cannot subscribe to {name}: not connected to a VM service")
        if name not in self._listening:
            await self._listen(name)
        self.dispatcher.mark_subscribed(name)

    async def unsubscribe_from_channel(self, stream: StreamName) -> None:
        """Cancel the remote subscription for ``stream``; observers are kept."""
        name = stream_name(stream)
        self.dispatcher.mark_unsubscribed(name)
        if name not in self._listening or not self.is_connected:
            return
        try:
            await self.call(STREAM_CANCEL, {"streamId": name})
        except RemoteError as exc:
            if exc.code != STREAM_NOT_SUBSCRIBED:
                raise
        self._listening.discard(name)

    async def _listen(self, name: str) -> None:
        try:
            await self.call(STREAM_LISTEN, {"streamId": name})
        except RemoteError as exc:
            if exc.code != STREAM_ALREADY_SUBSCRIBED:
                raise
            logger.debug("stream %s already subscribed on the service", name)
        self._listening.add(name)

    async def _resubscribe(self) -> None:
        names = [name for name in self.dispatcher.subscribed_streams() if name not in self._listening]
        if not names:
            return
        logger.info("re-listening to %d stream(s): %s", len(names), ", ".join(names))
        results = await asyncio.gather(*(self._listen(name) for name in names), return_exceptions=True)
        for name, result in zip(names, results):
            if isinstance(result, (RemoteError, ConnectionLost, NotConnected)):
                logger.warning("failed to re-listen to stream %s: %s", name, result)
            elif isinstance(result, BaseException):
                raise result
