"""
Wire helpers for the VM service protocol.

Messages are JSON-RPC 2.0 envelopes carried as WebSocket text frames:

    request       {"jsonrpc": "2.0", "id": "3", "method": "getVM", "params": {...}}
    response      {"jsonrpc": "2.0", "id": "3", "result": {...}}
    error         {"jsonrpc": "2.0", "id": "3", "error": {"code": 100, "message": "..."}}
    notification  {"jsonrpc": "2.0", "method": "streamNotify",
                   "params": {"streamId": "Logging", "event": {...}}}
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union
from urllib.parse import urlsplit, urlunsplit

from .errors import ConnectFailed, ProtocolError

JSONRPC_VERSION = "2.0"
STREAM_NOTIFY = "streamNotify"
STREAM_LISTEN = "streamListen"
STREAM_CANCEL = "streamCancel"


class StreamId(str, enum.Enum):
    """Event streams a client can listen to."""

    LOGGING = "Logging"
    TIMELINE = "Timeline"
    ISOLATE = "Isolate"
    EXTENSION = "Extension"
    GC = "GC"
    DEBUG = "Debug"
    SERVICE = "Service"
    VM = "VM"

    def __str__(self) -> str:
        return self.value


StreamName = Union[StreamId, str]


def stream_name(stream: StreamName) -> str:
    """Return the wire name for ``stream``; unknown names raise ValueError."""
    if isinstance(stream, StreamId):
        return stream.value
    try:
        return StreamId(str(stream)).value
    except ValueError:
        known = ", ".join(member.value for member in StreamId)
        raise ValueError(f"unknown stream {stream!r} (expected one of: {known})") from None


@dataclass
class Envelope:
    """Decoded inbound message."""

    raw: Dict[str, Any]
    id: Optional[str] = None
    method: Optional[str] = None
    params: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_response(self) -> bool:
        # A missing "result" settles the call with None.
        return self.id is not None and self.method is None

    @property
    def is_stream_notification(self) -> bool:
        return self.id is None and self.method == STREAM_NOTIFY

    @property
    def stream_id(self) -> Optional[str]:
        value = self.params.get("streamId")
        return str(value) if value is not None else None

    @property
    def event(self) -> Any:
        return self.params.get("event")


def encode_request(request_id: str, method: str, params: Optional[Dict[str, Any]] = None) -> str:
    payload: Dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": request_id, "method": method}
    if params:
        cleaned = {key: value for key, value in params.items() if value is not None}
        if cleaned:
            payload["params"] = cleaned
    return json.dumps(payload, separators=(",", ":"))


def decode_message(raw: Union[str, bytes]) -> Envelope:
    """Parse one inbound frame; raises ProtocolError for anything that is not an envelope."""
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ProtocolError(f"frame is not utf-8: {exc}") from exc
    try:
        message = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ProtocolError(f"invalid json: {exc}") from exc
    if not isinstance(message, dict):
        raise ProtocolError(f"expected a JSON object, got {type(message).__name__}")
    msg_id = message.get("id")
    if msg_id is not None and not isinstance(msg_id, (str, int)):
        raise ProtocolError(f"invalid id {msg_id!r}")
    method = message.get("method")
    if method is not None and not isinstance(method, str):
        raise ProtocolError(f"invalid method {method!r}")
    params = message.get("params")
    if params is None:
        params = {}
    elif not isinstance(params, dict):
        raise ProtocolError("params must be an object")
    if "error" in message and not isinstance(message["error"], dict):
        raise ProtocolError("error must be an object")
    envelope = Envelope(
        raw=message,
        id=str(msg_id) if msg_id is not None else None,
        method=method,
        params=params,
    )
    if envelope.is_stream_notification and envelope.stream_id is None:
        raise ProtocolError("streamNotify without streamId")
    return envelope


def normalise_address(address: str) -> str:
    """Validate a service address and return the WebSocket URL to dial.

    ``ws://`` and ``wss://`` URLs are used as given.  The ``http://`` form the
    VM prints at startup (``http://127.0.0.1:8181/AbCd=/``) is rewritten to
    the matching WebSocket endpoint (``ws://127.0.0.1:8181/AbCd=/ws``).
    """
    if not isinstance(address, str) or not address.strip():
        raise ConnectFailed("empty service address")
    text = address.strip()
    try:
        parts = urlsplit(text)
        # Accessing .port validates the numeric range.
        parts.port
    except ValueError as exc:
        raise ConnectFailed(f"malformed service address {text!r}: {exc}") from exc
    scheme = parts.scheme.lower()
    if not parts.hostname:
        raise ConnectFailed(f"service address {text!r} has no host")
    if scheme in ("ws", "wss"):
        return urlunsplit((scheme, parts.netloc, parts.path, parts.query, ""))
    if scheme in ("http", "https"):
        path = parts.path or "/"
        if not path.endswith("/"):
            path += "/"
        return urlunsplit(("ws" if scheme == "http" else "wss", parts.netloc, path + "ws", parts.query, ""))
    raise ConnectFailed(f"unsupported scheme in service address {text!r} (expected ws:// or wss://)")
