"""
vmsdbg - protocol client core for VM service debuggers.

This package is the common surface for VM service front-ends (CLI,
dashboards, automation).  It provides the WebSocket transport, request
correlation, stream fan-out, the connection state machine and the client
facade that composes them:

    protocol.py   → envelopes, stream ids, address handling
    transport.py  → one WebSocket channel
    rpc.py        → id allocation and response correlation
    events.py     → stream observer registry and fan-out
    state.py      → connection status and listeners
    client.py     → VMServiceClient facade with typed calls
    models.py     → typed views over well-known events and results
"""

from .config import ClientConfig, TransportConfig  # noqa: F401
from .errors import (  # noqa: F401
    ConnectFailed,
    ConnectionLost,
    NotConnected,
    ProtocolError,
    RemoteError,
    StateTransitionError,
    TransportError,
    VMServiceError,
)
from .protocol import StreamId, decode_message, encode_request, normalise_address  # noqa: F401
from .transport import WebSocketTransport  # noqa: F401
from .rpc import PendingCall, RequestCorrelator  # noqa: F401
from .events import StreamDispatcher  # noqa: F401
from .state import ConnectionStateMachine, ConnectionStatus  # noqa: F401
from .client import VMServiceClient  # noqa: F401
from .models import (  # noqa: F401
    BaseEvent,
    ExtensionEvent,
    GCEvent,
    IsolateEvent,
    LogRecordEvent,
    TimelineEvent,
    parse_event,
)

__all__ = [
    "ClientConfig",
    "TransportConfig",
    "VMServiceError",
    "TransportError",
    "ConnectFailed",
    "NotConnected",
    "ProtocolError",
    "RemoteError",
    "ConnectionLost",
    "StateTransitionError",
    "StreamId",
    "decode_message",
    "encode_request",
    "normalise_address",
    "WebSocketTransport",
    "PendingCall",
    "RequestCorrelator",
    "StreamDispatcher",
    "ConnectionStateMachine",
    "ConnectionStatus",
    "VMServiceClient",
    "BaseEvent",
    "LogRecordEvent",
    "ExtensionEvent",
    "IsolateEvent",
    "GCEvent",
    "TimelineEvent",
    "parse_event",
]

__version__ = "0.1.0"
