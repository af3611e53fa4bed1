"""Exception hierarchy shared by the vmsdbg modules."""

from __future__ import annotations

from typing import Any, Dict, Optional


class VMServiceError(RuntimeError):
    """Base class for all vmsdbg errors."""


class TransportError(VMServiceError):
    """Raised when the transport cannot complete an operation."""


class ConnectFailed(TransportError):
    """The address is invalid or the channel could not be established."""


class NotConnected(TransportError):
    """A call or send was attempted without an open, ready channel."""


class ProtocolError(VMServiceError):
    """An inbound frame is not a valid protocol envelope."""


class StateTransitionError(VMServiceError):
    """The connection state machine was asked for a transition it does not allow."""


class RemoteError(VMServiceError):
    """The service answered a call with an explicit error object."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(f"[{code}] {message}")
        self.code = code
        self.message = message
        self.data = data

    @classmethod
    def from_payload(cls, payload: Optional[Dict[str, Any]]) -> "RemoteError":
        payload = payload or {}
        try:
            code = int(payload.get("code", 0))
        except (TypeError, ValueError):
            code = 0
        return cls(code, str(payload.get("message") or "unknown error"), payload.get("data"))


class ConnectionLost(VMServiceError):
    """The channel closed while the call was still waiting for its response."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"connection lost: {reason}")
        self.reason = reason
