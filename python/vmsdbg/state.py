"""Connection lifecycle state machine."""

from __future__ import annotations

import enum
import logging
from collections import deque
from typing import Callable, Deque, Dict, FrozenSet, List

from .errors import StateTransitionError

logger = logging.getLogger(__name__)


class ConnectionStatus(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value


StatusListener = Callable[[ConnectionStatus], None]

# A new connect attempt (-> CONNECTING) and a caller disconnect
# (-> DISCONNECTED) are allowed from every state.
_TRANSITIONS: Dict[ConnectionStatus, FrozenSet[ConnectionStatus]] = {
    ConnectionStatus.DISCONNECTED: frozenset({ConnectionStatus.CONNECTING}),
    ConnectionStatus.CONNECTING: frozenset(
        {ConnectionStatus.CONNECTED, ConnectionStatus.ERROR, ConnectionStatus.DISCONNECTED}
    ),
    ConnectionStatus.CONNECTED: frozenset(
        {ConnectionStatus.DISCONNECTED, ConnectionStatus.ERROR, ConnectionStatus.CONNECTING}
    ),
    ConnectionStatus.ERROR: frozenset({ConnectionStatus.CONNECTING, ConnectionStatus.DISCONNECTED}),
}


class ConnectionStateMachine:
    """Single authoritative connection status with replaying listeners."""

    def __init__(self, *, history: int = 32) -> None:
        self._status = ConnectionStatus.DISCONNECTED
        self._listeners: List[StatusListener] = []
        self._history: Deque[ConnectionStatus] = deque([self._status], maxlen=max(1, history))

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def history(self) -> List[ConnectionStatus]:
        return list(self._history)

    def can_transition(self, new_status: ConnectionStatus) -> bool:
        if new_status == self._status:
            return True
        return new_status in _TRANSITIONS[self._status]

    def transition(self, new_status: ConnectionStatus) -> bool:
        """Move to ``new_status`` and notify listeners; False when already there."""
        new_status = ConnectionStatus(new_status)
        if new_status == self._status:
            return False
        if new_status not in _TRANSITIONS[self._status]:
            raise StateTransitionError(f"illegal transition {self._status} -> {new_status}")
        logger.debug("connection status %s -> %s", self._status, new_status)
        self._status = new_status
        self._history.append(new_status)
        for listener in list(self._listeners):
            self._call(listener, new_status)
        return True

    def restart(self) -> None:
        """Enter CONNECTING for a new attempt; listeners hear it even when already connecting."""
        if self._status != ConnectionStatus.CONNECTING:
            self.transition(ConnectionStatus.CONNECTING)
            return
        logger.debug("connection attempt restarted")
        self._history.append(self._status)
        for listener in list(self._listeners):
            self._call(listener, self._status)

    def add_listener(self, listener: StatusListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)
        self._call(listener, self._status)

    def remove_listener(self, listener: StatusListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def clear_listeners(self) -> None:
        self._listeners.clear()

    def _call(self, listener: StatusListener, status: ConnectionStatus) -> None:
        try:
            listener(status)
        except Exception:
            logger.exception("connection status listener %r failed", listener)
