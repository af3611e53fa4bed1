"""Request/response correlation over a shared channel."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .errors import ConnectionLost, RemoteError
from .protocol import Envelope, encode_request

logger = logging.getLogger(__name__)

Sender = Callable[[str], Awaitable[None]]


@dataclass
class PendingCall:
    id: str
    method: str
    future: asyncio.Future


class RequestCorrelator:
    """Match responses to the calls that requested them by id.

    One correlator lives for one channel: ids start at ``"0"`` and grow
    monotonically, so an id is never reused within a connection.  Every
    pending call settles exactly once, either from a response or from
    :meth:`fail_all` when the channel goes away.
    """

    def __init__(self, send: Sender) -> None:
        self._send = send
        self._next_id = 0
        self._pending: Dict[str, PendingCall] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def pending_methods(self) -> List[str]:
        return [entry.method for entry in self._pending.values()]

    def _next_seq(self) -> str:
        seq = self._next_id
        self._next_id += 1
        return str(seq)

    async def call(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Send ``method`` and wait for the correlated result."""
        request_id = self._next_seq()
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = PendingCall(request_id, method, future)
        try:
            await self._send(encode_request(request_id, method, params))
        except BaseException:
            self._pending.pop(request_id, None)
            raise
        logger.debug("call %s id=%s pending", method, request_id)
        try:
            return await future
        finally:
            # Only still present when the caller stopped waiting (cancelled).
            self._pending.pop(request_id, None)

    def handle_response(self, envelope: Envelope) -> bool:
        """Settle the call matching ``envelope.id``; returns False when dropped."""
        if envelope.id is None:
            return False
        entry = self._pending.pop(envelope.id, None)
        if entry is None:
            logger.debug("dropping response for unknown id %s", envelope.id)
            return False
        if entry.future.done():
            return False
        error = envelope.raw.get("error")
        if error is not None:
            remote = RemoteError.from_payload(error)
            logger.debug("call %s id=%s failed: %s", entry.method, entry.id, remote)
            entry.future.set_exception(remote)
        else:
            entry.future.set_result(envelope.raw.get("result"))
        return True

    def fail_all(self, reason: str) -> int:
        """Fail every pending call with ConnectionLost and clear the pending set."""
        pending = list(self._pending.values())
        self._pending.clear()
        failed = 0
        for entry in pending:
            if entry.future.done():
                continue
            entry.future.set_exception(ConnectionLost(reason))
            failed += 1
        if failed:
            logger.info("failed %d pending call(s): %s", failed, reason)
        return failed
