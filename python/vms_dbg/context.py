"""Debugger context shared by the CLI commands."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from vmsdbg import ConnectionStatus, VMServiceClient
from vmsdbg.events import StreamObserver

from .history import AddressStore

LOGGER = logging.getLogger("vms_dbg.context")

DEFAULT_URL = "ws://127.0.0.1:8181/ws"


@dataclass
class DebuggerContext:
    """Holds the client and the CLI settings for one debugger run."""

    url: str = DEFAULT_URL
    json_output: bool = False
    address_store: AddressStore = field(default_factory=lambda: AddressStore(None))
    client: VMServiceClient = field(default_factory=VMServiceClient)
    printers: Dict[str, StreamObserver] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        self.client.add_connection_status_listener(self._log_status)

    def _log_status(self, status: ConnectionStatus) -> None:
        LOGGER.info("connection status: %s", status)

    async def ensure_connected(self) -> VMServiceClient:
        """Connect to ``self.url`` unless the client already is."""
        if not self.client.is_connected:
            await self.connect(self.url)
        return self.client

    async def connect(self, url: str) -> VMServiceClient:
        await self.client.connect(url)
        self.url = url
        self.address_store.save(url)
        return self.client

    async def disconnect(self) -> None:
        await self.client.disconnect()

    def attach_printer(self, stream: str, printer: StreamObserver) -> None:
        previous = self.printers.pop(stream, None)
        if previous is not None:
            self.client.remove_channel_observer(stream, previous)
        self.printers[stream] = printer
        self.client.add_channel_observer(stream, printer)

    def detach_printer(self, stream: str) -> Optional[StreamObserver]:
        printer = self.printers.pop(stream, None)
        if printer is not None:
            self.client.remove_channel_observer(stream, printer)
        return printer
