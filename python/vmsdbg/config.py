"""Configuration dataclasses for the transport and the client facade."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class TransportConfig:
    open_timeout: float = 10.0
    close_timeout: float = 2.0
    ping_interval: Optional[float] = 20.0
    ping_timeout: Optional[float] = 20.0
    # Allocation profiles and timelines easily exceed the websockets 1 MiB default.
    max_size: Optional[int] = None


@dataclass
class ClientConfig:
    transport: TransportConfig = field(default_factory=TransportConfig)
    resubscribe_on_reconnect: bool = True
    state_history: int = 32
