"""Typed views over well-known stream events and call results.

The client forwards every payload verbatim; these helpers exist for
front-ends that want to render events without poking at raw dictionaries.
Unknown kinds fall back to :class:`BaseEvent`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# package:logging level values as reported in Logging events.
LOG_LEVELS = [
    (2000, "OFF"),
    (1200, "SHOUT"),
    (1000, "SEVERE"),
    (900, "WARNING"),
    (800, "INFO"),
    (700, "CONFIG"),
    (500, "FINE"),
    (400, "FINER"),
    (300, "FINEST"),
    (0, "ALL"),
]

ISOLATE_KINDS = {
    "IsolateStart",
    "IsolateRunnable",
    "IsolateExit",
    "IsolateUpdate",
    "IsolateReload",
    "ServiceExtensionAdded",
}


def _to_int(value: Any) -> Optional[int]:
    try:
        if value is None:
            return None
        return int(value)
    except (TypeError, ValueError):
        return None


def _instance_text(value: Any) -> str:
    """Log record fields arrive as InstanceRefs; fall back to plain values."""
    if isinstance(value, dict):
        text = value.get("valueAsString")
        if text is None:
            return ""
        return str(text)
    if value is None:
        return ""
    return str(value)


def level_name(level: Optional[int]) -> str:
    if level is None:
        return "UNKNOWN"
    for threshold, name in LOG_LEVELS:
        if level >= threshold:
            return name
    return "UNKNOWN"


@dataclass
class BaseEvent:
    stream: str
    kind: str
    timestamp: Optional[int]
    isolate_id: Optional[str]
    isolate_name: Optional[str]
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class LogRecordEvent(BaseEvent):
    message: str = ""
    level: Optional[int] = None
    level_name: str = "UNKNOWN"
    sequence_number: Optional[int] = None
    logger_name: str = ""
    error: str = ""
    stack_trace: str = ""


@dataclass
class ExtensionEvent(BaseEvent):
    extension_kind: str = ""
    extension_data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class IsolateEvent(BaseEvent):
    extension_rpc: Optional[str] = None


@dataclass
class GCEvent(BaseEvent):
    new_space: Dict[str, Any] = field(default_factory=dict)
    old_space: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TimelineEvent(BaseEvent):
    trace_events: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class AllocationStats:
    name: str
    count: int
    size: int
    percent_size: float


def parse_event(stream: str, event: Any) -> BaseEvent:
    """Convert a raw stream event into a typed dataclass."""

    data = event if isinstance(event, dict) else {"value": event}
    kind = str(data.get("kind") or "")
    isolate = data.get("isolate") if isinstance(data.get("isolate"), dict) else {}
    common = dict(
        stream=str(stream),
        kind=kind,
        timestamp=_to_int(data.get("timestamp")),
        isolate_id=isolate.get("id"),
        isolate_name=isolate.get("name"),
        data=data,
    )

    if kind == "Logging" or "logRecord" in data:
        record = data.get("logRecord") if isinstance(data.get("logRecord"), dict) else data
        level = _to_int(record.get("level"))
        return LogRecordEvent(
            **common,
            message=_instance_text(record.get("message")),
            level=level,
            level_name=level_name(level),
            sequence_number=_to_int(record.get("sequenceNumber")),
            logger_name=_instance_text(record.get("loggerName") or record.get("name")),
            error=_instance_text(record.get("error")),
            stack_trace=_instance_text(record.get("stackTrace")),
        )
    if kind == "Extension":
        extension_data = data.get("extensionData")
        return ExtensionEvent(
            **common,
            extension_kind=str(data.get("extensionKind") or ""),
            extension_data=extension_data if isinstance(extension_data, dict) else {},
        )
    if kind in ISOLATE_KINDS:
        return IsolateEvent(**common, extension_rpc=data.get("extensionRPC"))
    if kind == "GC":
        new_space = data.get("new")
        old_space = data.get("old")
        return GCEvent(
            **common,
            new_space=new_space if isinstance(new_space, dict) else {},
            old_space=old_space if isinstance(old_space, dict) else {},
        )
    if kind == "TimelineEvents" or "traceEvents" in data:
        entries = data.get("timelineEvents") or data.get("traceEvents") or []
        return TimelineEvent(
            **common,
            trace_events=[dict(entry) for entry in entries if isinstance(entry, dict)],
        )
    return BaseEvent(**common)


def heap_usage(memory_usage: Any) -> Dict[str, int]:
    """Normalise a getMemoryUsage result to ``used``/``capacity``/``external`` bytes."""
    if not isinstance(memory_usage, dict):
        return {"used": 0, "capacity": 0, "external": 0}
    heap = memory_usage.get("heapUsage")
    if isinstance(heap, dict):
        # Nested {used, capacity, external} shape.
        source = heap
    else:
        source = memory_usage
    return {
        "used": _to_int(source.get("used", source.get("heapUsage"))) or 0,
        "capacity": _to_int(source.get("capacity", source.get("heapCapacity"))) or 0,
        "external": _to_int(source.get("external", memory_usage.get("externalUsage"))) or 0,
    }


def top_allocations(profile: Any, limit: int = 10) -> List[AllocationStats]:
    """Largest classes of an allocation profile, biggest first."""
    if not isinstance(profile, dict):
        return []
    members = profile.get("members")
    if not isinstance(members, list):
        return []
    used = heap_usage(profile.get("memoryUsage"))["used"]
    stats: List[AllocationStats] = []
    for member in members:
        if not isinstance(member, dict):
            continue
        class_ref = member.get("classRef") if isinstance(member.get("classRef"), dict) else {}
        name = member.get("name") or class_ref.get("name") or "Unknown"
        size = _to_int(member.get("size", member.get("bytesCurrent"))) or 0
        count = _to_int(member.get("count", member.get("instancesCurrent"))) or 0
        percent = (size / used * 100.0) if used else 0.0
        stats.append(AllocationStats(name=str(name), count=count, size=size, percent_size=percent))
    stats.sort(key=lambda item: item.size, reverse=True)
    return stats[: max(0, limit)]


def format_bytes(value: int) -> str:
    size = float(value)
    for unit in ("B", "KB", "MB", "GB"):
        if abs(size) < 1024.0 or unit == "GB":
            if unit == "B":
                return f"{int(size)} B"
            return f"{size:.2f} {unit}"
        size /= 1024.0
    return f"{size:.2f} GB"
