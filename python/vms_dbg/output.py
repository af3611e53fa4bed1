"""Output helpers for vms-dbg."""

from __future__ import annotations

import datetime
import json
from typing import Any, Dict, Mapping, Optional, Sequence

from vmsdbg.models import (
    AllocationStats,
    BaseEvent,
    ExtensionEvent,
    GCEvent,
    IsolateEvent,
    LogRecordEvent,
    TimelineEvent,
    format_bytes,
    heap_usage,
)

from .context import DebuggerContext


def _json_dump(payload: Any) -> str:
    return json.dumps(payload, indent=2, sort_keys=True, default=str)


def emit_result(ctx: DebuggerContext, *, message: str, data: Optional[Any] = None) -> None:
    """Emit a successful command result."""
    if ctx.json_output:
        payload: Dict[str, Any] = {"status": "ok"}
        if data is not None:
            payload["result"] = data
        else:
            payload["message"] = message
        print(_json_dump(payload))
    else:
        print(message)


def emit_error(ctx: DebuggerContext, *, message: str, data: Optional[Mapping[str, Any]] = None) -> None:
    """Emit an error message respecting JSON mode."""
    payload: Dict[str, Any] = {"status": "error", "error": message}
    if data:
        payload["details"] = dict(data)
    if ctx.json_output:
        print(_json_dump(payload))
    else:
        print(f"error: {message}")


def _format_millis(value: Any) -> str:
    try:
        stamp = datetime.datetime.fromtimestamp(int(value) / 1000.0)
    except (TypeError, ValueError, OverflowError, OSError):
        return "-"
    return stamp.strftime("%H:%M:%S.%f")[:-3]


def render_vm(vm: Mapping[str, Any]) -> None:
    """Print the VM summary and its isolate table."""
    print(f"  vm: {vm.get('name', '-')} version={vm.get('version', '-')}")
    for key, label in (("hostCPU", "host cpu"), ("targetCPU", "target cpu"), ("architectureBits", "bits"), ("pid", "pid")):
        if key in vm:
            print(f"    {label:<12}: {vm.get(key)}")
    if "startTime" in vm:
        print(f"    {'started':<12}: {_format_millis(vm.get('startTime'))}")
    render_isolate_table(vm.get("isolates") or [])
    system = vm.get("systemIsolates") or []
    if system:
        print(f"  system isolates: {len(system)}")


def render_isolate_table(isolates: Sequence[Mapping[str, Any]]) -> None:
    if not isolates:
        print("  isolates: (none)")
        return
    header = "      ID                            Number                Name"
    print("  isolates:")
    print(header)
    print("      " + "-" * (len(header) - 6))
    for isolate in isolates:
        if not isinstance(isolate, Mapping):
            continue
        iso_id = isolate.get("id", "-")
        number = isolate.get("number", "-")
        name = isolate.get("name", "")
        print(f"      {str(iso_id):<29} {str(number):<21} {name}")


def render_isolate(isolate: Mapping[str, Any]) -> None:
    """Render detailed isolate info."""
    print(f"  isolate {isolate.get('id', '-')} name={isolate.get('name', '-')}")
    for key in ("number", "runnable", "isSystemIsolate", "livePorts", "pauseOnExit"):
        if key in isolate:
            print(f"    {key:<16}: {isolate.get(key)}")
    if "startTime" in isolate:
        print(f"    {'startTime':<16}: {_format_millis(isolate.get('startTime'))}")
    pause_event = isolate.get("pauseEvent")
    if isinstance(pause_event, Mapping):
        print(f"    {'pauseEvent':<16}: {pause_event.get('kind', '-')}")
    libraries = isolate.get("libraries")
    if isinstance(libraries, list):
        print(f"    {'libraries':<16}: {len(libraries)}")
    extensions = isolate.get("extensionRPCs")
    if isinstance(extensions, list) and extensions:
        print(f"    {'extensions':<16}: {', '.join(str(ext) for ext in extensions)}")


def render_memory(usage: Any) -> None:
    heap = heap_usage(usage)
    capacity = heap["capacity"] or 1
    percent = heap["used"] / capacity * 100.0
    print(f"  heap used     : {format_bytes(heap['used'])} ({percent:.1f}%)")
    print(f"  heap capacity : {format_bytes(heap['capacity'])}")
    print(f"  external      : {format_bytes(heap['external'])}")


def render_allocations(stats: Sequence[AllocationStats]) -> None:
    if not stats:
        print("  allocations: (none)")
        return
    header = "      Size          Count       %Heap  Class"
    print("  allocations:")
    print(header)
    print("      " + "-" * (len(header) - 6))
    for item in stats:
        print(f"      {format_bytes(item.size):>12}  {item.count:>9}  {item.percent_size:>6.2f}  {item.name}")


def format_event(event: BaseEvent) -> str:
    """One-line rendering of a stream event."""
    stamp = _format_millis(event.timestamp) if event.timestamp is not None else "--:--:--.---"
    prefix = f"[{stamp}] {event.stream}"
    if isinstance(event, LogRecordEvent):
        name = f" {event.logger_name}" if event.logger_name else ""
        line = f"{prefix} {event.level_name}{name}: {event.message}"
        if event.error:
            line += f" ({event.error})"
        return line
    if isinstance(event, ExtensionEvent):
        return f"{prefix} {event.extension_kind} {json.dumps(event.extension_data, default=str)}"
    if isinstance(event, IsolateEvent):
        target = event.isolate_name or event.isolate_id or "?"
        suffix = f" {event.extension_rpc}" if event.extension_rpc else ""
        return f"{prefix} {event.kind} {target}{suffix}"
    if isinstance(event, GCEvent):
        used = heap_usage({"heapUsage": event.old_space.get("used"), "heapCapacity": event.old_space.get("capacity")})
        return f"{prefix} GC old={format_bytes(used['used'])}/{format_bytes(used['capacity'])}"
    if isinstance(event, TimelineEvent):
        return f"{prefix} {len(event.trace_events)} trace event(s)"
    return f"{prefix} {event.kind or 'event'} {json.dumps(event.data, default=str)}"


__all__ = [
    "emit_result",
    "emit_error",
    "render_vm",
    "render_isolate_table",
    "render_isolate",
    "render_memory",
    "render_allocations",
    "format_event",
]
