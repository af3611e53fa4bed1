"""Stream commands (listen/cancel/streams)."""

from __future__ import annotations

import argparse
import asyncio
import json
from typing import Any, List

from vmsdbg import StreamId, VMServiceError
from vmsdbg.models import parse_event

from .base import Command
from ..context import DebuggerContext
from ..output import emit_error, emit_result, format_event

STREAM_CHOICES = [member.value for member in StreamId]


def _make_printer(ctx: DebuggerContext, stream: str):
    def printer(event: Any) -> None:
        if ctx.json_output:
            print(json.dumps({"stream": stream, "event": event}, default=str))
        else:
            print(format_event(parse_event(stream, event)))

    return printer


class ListenCommand(Command):
    def __init__(self) -> None:
        super().__init__("listen", "Subscribe to a stream and print its events", aliases=("tail",))
        self._parser = argparse.ArgumentParser(prog="listen", add_help=False)
        self._parser.add_argument("stream", choices=STREAM_CHOICES, help="Stream id")
        self._parser.add_argument(
            "--wait",
            type=float,
            default=0.0,
            help="Keep printing for this many seconds before returning (for -c mode)",
        )

    async def run(self, ctx: DebuggerContext, argv: List[str]) -> int:
        try:
            args = self._parser.parse_args(argv)
        except SystemExit:
            return 1
        ctx.attach_printer(args.stream, _make_printer(ctx, args.stream))
        try:
            client = await ctx.ensure_connected()
            await client.subscribe_to_channel(args.stream)
        except VMServiceError as exc:
            ctx.detach_printer(args.stream)
            emit_error(ctx, message=f"listen {args.stream} failed: {exc}")
            return 2
        emit_result(ctx, message=f"Listening to {args.stream}", data={"result": "listening", "stream": args.stream})
        if args.wait > 0:
            await asyncio.sleep(args.wait)
        return 0


class CancelCommand(Command):
    def __init__(self) -> None:
        super().__init__("cancel", "Unsubscribe from a stream and stop printing it", aliases=("unlisten",))
        self._parser = argparse.ArgumentParser(prog="cancel", add_help=False)
        self._parser.add_argument("stream", choices=STREAM_CHOICES, help="Stream id")

    async def run(self, ctx: DebuggerContext, argv: List[str]) -> int:
        try:
            args = self._parser.parse_args(argv)
        except SystemExit:
            return 1
        ctx.detach_printer(args.stream)
        try:
            await ctx.client.unsubscribe_from_channel(args.stream)
        except VMServiceError as exc:
            emit_error(ctx, message=f"cancel {args.stream} failed: {exc}")
            return 2
        emit_result(ctx, message=f"Stopped listening to {args.stream}", data={"result": "cancelled", "stream": args.stream})
        return 0


class StreamsCommand(Command):
    def __init__(self) -> None:
        super().__init__("streams", "List known and subscribed streams")

    async def run(self, ctx: DebuggerContext, argv: List[str]) -> int:
        client = ctx.client
        listening = set(client.listening_streams())
        subscribed = set(client.dispatcher.subscribed_streams())
        rows = [
            {"stream": name, "subscribed": name in subscribed, "listening": name in listening}
            for name in STREAM_CHOICES
        ]
        if ctx.json_output:
            emit_result(ctx, message="", data=rows)
            return 0
        for row in rows:
            marker = "*" if row["listening"] else ("~" if row["subscribed"] else " ")
            print(f"  {marker} {row['stream']}")
        return 0
