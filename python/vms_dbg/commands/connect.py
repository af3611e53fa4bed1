"""Connection commands (connect/disconnect/status)."""

from __future__ import annotations

import argparse
from typing import List

from vmsdbg import ConnectFailed

from .base import Command
from ..context import DebuggerContext
from ..output import emit_error, emit_result


class ConnectCommand(Command):
    def __init__(self) -> None:
        super().__init__("connect", "Connect to a VM service", aliases=("open",))
        self._parser = argparse.ArgumentParser(prog="connect", add_help=False)
        self._parser.add_argument("url", nargs="?", help="Service URL (ws://host:port/path/ws or the http:// URI)")

    async def run(self, ctx: DebuggerContext, argv: List[str]) -> int:
        try:
            args = self._parser.parse_args(argv)
        except SystemExit:
            return 1
        url = args.url or ctx.url
        try:
            await ctx.connect(url)
        except ConnectFailed as exc:
            emit_error(ctx, message=f"connect failed: {exc}")
            return 2
        data = {"result": "connected", "url": ctx.client.address, "streams": ctx.client.listening_streams()}
        emit_result(ctx, message=f"Connected to {ctx.client.address}", data=data)
        return 0


class DisconnectCommand(Command):
    def __init__(self) -> None:
        super().__init__("disconnect", "Close the service connection", aliases=("close",))

    async def run(self, ctx: DebuggerContext, argv: List[str]) -> int:
        await ctx.disconnect()
        emit_result(ctx, message="Disconnected", data={"result": "disconnected"})
        return 0


class StatusCommand(Command):
    def __init__(self) -> None:
        super().__init__("status", "Show connection status")

    async def run(self, ctx: DebuggerContext, argv: List[str]) -> int:
        client = ctx.client
        status = client.status.value
        data = {
            "status": status,
            "url": client.address or ctx.url,
            "pending_calls": client.pending_calls,
            "streams": client.listening_streams(),
            "subscribed": client.dispatcher.subscribed_streams(),
        }
        emit_result(ctx, message=f"Status: {status} url={data['url']}", data=data)
        if not ctx.json_output and data["streams"]:
            print(f"  streams: {', '.join(data['streams'])}")
        if not ctx.json_output and client.pending_calls:
            print(f"  pending calls: {client.pending_calls}")
        return 0
