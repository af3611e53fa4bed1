"""VM and isolate inspection commands."""

from __future__ import annotations

import argparse
from typing import List

from vmsdbg import VMServiceError

from .base import Command
from ..context import DebuggerContext
from ..output import emit_error, emit_result, render_isolate, render_vm


class VmCommand(Command):
    def __init__(self) -> None:
        super().__init__("vm", "Show VM information and isolates", aliases=("dashboard",))

    async def run(self, ctx: DebuggerContext, argv: List[str]) -> int:
        try:
            client = await ctx.ensure_connected()
            vm = await client.get_vm()
        except VMServiceError as exc:
            emit_error(ctx, message=f"getVM failed: {exc}")
            return 2
        if not isinstance(vm, dict):
            emit_error(ctx, message="getVM returned an invalid payload")
            return 1
        if ctx.json_output:
            emit_result(ctx, message="", data=vm)
        else:
            render_vm(vm)
        return 0


class IsolateCommand(Command):
    def __init__(self) -> None:
        super().__init__("isolate", "Show details for an isolate", aliases=("iso",))
        self._parser = argparse.ArgumentParser(prog="isolate", add_help=False)
        self._parser.add_argument("isolate_id", help="Isolate id (e.g. isolates/1234)")

    async def run(self, ctx: DebuggerContext, argv: List[str]) -> int:
        try:
            args = self._parser.parse_args(argv)
        except SystemExit:
            return 1
        try:
            client = await ctx.ensure_connected()
            isolate = await client.get_isolate(args.isolate_id)
        except VMServiceError as exc:
            emit_error(ctx, message=f"getIsolate failed: {exc}")
            return 2
        if not isinstance(isolate, dict):
            emit_error(ctx, message="getIsolate returned an invalid payload")
            return 1
        if ctx.json_output:
            emit_result(ctx, message="", data=isolate)
        else:
            render_isolate(isolate)
        return 0
