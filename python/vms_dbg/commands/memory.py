"""Memory inspection commands (heap usage and allocation profile)."""

from __future__ import annotations

import argparse
from dataclasses import asdict
from typing import List

from vmsdbg import VMServiceError
from vmsdbg.models import heap_usage, top_allocations

from .base import Command
from ..context import DebuggerContext
from ..output import emit_error, emit_result, render_allocations, render_memory


class MemoryCommand(Command):
    def __init__(self) -> None:
        super().__init__("memory", "Show heap usage for an isolate", aliases=("mem",))
        self._parser = argparse.ArgumentParser(prog="memory", add_help=False)
        self._parser.add_argument("isolate_id", help="Isolate id")

    async def run(self, ctx: DebuggerContext, argv: List[str]) -> int:
        try:
            args = self._parser.parse_args(argv)
        except SystemExit:
            return 1
        try:
            client = await ctx.ensure_connected()
            usage = await client.get_memory_usage(args.isolate_id)
        except VMServiceError as exc:
            emit_error(ctx, message=f"getMemoryUsage failed: {exc}")
            return 2
        if ctx.json_output:
            emit_result(ctx, message="", data=heap_usage(usage))
        else:
            render_memory(usage)
        return 0


class AllocationCommand(Command):
    def __init__(self) -> None:
        super().__init__("alloc", "Show the largest classes of an isolate's heap", aliases=("allocations",))
        self._parser = argparse.ArgumentParser(prog="alloc", add_help=False)
        self._parser.add_argument("isolate_id", help="Isolate id")
        self._parser.add_argument("--gc", action="store_true", help="Collect garbage before sampling")
        self._parser.add_argument("--top", type=int, default=10, help="Number of classes to show (default 10)")

    async def run(self, ctx: DebuggerContext, argv: List[str]) -> int:
        try:
            args = self._parser.parse_args(argv)
        except SystemExit:
            return 1
        try:
            client = await ctx.ensure_connected()
            profile = await client.get_allocation_profile(args.isolate_id, gc=True if args.gc else None)
        except VMServiceError as exc:
            emit_error(ctx, message=f"getAllocationProfile failed: {exc}")
            return 2
        stats = top_allocations(profile, limit=args.top)
        if ctx.json_output:
            emit_result(ctx, message="", data=[asdict(item) for item in stats])
        else:
            render_allocations(stats)
        return 0
