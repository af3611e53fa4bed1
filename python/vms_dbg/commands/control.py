"""Execution control commands (pause/resume/eval)."""

from __future__ import annotations

import argparse
import json
from typing import List

from vmsdbg import RemoteError, VMServiceError

from .base import Command
from ..context import DebuggerContext
from ..output import emit_error, emit_result


class PauseCommand(Command):
    def __init__(self) -> None:
        super().__init__("pause", "Pause an isolate")
        self._parser = argparse.ArgumentParser(prog="pause", add_help=False)
        self._parser.add_argument("isolate_id", help="Isolate to pause")

    async def run(self, ctx: DebuggerContext, argv: List[str]) -> int:
        try:
            args = self._parser.parse_args(argv)
        except SystemExit:
            return 1
        try:
            client = await ctx.ensure_connected()
            await client.pause(args.isolate_id)
        except VMServiceError as exc:
            emit_error(ctx, message=f"pause failed: {exc}")
            return 2
        emit_result(ctx, message=f"Paused {args.isolate_id}", data={"result": "paused", "isolate": args.isolate_id})
        return 0


class ResumeCommand(Command):
    def __init__(self) -> None:
        super().__init__("resume", "Resume a paused isolate", aliases=("continue", "cont"))
        self._parser = argparse.ArgumentParser(prog="resume", add_help=False)
        self._parser.add_argument("isolate_id", help="Isolate to resume")

    async def run(self, ctx: DebuggerContext, argv: List[str]) -> int:
        try:
            args = self._parser.parse_args(argv)
        except SystemExit:
            return 1
        try:
            client = await ctx.ensure_connected()
            await client.resume(args.isolate_id)
        except VMServiceError as exc:
            emit_error(ctx, message=f"resume failed: {exc}")
            return 2
        emit_result(ctx, message=f"Resumed {args.isolate_id}", data={"result": "resumed", "isolate": args.isolate_id})
        return 0


class EvalCommand(Command):
    def __init__(self) -> None:
        super().__init__("eval", "Evaluate an expression against a target object", aliases=("print", "p"))
        self._parser = argparse.ArgumentParser(prog="eval", add_help=False)
        self._parser.add_argument("isolate_id", help="Isolate id")
        self._parser.add_argument("target_id", help="Target object id (library, class or instance)")
        self._parser.add_argument("expression", nargs="+", help="Expression to evaluate")

    async def run(self, ctx: DebuggerContext, argv: List[str]) -> int:
        try:
            args = self._parser.parse_args(argv)
        except SystemExit:
            return 1
        expression = " ".join(args.expression)
        try:
            client = await ctx.ensure_connected()
            result = await client.evaluate(args.isolate_id, args.target_id, expression)
        except RemoteError as exc:
            emit_error(ctx, message=f"eval failed: {exc.message}", data={"code": exc.code, "data": exc.data})
            return 1
        except VMServiceError as exc:
            emit_error(ctx, message=f"eval failed: {exc}")
            return 2
        if isinstance(result, dict) and "valueAsString" in result:
            text = str(result["valueAsString"])
        else:
            text = json.dumps(result, default=str)
        emit_result(ctx, message=f"{expression} = {text}", data=result)
        return 0
