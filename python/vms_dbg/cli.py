"""vms-dbg CLI entry point."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List

from vmsdbg import VMServiceClient

from .commands import CommandRegistry, build_registry
from .context import DEFAULT_URL, DebuggerContext
from .history import AddressStore, HistoryStore
from .parser import split_command
from .repl import DebuggerREPL

LOG = logging.getLogger("vms_dbg.cli")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="VM service CLI debugger")
    parser.add_argument(
        "--url",
        default=os.environ.get("VMS_DBG_URL"),
        help=f"Service URL (default: last used address, else {DEFAULT_URL})",
    )
    parser.add_argument("--json", action="store_true", help="Emit JSON output when supported")
    parser.add_argument(
        "--log-level",
        default=os.environ.get("VMS_DBG_LOG", "WARNING"),
        help="Logging level (default WARNING)",
    )
    parser.add_argument(
        "-c",
        "--command",
        action="append",
        help="Execute a command non-interactively (repeatable; quote each command string)",
    )
    parser.add_argument(
        "--history",
        type=Path,
        default=Path.home() / ".vms-dbg-history",
        help="Path to command history file",
    )
    parser.add_argument(
        "--state-dir",
        type=Path,
        default=Path.home() / ".vms-dbg",
        help="Directory for the remembered service address",
    )
    return parser


def main(argv: List[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log_level)
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        print()
        return 0


async def _run(args: argparse.Namespace) -> int:
    address_store = AddressStore(str(args.state_dir) if args.state_dir else None)
    ctx = DebuggerContext(
        url=args.url or address_store.load() or DEFAULT_URL,
        json_output=args.json,
        address_store=address_store,
        client=VMServiceClient(),
    )
    registry = build_registry()
    try:
        if args.command:
            rc = 0
            for command_line in args.command:
                rc = await run_single_command(ctx, registry, command_line)
                if rc != 0:
                    break
            return rc
        repl = DebuggerREPL(ctx, registry, history_store=HistoryStore(str(args.history)))
        return await repl.run()
    finally:
        await ctx.client.dispose()


async def run_single_command(ctx: DebuggerContext, registry: CommandRegistry, command_line: str) -> int:
    argv = split_command(command_line)
    if not argv:
        return 0
    cmd_name, *cmd_args = argv
    if cmd_name.startswith("#parse-error"):
        print(f"Parse error: {' '.join(cmd_args)}")
        return 1
    command = registry.get(cmd_name)
    if not command:
        print(f"Unknown command: {cmd_name}")
        return 1
    try:
        return await command.run(ctx, cmd_args)
    except SystemExit as exc:
        return int(exc.code or 0)
    except Exception as exc:
        LOG.exception("command failed")
        print(f"Command '{cmd_name}' failed: {exc}")
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
