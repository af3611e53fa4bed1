"""Interactive REPL for vms-dbg."""

from __future__ import annotations

import logging
from typing import Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.history import InMemoryHistory
from prompt_toolkit.patch_stdout import patch_stdout

from vmsdbg import StreamId

from .commands import CommandRegistry
from .context import DebuggerContext
from .history import HistoryStore
from .parser import split_command

LOGGER = logging.getLogger("vms_dbg.repl")


class DebuggerREPL:
    """prompt_toolkit REPL running on the client's event loop.

    Prompting is asynchronous so stream events keep arriving (and printing
    above the prompt) while the user types.
    """

    def __init__(
        self,
        ctx: DebuggerContext,
        registry: CommandRegistry,
        *,
        history_store: Optional[HistoryStore] = None,
    ) -> None:
        self.ctx = ctx
        self.registry = registry
        self.history_store = history_store

    def _build_session(self) -> PromptSession:
        history = InMemoryHistory()
        if self.history_store:
            for entry in self.history_store.snapshot():
                history.append_string(entry)
        words = self.registry.names() + [member.value for member in StreamId]
        completer = WordCompleter(words, ignore_case=False, sentence=True)
        return PromptSession("vm> ", history=history, completer=completer, complete_while_typing=True)

    async def run(self) -> int:
        session = self._build_session()
        buffer: list[str] = []
        while True:
            try:
                with patch_stdout():
                    line = await session.prompt_async()
            except (EOFError, KeyboardInterrupt):
                print()
                return 0
            if self._handle_multiline(buffer, line):
                continue
            payload = " ".join(buffer) if buffer else line
            buffer.clear()
            self._record_history(payload)
            try:
                await self.dispatch(payload)
            except SystemExit as exc:
                return int(exc.code or 0)

    async def dispatch(self, line: str) -> Optional[int]:
        stripped = line.strip()
        if not stripped:
            return None
        argv = split_command(stripped)
        if not argv:
            return None
        cmd_name, *cmd_args = argv
        if cmd_name.startswith("#parse-error"):
            print(f"Parse error: {cmd_args[-1] if cmd_args else cmd_name}")
            return 1
        command = self.registry.get(cmd_name)
        if not command:
            print(f"Unknown command: {cmd_name}")
            return 1
        try:
            return await command.run(self.ctx, cmd_args)
        except SystemExit:
            raise
        except Exception as exc:
            LOGGER.exception("command failed")
            print(f"Command '{cmd_name}' failed: {exc}")
            return 1

    def _handle_multiline(self, buffer: list[str], line: str) -> bool:
        stripped = line.rstrip()
        if stripped.endswith("\\"):
            buffer.append(stripped[:-1])
            return True
        if buffer:
            buffer.append(stripped)
            return False
        return False

    def _record_history(self, entry: str) -> None:
        stripped = entry.strip()
        if stripped and self.history_store:
            self.history_store.append(stripped)
