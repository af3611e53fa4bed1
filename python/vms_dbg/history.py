"""Persistent command history and last-address helpers."""

from __future__ import annotations

import logging
from collections import deque
from pathlib import Path
from typing import Deque, Iterable, List, Optional

LOGGER = logging.getLogger("vms_dbg.history")


def _read_lines(path: Path) -> List[str]:
    try:
        data = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return []
    except OSError as exc:
        LOGGER.debug("reading %s failed: %s", path, exc)
        return []
    return [line.strip() for line in data.splitlines() if line.strip()]


def _write_lines(path: Path, lines: Iterable[str]) -> None:
    """Best-effort write; the CLI keeps working when the state dir is unusable."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("".join(f"{line}\n" for line in lines), encoding="utf-8")
    except OSError as exc:
        LOGGER.debug("writing %s failed: %s", path, exc)


class HistoryStore:
    """File-backed command history keeping the newest ``limit`` entries."""

    def __init__(self, path: Optional[str], *, limit: int = 1000) -> None:
        self.limit = max(1, int(limit or 1))
        self.path = Path(path).expanduser() if path else None
        self.entries: Deque[str] = deque(maxlen=self.limit)
        if self.path:
            self.entries.extend(_read_lines(self.path))

    def append(self, line: str) -> None:
        text = line.strip()
        if not text or (self.entries and self.entries[-1] == text):
            return
        self.entries.append(text)
        if self.path:
            _write_lines(self.path, self.entries)

    def extend(self, lines: Iterable[str]) -> None:
        for line in lines:
            self.append(line)

    def snapshot(self) -> List[str]:
        return list(self.entries)


class AddressStore:
    """Remembers the last service address that connected successfully."""

    FILENAME = "last_url"

    def __init__(self, state_dir: Optional[str]) -> None:
        self.path = Path(state_dir).expanduser() / self.FILENAME if state_dir else None

    def load(self) -> Optional[str]:
        if not self.path:
            return None
        lines = _read_lines(self.path)
        return lines[0] if lines else None

    def save(self, address: str) -> None:
        if self.path and address.strip():
            _write_lines(self.path, [address.strip()])
