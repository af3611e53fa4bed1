"""Lightweight command parsing helpers for vms-dbg."""

from __future__ import annotations

import shlex
from typing import List


def split_command(line: str) -> List[str]:
    """Split a command line into argv tokens using shlex rules."""
    if not line:
        return []
    try:
        return shlex.split(line, comments=False, posix=True)
    except ValueError as exc:
        # Keep the raw line so callers can report a friendlier error.
        return ["#parse-error", str(exc)]
