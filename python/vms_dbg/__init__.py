"""
vms-dbg CLI package.

Interactive command-line debugger for VM service endpoints, built on the
``vmsdbg`` client core.  Use ``vms-dbg`` or ``python -m vms_dbg`` to
launch it.
"""

from __future__ import annotations

from .cli import main

__all__ = ["main"]
__version__ = "0.1.0"
