"""Terminal sessions for workspaces.

Provides the TerminalManager protocol and a local subprocess implementation
that exports the owning workspace id to every spawned shell.
"""

from agentorch.terminal.protocol import TerminalManager
from agentorch.terminal.subprocess_manager import (
    SubprocessTerminalManager,
    TerminalNotFoundError,
    TerminalSession,
)

__all__ = [
    "SubprocessTerminalManager",
    "TerminalManager",
    "TerminalNotFoundError",
    "TerminalSession",
]
