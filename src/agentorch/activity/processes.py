"""Finds agent processes running under a terminal's shell.

Codex has no prompt-submit hook, so the terminal side decides whether it is
running by looking at the shell's descendant processes.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

import psutil

from agentorch.logging import TRACE, get_logger

log = get_logger("activity.processes")

_LAUNCHER_EXT_RE = re.compile(r"\.(?:exe|cmd|bat|ps1|com)$")
_SCRIPT_RUNNERS = {"node", "bun"}


def _basename(token: str) -> str:
    token = token.strip("'\"").replace("\\", "/")
    return token.rsplit("/", 1)[-1].lower()


def _is_codex_path(token: str) -> bool:
    if not token:
        return False
    base = _basename(token)
    return (
        _LAUNCHER_EXT_RE.sub("", base) == "codex"
        or base == "codex.js"
        or base.startswith("codex-")
    )


def looks_like_codex(name: str, cmdline: Sequence[str] = ()) -> bool:
    """True if a process name or command line is a Codex CLI.

    Matches ``codex``, ``codex.exe``, ``codex-<platform>`` binaries and
    ``node``/``bun`` running a ``codex.js`` script.
    """
    if _is_codex_path(name):
        return True
    if not cmdline:
        return False
    first = cmdline[0]
    if _is_codex_path(first):
        return True
    runner = _LAUNCHER_EXT_RE.sub("", _basename(first))
    return runner in _SCRIPT_RUNNERS and len(cmdline) > 1 and _is_codex_path(cmdline[1])


def is_codex_running_under(root_pid: int) -> bool:
    """True if a Codex process is a descendant of ``root_pid``."""
    try:
        children = psutil.Process(root_pid).children(recursive=True)
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return False

    for child in children:
        try:
            if looks_like_codex(child.name(), child.cmdline()):
                log.log(TRACE, "Codex process %d found under %d", child.pid, root_pid)
                return True
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
    return False


def pid_alive(pid: int) -> bool:
    return psutil.pid_exists(pid)
