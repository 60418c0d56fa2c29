"""One-shot notify signals.

A notify signal is a small file in the notify directory whose first line is
the target workspace id and whose optional second line is a reason. The
consumer reads it and deletes it; only the consumer whose delete succeeds
acts on it, so racing pollers process each file exactly once.

Writers create ``<name>.tmp`` first and rename it into place, so a reader
never sees a half-written body.
"""

from __future__ import annotations

import os
import secrets
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from agentorch.activity.markers import list_channel
from agentorch.logging import get_logger

log = get_logger("activity.signals")

TMP_SUFFIX = ".tmp"


class NotifyReason(Enum):
    """Why a producer forced a completion notice."""

    COMPLETED = "completed"
    WAITING_INPUT = "waiting_input"


@dataclass(frozen=True)
class NotifySignal:
    """A consumed one-shot signal."""

    workspace_id: str
    reason: NotifyReason = NotifyReason.COMPLETED
    source: str = ""  # File name the signal was read from


def parse_signal_body(body: str) -> tuple[str, NotifyReason] | None:
    """Parse a signal body into (workspace_id, reason).

    Returns:
        None for an empty body. Unknown reasons fall back to COMPLETED.
    """
    lines = [line.strip() for line in body.splitlines()]
    lines = [line for line in lines if line]
    if not lines:
        return None
    reason = NotifyReason.COMPLETED
    if len(lines) > 1:
        try:
            reason = NotifyReason(lines[1])
        except ValueError:
            log.debug("Unknown notify reason %r, treating as completed", lines[1])
    return lines[0], reason


def write_notify_signal(
    directory: Path,
    workspace_id: str,
    reason: NotifyReason = NotifyReason.COMPLETED,
) -> Path:
    """Atomically drop a one-shot signal for a workspace.

    Returns:
        Final path of the signal file.
    """
    directory.mkdir(parents=True, exist_ok=True)
    name = f"{int(time.time() * 1000)}-{os.getpid()}-{secrets.token_hex(4)}"
    target = directory / name
    tmp_target = directory / f"{name}{TMP_SUFFIX}"
    body = workspace_id + "\n"
    if reason is not NotifyReason.COMPLETED:
        body += reason.value + "\n"
    tmp_target.write_text(body, encoding="utf-8")
    os.replace(tmp_target, target)
    log.debug("Notify signal written: %s -> %s", target, workspace_id)
    return target


def consume_signal_file(path: Path) -> NotifySignal | None:
    """Read then delete one signal file.

    Returns:
        The signal if this call won the delete and the body named a
        workspace; None otherwise.
    """
    try:
        body = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except UnicodeDecodeError:
        body = ""

    try:
        path.unlink()
    except FileNotFoundError:
        # Another consumer deleted it first
        return None

    parsed = parse_signal_body(body)
    if parsed is None:
        log.debug("Notify signal empty; cleared %s", path)
        return None

    workspace_id, reason = parsed
    log.debug("Notify signal consumed: %s -> %s (%s)", path.name, workspace_id, reason.value)
    return NotifySignal(workspace_id=workspace_id, reason=reason, source=path.name)


def consume_notify_signals(directory: Path) -> list[NotifySignal]:
    """Consume every complete signal file currently in the notify directory."""
    signals: list[NotifySignal] = []
    for name in sorted(list_channel(directory)):
        if name.endswith(TMP_SUFFIX):
            continue
        path = directory / name
        try:
            signal = consume_signal_file(path)
        except IsADirectoryError:
            continue
        except OSError as e:
            log.debug("Notify signal %s unreadable this tick: %s", path, e)
            continue
        if signal is not None:
            signals.append(signal)
    return signals
