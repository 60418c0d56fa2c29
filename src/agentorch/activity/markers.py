"""Marker aggregation over the activity directory.

The activity directory is written by independent agent hook processes with
no coordination: files appear and vanish at any time, the directory itself
may not exist yet. Reading it never raises; building a snapshot from a
listing is a pure function.
"""

from __future__ import annotations

import contextlib
import os
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType

from agentorch.activity.kinds import AgentKind, parse_marker_name
from agentorch.logging import TRACE, get_logger

log = get_logger("activity.markers")


class ActivityStatus(Enum):
    """Marker-derived status of a workspace."""

    ACTIVE = "active"
    WAITING = "waiting"
    IDLE = "idle"


@dataclass(frozen=True)
class Snapshot:
    """Status of every workspace seen in one directory read.

    A workspace with any running marker is Active; one with only waiting
    markers is Waiting. Workspaces absent from ``statuses`` are Idle.
    ``instance_counts`` counts running markers only.
    """

    statuses: Mapping[str, ActivityStatus] = field(
        default_factory=lambda: MappingProxyType({})
    )
    instance_counts: Mapping[str, int] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @classmethod
    def empty(cls) -> Snapshot:
        return cls()

    def status(self, workspace_id: str) -> ActivityStatus:
        return self.statuses.get(workspace_id, ActivityStatus.IDLE)

    def is_active(self, workspace_id: str) -> bool:
        return self.status(workspace_id) is ActivityStatus.ACTIVE

    def is_waiting(self, workspace_id: str) -> bool:
        return self.status(workspace_id) is ActivityStatus.WAITING

    @property
    def active_workspace_ids(self) -> frozenset[str]:
        return frozenset(
            ws for ws, status in self.statuses.items() if status is ActivityStatus.ACTIVE
        )

    @property
    def waiting_workspace_ids(self) -> frozenset[str]:
        return frozenset(
            ws for ws, status in self.statuses.items() if status is ActivityStatus.WAITING
        )

    @property
    def running_agent_count(self) -> int:
        return sum(self.instance_counts.values())

    def __len__(self) -> int:
        return len(self.statuses)


def list_channel(directory: Path) -> list[str]:
    """List file names in a signal channel directory.

    A missing or unreadable directory is reported as empty; the next poll
    simply tries again.
    """
    try:
        with os.scandir(directory) as entries:
            return [entry.name for entry in entries]
    except FileNotFoundError:
        return []
    except OSError as e:
        log.debug("Signal channel %s unreadable this tick: %s", directory, e)
        return []


def build_snapshot(names: Iterable[str], kinds: Sequence[AgentKind]) -> Snapshot:
    """Aggregate a directory listing into a per-workspace snapshot."""
    waiting_kinds = {kind.name for kind in kinds if kind.waiting}
    counts: dict[str, int] = {}
    waiting: set[str] = set()
    for name in names:
        marker = parse_marker_name(name, kinds)
        if marker is None:
            log.log(TRACE, "Ignoring unrecognized marker name %r", name)
            continue
        if marker.kind in waiting_kinds:
            waiting.add(marker.workspace_id)
        else:
            counts[marker.workspace_id] = counts.get(marker.workspace_id, 0) + 1

    statuses = {ws: ActivityStatus.WAITING for ws in waiting}
    statuses.update({ws: ActivityStatus.ACTIVE for ws in counts})
    return Snapshot(
        statuses=MappingProxyType(statuses),
        instance_counts=MappingProxyType(counts),
    )


def read_snapshot(directory: Path, kinds: Sequence[AgentKind]) -> Snapshot:
    """Read the activity directory and aggregate it."""
    return build_snapshot(list_channel(directory), kinds)


# -----------------------------------------------------------------------------
# Producer side: used by hook commands and terminal-side detectors
# -----------------------------------------------------------------------------


def write_marker(
    directory: Path,
    kind: AgentKind,
    workspace_id: str,
    instance_token: str | None = None,
) -> Path:
    """Create (or touch) a marker file for a workspace."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / kind.filename(workspace_id, instance_token)
    path.touch()
    log.debug("Activity marker set: %s", path)
    return path


def clear_marker(
    directory: Path,
    kind: AgentKind,
    workspace_id: str,
    instance_token: str | None = None,
) -> bool:
    """Remove a marker file. A missing marker is not an error.

    Returns:
        True if this call removed the file.
    """
    path = directory / kind.filename(workspace_id, instance_token)
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    log.debug("Activity marker cleared: %s", path)
    return True


def clear_workspace_markers(directory: Path, kind: AgentKind, workspace_id: str) -> int:
    """Remove every marker of one kind for a workspace.

    Returns:
        Number of files this call removed.
    """
    removed = 0
    for name in list_channel(directory):
        marker = kind.match(name)
        if marker is None or marker.workspace_id != workspace_id:
            continue
        with contextlib.suppress(FileNotFoundError):
            (directory / name).unlink()
            removed += 1
    return removed


def has_marker(
    directory: Path,
    kind: AgentKind,
    workspace_id: str,
    instance_token: str | None = None,
) -> bool:
    return (directory / kind.filename(workspace_id, instance_token)).exists()


def swap_marker(
    directory: Path,
    old: AgentKind,
    new: AgentKind,
    workspace_id: str,
    instance_token: str | None = None,
) -> Path:
    """Replace one marker of a workspace with a marker of another kind.

    The new marker is written before the old one is removed, so a poll in
    between never sees the workspace without a marker.
    """
    path = write_marker(directory, new, workspace_id, instance_token)
    clear_marker(directory, old, workspace_id, instance_token)
    return path
