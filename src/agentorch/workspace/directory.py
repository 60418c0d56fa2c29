"""Workspace directory: registered workspaces, focus, activity flags.

Owns the process-wide activity state:

    active_workspace_ids   workspaces with an agent working
    unread_workspace_ids   workspaces that finished work while unfocused
    focused_workspace_id   the workspace shown to the user

The state is never persisted; the marker files it mirrors are ephemeral.
The poll loop (timer context) and focus changes (user input context) both
mutate it, so every mutation runs under one lock.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from agentorch.logging import get_logger

log = get_logger("workspace")

RemovalListener = Callable[[str], None]


class UnknownWorkspaceError(KeyError):
    """Raised when a workspace id is not registered."""


@dataclass
class Workspace:
    """A workspace: one git worktree where agents run."""

    id: str
    name: str
    path: Path
    branch: str | None = None
    repo_path: Path | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class WorkspaceDirectory:
    """Registry of workspaces plus focus and activity state.

    Implements the ActivitySink protocol consumed by the reconciler.
    Workspaces do not have to be registered to be tracked: markers for an
    unregistered id still show up as active/unread.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._workspaces: dict[str, Workspace] = {}
        self._active: set[str] = set()
        self._unread: set[str] = set()
        self._focused: str | None = None
        self._removal_listeners: list[RemovalListener] = []

    # -------------------------------------------------------------------------
    # Registry
    # -------------------------------------------------------------------------

    def register(self, workspace: Workspace) -> Workspace:
        with self._lock:
            self._workspaces[workspace.id] = workspace
        log.debug("Registered workspace %s (%s)", workspace.id, workspace.path)
        return workspace

    def get(self, workspace_id: str) -> Workspace:
        with self._lock:
            try:
                return self._workspaces[workspace_id]
            except KeyError:
                raise UnknownWorkspaceError(workspace_id) from None

    def workspaces(self) -> list[Workspace]:
        with self._lock:
            return list(self._workspaces.values())

    def __contains__(self, workspace_id: object) -> bool:
        with self._lock:
            return workspace_id in self._workspaces

    def add_removal_listener(self, callback: RemovalListener) -> Callable[[], None]:
        """Register a callback run after a workspace is removed.

        Returns:
            A function to unregister the callback.
        """
        self._removal_listeners.append(callback)

        def unregister() -> None:
            if callback in self._removal_listeners:
                self._removal_listeners.remove(callback)

        return unregister

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def focused_workspace_id(self) -> str | None:
        with self._lock:
            return self._focused

    @property
    def active_workspace_ids(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._active)

    @property
    def unread_workspace_ids(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._unread)

    def is_focused(self, workspace_id: str) -> bool:
        with self._lock:
            return self._focused == workspace_id

    def is_active(self, workspace_id: str) -> bool:
        with self._lock:
            return workspace_id in self._active

    def is_unread(self, workspace_id: str) -> bool:
        with self._lock:
            return workspace_id in self._unread

    # -------------------------------------------------------------------------
    # Poll-driven transitions
    # -------------------------------------------------------------------------

    def on_activity_started(self, workspace_id: str) -> None:
        with self._lock:
            self._active.add(workspace_id)
        log.info("Agent started in workspace %s", workspace_id)

    def on_activity_stopped(self, workspace_id: str) -> None:
        with self._lock:
            if workspace_id not in self._active:
                return
            self._active.discard(workspace_id)
        log.info("Agent stopped in workspace %s", workspace_id)

    def on_unread_raised(self, workspace_id: str) -> None:
        with self._lock:
            # Focus may have moved here after the tick read it
            if workspace_id == self._focused or workspace_id in self._active:
                return
            self._unread.add(workspace_id)
        log.info("Workspace %s has unread agent output", workspace_id)

    # -------------------------------------------------------------------------
    # User-driven changes
    # -------------------------------------------------------------------------

    def on_focus_changed(self, workspace_id: str | None) -> None:
        """Move focus; the newly focused workspace is no longer unread."""
        with self._lock:
            self._focused = workspace_id
            if workspace_id is not None:
                self._unread.discard(workspace_id)
        log.debug("Focus changed to %s", workspace_id)

    def on_workspace_removed(self, workspace_id: str) -> Workspace | None:
        """Drop a workspace and all of its tracking state.

        Returns:
            The removed Workspace, or None if it was not registered.
        """
        with self._lock:
            workspace = self._workspaces.pop(workspace_id, None)
            self._active.discard(workspace_id)
            self._unread.discard(workspace_id)
            if self._focused == workspace_id:
                self._focused = None

        for callback in list(self._removal_listeners):
            try:
                callback(workspace_id)
            except Exception as e:
                log.error("Error in workspace removal listener: %s", e)

        log.info("Removed workspace %s", workspace_id)
        return workspace
