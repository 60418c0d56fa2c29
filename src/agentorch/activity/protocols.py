"""Contract between the activity reconciler and the workspace directory."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class ActivitySink(Protocol):
    """Receiver of reconciled activity transitions.

    Implementations:
    - WorkspaceDirectory: owns the focused id and the active/unread sets
    """

    @property
    def focused_workspace_id(self) -> str | None:
        """The workspace currently shown to the user, if any."""
        ...

    def is_focused(self, workspace_id: str) -> bool:
        """True if the workspace is the one currently shown to the user."""
        ...

    def on_activity_started(self, workspace_id: str) -> None:
        """An agent started working in the workspace."""
        ...

    def on_activity_stopped(self, workspace_id: str) -> None:
        """The last agent in the workspace stopped working."""
        ...

    def on_unread_raised(self, workspace_id: str) -> None:
        """The workspace finished work while unfocused."""
        ...
