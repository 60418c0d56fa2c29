"""Workspace registry and focus/activity state."""

from agentorch.workspace.directory import (
    UnknownWorkspaceError,
    Workspace,
    WorkspaceDirectory,
)

__all__ = [
    "UnknownWorkspaceError",
    "Workspace",
    "WorkspaceDirectory",
]
