"""agentorch: run coding agents side by side in isolated git worktrees.

The activity subsystem watches marker files written by agent hooks and
tells which workspaces have an agent working and which finished while the
user was looking elsewhere.
"""

__version__ = "0.1.0"

# Public API
from agentorch.activity import (
    ActivityPoller,
    ActivityReconciler,
    ActivitySink,
    AgentKind,
    NotifyReason,
    NotifySignal,
    PollerAlreadyRunningError,
    QuestionPromptDetector,
    Snapshot,
    Transition,
    TransitionKind,
)
from agentorch.config import Config, get_config, load_config
from agentorch.orchestrator import Orchestrator
from agentorch.terminal import SubprocessTerminalManager, TerminalManager
from agentorch.workspace import Workspace, WorkspaceDirectory
from agentorch.worktree import WorktreeError, create_worktree

__all__ = [
    # Main entry point
    "Orchestrator",
    # Activity
    "ActivityPoller",
    "ActivityReconciler",
    "ActivitySink",
    "AgentKind",
    "NotifyReason",
    "NotifySignal",
    "PollerAlreadyRunningError",
    "QuestionPromptDetector",
    "Snapshot",
    "Transition",
    "TransitionKind",
    # Config
    "Config",
    "load_config",
    "get_config",
    # Workspaces
    "Workspace",
    "WorkspaceDirectory",
    "WorktreeError",
    "create_worktree",
    # Terminal
    "SubprocessTerminalManager",
    "TerminalManager",
]
