"""Activity tracking for agent workspaces.

Agent hook scripts report activity by creating and removing marker files
in a shared directory, and force completion notices with one-shot notify
files. Agents blocked on a question swap their marker for a waiting one.
A single poll loop turns those files into started/stopped/unread
transitions for the workspace directory.
"""

from agentorch.activity.kinds import (
    CLAUDE,
    CODEX,
    CODEX_WAITING,
    ActivityMarker,
    AgentKind,
    FixedNameRule,
    GlobRule,
    agent_kinds_from_config,
    default_agent_kinds,
    parse_marker_name,
)
from agentorch.activity.markers import (
    ActivityStatus,
    Snapshot,
    build_snapshot,
    clear_marker,
    has_marker,
    list_channel,
    read_snapshot,
    swap_marker,
    write_marker,
)
from agentorch.activity.poller import ActivityPoller, PollerAlreadyRunningError
from agentorch.activity.prompt_detector import QuestionPromptDetector
from agentorch.activity.protocols import ActivitySink
from agentorch.activity.reconciler import ActivityReconciler, Transition, TransitionKind
from agentorch.activity.signals import (
    NotifyReason,
    NotifySignal,
    consume_notify_signals,
    write_notify_signal,
)

__all__ = [
    # Kinds
    "ActivityMarker",
    "AgentKind",
    "CLAUDE",
    "CODEX",
    "CODEX_WAITING",
    "FixedNameRule",
    "GlobRule",
    "agent_kinds_from_config",
    "default_agent_kinds",
    "parse_marker_name",
    # Markers
    "ActivityStatus",
    "Snapshot",
    "build_snapshot",
    "clear_marker",
    "has_marker",
    "list_channel",
    "read_snapshot",
    "swap_marker",
    "write_marker",
    # Signals
    "NotifyReason",
    "NotifySignal",
    "consume_notify_signals",
    "write_notify_signal",
    # Reconciliation
    "ActivityReconciler",
    "ActivitySink",
    "ActivityPoller",
    "PollerAlreadyRunningError",
    "QuestionPromptDetector",
    "Transition",
    "TransitionKind",
]
