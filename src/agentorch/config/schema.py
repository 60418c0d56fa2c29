"""Configuration schema dataclasses for agentorch.

Defines the structure of configuration at all levels (system, user, project).
All fields are optional to support partial configs that merge together.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class AgentKindConfig:
    """An agent kind and the marker naming rule its hooks follow.

    Example config.yaml:
        activity:
          agent_kinds:
            - name: claude
              rule: fixed        # <workspaceId>.claude
            - name: codex
              rule: glob         # <workspaceId>.codex.<instanceToken>
            - name: codex-wait
              rule: glob
              waiting: true      # blocked on the user, not Active
    """

    name: str
    rule: str = "glob"  # "fixed" or "glob"
    waiting: bool = False


@dataclass
class ActivityConfig:
    """Activity tracking configuration.

    Example config.yaml:
        activity:
          app_name: agentorch
          signal_root: /tmp
          poll_interval: 0.5
          dedupe_window: 0.75
    """

    app_name: str = "agentorch"  # Prefix of the <app>-activity / <app>-notify dirs
    signal_root: str | None = None  # Default: system temp dir
    poll_interval: float = 0.5  # Seconds between poll ticks
    dedupe_window: float = 0.75  # Seconds within which a repeated unread is dropped
    agent_kinds: list[AgentKindConfig] = field(default_factory=list)  # Empty = built-ins


@dataclass
class TerminalConfig:
    """Terminal spawning configuration."""

    shell: str | None = None  # Default: $SHELL, then /bin/sh
    workspace_env_var: str = "AGENT_ORCH_WS_ID"  # Env var carrying the workspace id


@dataclass
class WorktreeConfig:
    """Git worktree creation configuration."""

    fetch_remote: bool = True  # Fetch origin before creating a worktree


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # DEBUG, INFO, WARNING, ERROR
    verbose: int | None = None  # 0-4, takes precedence over level
    file: str | None = None  # Log file path


@dataclass
class Config:
    """Root configuration object.

    Aggregates all configuration sections. All fields use default factories
    to ensure partial configs work correctly with deep merging.
    """

    activity: ActivityConfig = field(default_factory=ActivityConfig)
    terminal: TerminalConfig = field(default_factory=TerminalConfig)
    worktree: WorktreeConfig = field(default_factory=WorktreeConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Extension point for future config sections
    extra: dict[str, Any] = field(default_factory=dict)
