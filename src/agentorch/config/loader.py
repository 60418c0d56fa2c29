"""Configuration file loading and caching.

Handles:
- YAML file parsing
- Environment variable overrides
- Config caching
- Conversion from dict to typed Config dataclass
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from agentorch.config.merge import merge_configs
from agentorch.config.paths import get_config_paths
from agentorch.config.schema import (
    ActivityConfig,
    AgentKindConfig,
    Config,
    LoggingConfig,
    TerminalConfig,
    WorktreeConfig,
)

# Module logger (may not be configured yet at import time)
_log = logging.getLogger("agentorch.config")

_cached_config: Config | None = None

_KNOWN_KEYS = {"activity", "terminal", "worktree", "logging"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning empty dict if not found or invalid."""
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except yaml.YAMLError as e:
        _log.warning("Invalid YAML in %s: %s", path, e)
        return {}
    except PermissionError:
        _log.debug("Permission denied reading %s", path)
        return {}
    except OSError as e:
        _log.warning("Error reading %s: %s", path, e)
        return {}


def env_overrides() -> dict[str, Any]:
    """Build config dict from environment variables.

    Recognized:
        AGENT_ORCH_LOG            -> logging.file
        AGENT_ORCH_SIGNAL_ROOT    -> activity.signal_root
        AGENT_ORCH_POLL_INTERVAL  -> activity.poll_interval
    """
    overrides: dict[str, Any] = {}

    log_path = os.environ.get("AGENT_ORCH_LOG")
    if log_path:
        overrides.setdefault("logging", {})["file"] = log_path

    signal_root = os.environ.get("AGENT_ORCH_SIGNAL_ROOT")
    if signal_root:
        overrides.setdefault("activity", {})["signal_root"] = signal_root

    poll_interval = os.environ.get("AGENT_ORCH_POLL_INTERVAL")
    if poll_interval:
        try:
            overrides.setdefault("activity", {})["poll_interval"] = float(poll_interval)
        except ValueError:
            _log.warning("Ignoring invalid AGENT_ORCH_POLL_INTERVAL: %r", poll_interval)

    return overrides


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def _float_setting(section: dict[str, Any], key: str, default: float) -> float:
    value = section.get(key, default)
    try:
        return float(value)
    except (TypeError, ValueError):
        _log.warning("Ignoring invalid %s: %r", key, value)
        return default


def dict_to_config(data: dict[str, Any]) -> Config:
    """Convert merged dict to typed Config dataclass."""
    # Activity config
    activity_data = _section(data, "activity")
    kinds_data = activity_data.get("agent_kinds") or []
    agent_kinds = [
        AgentKindConfig(
            name=k.get("name", ""),
            rule=k.get("rule", "glob"),
            waiting=bool(k.get("waiting", False)),
        )
        for k in kinds_data
        if isinstance(k, dict) and k.get("name")
    ]
    activity = ActivityConfig(
        app_name=activity_data.get("app_name", "agentorch"),
        signal_root=activity_data.get("signal_root"),
        poll_interval=_float_setting(activity_data, "poll_interval", 0.5),
        dedupe_window=_float_setting(activity_data, "dedupe_window", 0.75),
        agent_kinds=agent_kinds,
    )

    terminal_data = _section(data, "terminal")
    terminal = TerminalConfig(
        shell=terminal_data.get("shell"),
        workspace_env_var=terminal_data.get("workspace_env_var", "AGENT_ORCH_WS_ID"),
    )

    worktree_data = _section(data, "worktree")
    worktree = WorktreeConfig(
        fetch_remote=worktree_data.get("fetch_remote", True),
    )

    log_data = _section(data, "logging")
    logging_config = LoggingConfig(
        level=log_data.get("level"),
        verbose=log_data.get("verbose"),
        file=log_data.get("file"),
    )

    extra = {k: v for k, v in data.items() if k not in _KNOWN_KEYS}

    return Config(
        activity=activity,
        terminal=terminal,
        worktree=worktree,
        logging=logging_config,
        extra=extra,
    )


def load_config(
    project_root: str | None = None,
    reload: bool = False,
    config_file: Path | None = None,
) -> Config:
    """Load and merge config from all sources.

    Priority order (highest to lowest):
    1. Environment variables
    2. Explicit config file (``--config``)
    3. Project config ($project_root/.agentorch/config.yaml)
    4. User config (~/.config/agentorch/config.yaml or %APPDATA%)
    5. System config (/etc/agentorch/ or %PROGRAMDATA%)

    Args:
        project_root: Project directory for project-level config.
        reload: Force reload even if cached.
        config_file: Extra config file layered above the project config.

    Returns:
        Merged Config object.
    """
    global _cached_config

    cacheable = project_root is None and config_file is None
    if _cached_config is not None and not reload and cacheable:
        return _cached_config

    paths = get_config_paths(project_root)
    if config_file is not None:
        paths.append(config_file)

    configs: list[dict[str, Any]] = []
    for path in paths:
        config_data = load_yaml_file(path)
        if config_data:
            _log.debug("Loaded config from %s", path)
            configs.append(config_data)

    env_config = env_overrides()
    if env_config:
        configs.append(env_config)

    config = dict_to_config(merge_configs(*configs))

    if cacheable:
        _cached_config = config

    return config


def get_config() -> Config:
    """Get the cached global config, loading it if needed."""
    if _cached_config is None:
        return load_config()
    return _cached_config


def reset_config() -> None:
    """Reset cached config.

    Useful for testing or forcing a reload.
    """
    global _cached_config
    _cached_config = None

