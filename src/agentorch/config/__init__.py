"""Configuration management for agentorch.

Provides hierarchical YAML-based configuration with:
- System-level config (/etc/agentorch/ or %PROGRAMDATA%)
- User-level config (~/.config/agentorch/, ~/.agentorch/ or %APPDATA%)
- Project-level config ($project_root/.agentorch/)
- Environment variable overrides (highest priority)

Example usage:
    from agentorch.config import load_config

    config = load_config(project_root="/path/to/repo")
    print(config.activity.poll_interval)
"""

from agentorch.config.loader import (
    get_config,
    load_config,
    reset_config,
)
from agentorch.config.paths import (
    get_activity_dir,
    get_config_paths,
    get_notify_dir,
    get_project_config_path,
    get_system_config_path,
    get_user_config_path,
)
from agentorch.config.schema import (
    ActivityConfig,
    AgentKindConfig,
    Config,
    LoggingConfig,
    TerminalConfig,
    WorktreeConfig,
)

__all__ = [
    # Main API
    "Config",
    "load_config",
    "get_config",
    "reset_config",
    # Schema types
    "ActivityConfig",
    "AgentKindConfig",
    "TerminalConfig",
    "WorktreeConfig",
    "LoggingConfig",
    # Path utilities
    "get_config_paths",
    "get_system_config_path",
    "get_user_config_path",
    "get_project_config_path",
    "get_activity_dir",
    "get_notify_dir",
]
