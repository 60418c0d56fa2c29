"""Platform-aware configuration and signal channel path resolution.

Handles config file locations for:
- Windows: %PROGRAMDATA% (system), %APPDATA% (user)
- Unix: /etc/ (system), ~/.config/agentorch/ or ~/.agentorch/ (user)
- Project: $project_root/.agentorch/

Signal channel directories live under the system temp dir:
    <tmp>/<app>-activity/   marker files
    <tmp>/<app>-notify/     one-shot notify signals
"""

from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

CONFIG_FILENAME = "config.yaml"
APP_NAME = "agentorch"
SHORT_NAME = ".agentorch"


def get_system_config_path() -> Path | None:
    """Get system-level config path.

    Returns:
        Path to system config file, or None if not determinable.
        The file may not exist.
    """
    if sys.platform == "win32":
        program_data = os.environ.get("PROGRAMDATA")
        if program_data:
            return Path(program_data) / APP_NAME / CONFIG_FILENAME
    else:
        return Path("/etc") / APP_NAME / CONFIG_FILENAME
    return None


def get_user_config_path() -> Path | None:
    """Get user-level config path.

    Returns:
        Path to user config file, or None if not determinable.
        The file may not exist.
    """
    if sys.platform == "win32":
        app_data = os.environ.get("APPDATA")
        if app_data:
            return Path(app_data) / APP_NAME / CONFIG_FILENAME
    else:
        xdg_config = os.environ.get("XDG_CONFIG_HOME")
        if xdg_config:
            return Path(xdg_config) / APP_NAME / CONFIG_FILENAME

        home = Path.home()

        xdg_default = home / ".config"
        if xdg_default.exists():
            return xdg_default / APP_NAME / CONFIG_FILENAME

        return home / SHORT_NAME / CONFIG_FILENAME

    return None


def get_project_config_path(project_root: str) -> Path:
    """Get project-level config path (may not exist)."""
    return Path(project_root) / SHORT_NAME / CONFIG_FILENAME


def get_config_paths(project_root: str | None = None) -> list[Path]:
    """Get all config paths in priority order (lowest to highest).

    Args:
        project_root: Optional project directory for project-level config.

    Returns:
        List of config paths in order: system, user, project.
        Later paths override earlier ones when merging.
    """
    paths: list[Path] = []

    system_path = get_system_config_path()
    if system_path:
        paths.append(system_path)

    user_path = get_user_config_path()
    if user_path:
        paths.append(user_path)

    if project_root:
        paths.append(get_project_config_path(project_root))

    return paths


def get_signal_root(signal_root: str | None = None) -> Path:
    """Directory that holds the signal channel directories."""
    if signal_root:
        return Path(os.path.expanduser(signal_root))
    return Path(tempfile.gettempdir())


def get_activity_dir(app_name: str = APP_NAME, signal_root: str | None = None) -> Path:
    """Directory where agent hooks drop activity marker files."""
    return get_signal_root(signal_root) / f"{app_name}-activity"


def get_notify_dir(app_name: str = APP_NAME, signal_root: str | None = None) -> Path:
    """Directory where one-shot notify signal files are written."""
    return get_signal_root(signal_root) / f"{app_name}-notify"
