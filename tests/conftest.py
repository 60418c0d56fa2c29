"""Root pytest configuration for all tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from agentorch.activity import poller as poller_module
from agentorch.config import reset_config

# Configure pytest-asyncio to use auto mode
# This is redundant with pyproject.toml but ensures it's set
pytest_plugins = ("pytest_asyncio",)


@pytest.fixture(scope="session")
def anyio_backend():
    """Set anyio backend to asyncio."""
    return "asyncio"


@pytest.fixture(autouse=True)
def release_poller_slot():
    """Make sure a poller leaked by one test cannot block the next."""
    yield
    running = poller_module._running_poller
    if running is not None:
        running.stop()


@pytest.fixture(autouse=True)
def isolated_config(tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch):
    """Keep user config and environment overrides out of tests."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path_factory.mktemp("xdg")))
    for var in ("AGENT_ORCH_LOG", "AGENT_ORCH_SIGNAL_ROOT", "AGENT_ORCH_POLL_INTERVAL", "AGENT_ORCH_WS_ID"):
        monkeypatch.delenv(var, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def activity_dir(tmp_path: Path) -> Path:
    path = tmp_path / "agentorch-activity"
    path.mkdir()
    return path


@pytest.fixture
def notify_dir(tmp_path: Path) -> Path:
    path = tmp_path / "agentorch-notify"
    path.mkdir()
    return path
