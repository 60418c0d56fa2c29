"""End-to-end tests: terminals, markers, the poller and the directory together."""

from __future__ import annotations

import asyncio
import os
import shutil
import subprocess
import sys
from pathlib import Path

import pytest

from agentorch.activity.kinds import CODEX, CODEX_WAITING
from agentorch.activity.markers import clear_marker, write_marker
from agentorch.activity.poller import PollerAlreadyRunningError
from agentorch.activity.reconciler import Transition, TransitionKind
from agentorch.config import Config
from agentorch.config.schema import ActivityConfig, TerminalConfig, WorktreeConfig
from agentorch.orchestrator import Orchestrator, new_workspace_id
from agentorch.workspace.directory import UnknownWorkspaceError

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell required")


async def wait_for(predicate, timeout: float = 5.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(
        activity=ActivityConfig(signal_root=str(tmp_path / "signals"), poll_interval=0.05),
        terminal=TerminalConfig(shell="/bin/sh"),
        worktree=WorktreeConfig(fetch_remote=False),
    )


def test_new_workspace_id() -> None:
    first, second = new_workspace_id(), new_workspace_id()
    assert first.startswith("ws-")
    assert first != second


def test_signal_dirs_follow_config(config: Config, tmp_path: Path) -> None:
    orch = Orchestrator(config)
    assert orch.activity_dir == tmp_path / "signals" / "agentorch-activity"
    assert orch.notify_dir == tmp_path / "signals" / "agentorch-notify"


class TestOrchestrator:
    """Test the wired-up system."""

    @pytest.mark.asyncio
    async def test_agent_in_terminal_reports_activity(
        self, config: Config, tmp_path: Path
    ) -> None:
        """Test that a process in a workspace terminal self-reports via its env."""
        async with Orchestrator(config) as orch:
            ws = orch.add_workspace(tmp_path, "one")
            terminal_id = await orch.open_terminal(ws.id)

            marker = f'"{orch.activity_dir}/${{AGENT_ORCH_WS_ID}}.claude"'
            await orch.write(terminal_id, f"touch {marker}\n")
            await wait_for(lambda: orch.directory.is_active(ws.id))

            await orch.write(terminal_id, f"rm {marker}\n")
            await wait_for(lambda: orch.directory.is_unread(ws.id))
            assert not orch.directory.is_active(ws.id)

            orch.focus(ws.id)
            assert not orch.directory.is_unread(ws.id)

    @pytest.mark.asyncio
    async def test_destroying_one_terminal_keeps_status(
        self, config: Config, tmp_path: Path
    ) -> None:
        async with Orchestrator(config) as orch:
            ws = orch.add_workspace(tmp_path, "one")
            first = await orch.open_terminal(ws.id)
            await orch.open_terminal(ws.id)

            write_marker(orch.activity_dir, CODEX, ws.id, str(os.getpid()))
            await wait_for(lambda: orch.directory.is_active(ws.id))

            await orch.close_terminal(first)
            await asyncio.sleep(0.2)
            assert orch.directory.is_active(ws.id)
            assert not orch.directory.is_unread(ws.id)
            assert len(orch.terminals.terminals(ws.id)) == 1

    @pytest.mark.asyncio
    async def test_remove_workspace(self, config: Config, tmp_path: Path) -> None:
        """Test that lingering markers of a removed workspace stay silent."""
        seen: list[Transition] = []
        async with Orchestrator(config) as orch:
            orch.add_listener(seen.append)
            ws = orch.add_workspace(tmp_path, "one")
            await orch.open_terminal(ws.id)
            write_marker(orch.activity_dir, CODEX, ws.id, "1")
            await wait_for(lambda: orch.directory.is_active(ws.id))

            await orch.remove_workspace(ws.id)
            assert orch.terminals.terminals(ws.id) == []
            clear_marker(orch.activity_dir, CODEX, ws.id, "1")
            await asyncio.sleep(0.2)

            assert not orch.directory.is_unread(ws.id)
            assert [t.kind for t in seen] == [TransitionKind.STARTED]
            with pytest.raises(UnknownWorkspaceError):
                await orch.open_terminal(ws.id)

    @pytest.mark.asyncio
    async def test_start_removes_markers_of_dead_shells(
        self, config: Config, tmp_path: Path
    ) -> None:
        orch = Orchestrator(config)
        dead = subprocess.Popen(["true"])
        dead.wait()
        write_marker(orch.activity_dir, CODEX, "ws-old", str(dead.pid))
        write_marker(orch.activity_dir, CODEX_WAITING, "ws-old", str(dead.pid))
        write_marker(orch.activity_dir, CODEX, "ws-live", str(os.getpid()))

        async with orch:
            assert sorted(os.listdir(orch.activity_dir)) == [f"ws-live.codex.{os.getpid()}"]

    @pytest.mark.asyncio
    async def test_second_orchestrator_rejected(self, config: Config) -> None:
        async with Orchestrator(config):
            with pytest.raises(PollerAlreadyRunningError):
                Orchestrator(config).start()

    @pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
    @pytest.mark.asyncio
    async def test_create_and_remove_worktree_workspace(
        self, config: Config, tmp_path: Path
    ) -> None:
        repo = tmp_path / "repo"
        repo.mkdir()
        git = ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com"]
        subprocess.run([*git, "init", "-q", "-b", "main"], cwd=repo, check=True)
        subprocess.run([*git, "commit", "-q", "--allow-empty", "-m", "init"], cwd=repo, check=True)

        orch = Orchestrator(config)
        ws = await orch.create_workspace(repo, "feat", "feature/one")
        assert ws.path == (tmp_path / "repo-ws-feat").resolve()
        assert ws.branch == "feature/one"
        assert ws.path.is_dir()

        await orch.remove_workspace(ws.id, delete_worktree=True)
        assert not ws.path.exists()
        assert ws.id not in orch.directory
