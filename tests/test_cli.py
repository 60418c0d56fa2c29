"""Tests for the agentorch command line."""

from __future__ import annotations

import io
import os
import shutil
import subprocess
from pathlib import Path

import pytest
from rich.console import Console

from agentorch.activity.reconciler import Transition, TransitionKind
from agentorch.activity.signals import NotifyReason, consume_notify_signals
from agentorch.cli import create_parser, format_transition, main


@pytest.fixture
def signal_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("AGENT_ORCH_SIGNAL_ROOT", str(tmp_path))
    return tmp_path


@pytest.fixture
def console() -> Console:
    return Console(file=io.StringIO(), width=120, force_terminal=False)


def output_of(console: Console) -> str:
    return console.file.getvalue()  # type: ignore[attr-defined]


def activity_files(signal_root: Path) -> list[str]:
    directory = signal_root / "agentorch-activity"
    return sorted(os.listdir(directory)) if directory.exists() else []


class TestParser:
    """Test argument parsing."""

    def test_hook_defaults(self) -> None:
        args = create_parser().parse_args(["hook", "start"])
        assert args.command == "hook"
        assert args.hook_command == "start"
        assert args.kind == "claude"

    def test_notify_reason_choices(self) -> None:
        with pytest.raises(SystemExit):
            create_parser().parse_args(["hook", "notify", "--reason", "bogus"])

    def test_no_command(self, console: Console) -> None:
        assert main([], console=console) == 1


class TestHookCommands:
    """Test the hook subcommands agents call."""

    def test_start_and_stop_claude(self, signal_root: Path, console: Console) -> None:
        assert main(["hook", "--workspace", "ws-1", "start"], console=console) == 0
        assert activity_files(signal_root) == ["ws-1.claude"]

        assert main(["hook", "--workspace", "ws-1", "stop"], console=console) == 0
        assert activity_files(signal_root) == []

    def test_workspace_from_environment(
        self, signal_root: Path, console: Console, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("AGENT_ORCH_WS_ID", "ws-env")
        main(["hook", "start"], console=console)
        assert activity_files(signal_root) == ["ws-env.claude"]

    def test_outside_workspace_is_noop(self, signal_root: Path, console: Console) -> None:
        assert main(["hook", "start"], console=console) == 0
        assert activity_files(signal_root) == []

    def test_codex_instances(self, signal_root: Path, console: Console) -> None:
        for token in ("1", "2"):
            main(["hook", "--workspace", "ws-1", "start", "--kind", "codex", "--instance", token],
                 console=console)
        assert activity_files(signal_root) == ["ws-1.codex.1", "ws-1.codex.2"]

        main(["hook", "--workspace", "ws-1", "stop", "--kind", "codex", "--instance", "1"],
             console=console)
        assert activity_files(signal_root) == ["ws-1.codex.2"]

        main(["hook", "--workspace", "ws-1", "stop", "--kind", "codex", "--all"], console=console)
        assert activity_files(signal_root) == []

    def test_codex_default_instance_is_parent_pid(
        self, signal_root: Path, console: Console
    ) -> None:
        main(["hook", "--workspace", "ws-1", "start", "--kind", "codex"], console=console)
        assert activity_files(signal_root) == [f"ws-1.codex.{os.getppid()}"]

    def test_notify(self, signal_root: Path, console: Console) -> None:
        main(["hook", "--workspace", "ws-1", "start"], console=console)
        assert main(["hook", "--workspace", "ws-1", "notify"], console=console) == 0

        assert activity_files(signal_root) == []
        (signal,) = consume_notify_signals(signal_root / "agentorch-notify")
        assert signal.workspace_id == "ws-1"
        assert signal.reason is NotifyReason.COMPLETED

    def test_waiting_notify_keeps_marker(self, signal_root: Path, console: Console) -> None:
        main(["hook", "--workspace", "ws-1", "start"], console=console)
        assert main(
            ["hook", "--workspace", "ws-1", "notify", "--reason", "waiting_input"],
            console=console,
        ) == 0

        assert activity_files(signal_root) == ["ws-1.claude"]
        (signal,) = consume_notify_signals(signal_root / "agentorch-notify")
        assert signal.reason is NotifyReason.WAITING_INPUT

    def test_notify_clears_codex_markers(self, signal_root: Path, console: Console) -> None:
        for token in ("8", "9"):
            main(["hook", "--workspace", "ws-1", "start", "--kind", "codex", "--instance", token],
                 console=console)
        main(["hook", "--workspace", "ws-1", "notify", "--kind", "codex", "--instance", "8"],
             console=console)
        assert activity_files(signal_root) == ["ws-1.codex.9"]

        main(["hook", "--workspace", "ws-1", "notify", "--kind", "codex"], console=console)
        assert activity_files(signal_root) == []

    def test_unknown_kind(self, signal_root: Path, console: Console) -> None:
        assert main(["hook", "--workspace", "ws-1", "start", "--kind", "nope"], console=console) == 0
        assert activity_files(signal_root) == []

    def test_invalid_kind_config(
        self,
        signal_root: Path,
        tmp_path: Path,
        console: Console,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test that a bad rule in config is logged and the hook still exits 0."""
        config_file = tmp_path / "kinds.yaml"
        config_file.write_text(
            "activity:\n  agent_kinds:\n    - name: aider\n      rule: fixd\n",
            encoding="utf-8",
        )
        argv = ["--config", str(config_file), "hook", "--workspace", "ws-1", "start"]
        with caplog.at_level("WARNING", logger="agentorch"):
            assert main([*argv, "--kind", "aider"], console=console) == 0
        assert activity_files(signal_root) == []
        assert "Invalid agent kind config" in caplog.text

    def test_unwritable_signal_root(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, console: Console
    ) -> None:
        """Test that hook failures never surface as a non-zero exit."""
        blocker = tmp_path / "file"
        blocker.write_text("", encoding="utf-8")
        monkeypatch.setenv("AGENT_ORCH_SIGNAL_ROOT", str(blocker))
        assert main(["hook", "--workspace", "ws-1", "start"], console=console) == 0


class TestStatus:
    """Test the status command."""

    def test_no_agents(self, signal_root: Path, console: Console) -> None:
        assert main(["status"], console=console) == 0
        assert "No active agents" in output_of(console)

    def test_active_workspaces(self, signal_root: Path, console: Console) -> None:
        main(["hook", "--workspace", "ws-1", "start"], console=console)
        main(["hook", "--workspace", "ws-2", "start", "--kind", "codex", "--instance", "1"],
             console=console)
        main(["status"], console=console)
        output = output_of(console)
        assert "ws-1" in output
        assert "ws-2" in output

    def test_waiting_workspace(self, signal_root: Path, console: Console) -> None:
        directory = signal_root / "agentorch-activity"
        directory.mkdir()
        (directory / "ws-1.codex-wait.42").write_text("", encoding="utf-8")
        main(["status"], console=console)
        output = output_of(console)
        assert "ws-1" in output
        assert "waiting" in output


def test_format_transition() -> None:
    text = format_transition(
        Transition(TransitionKind.UNREAD, "ws-1", NotifyReason.WAITING_INPUT, forced=True)
    )
    assert "unread" in text
    assert "ws-1" in text
    assert "waiting_input" in text


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
class TestWorktreeCommand:
    """Test the worktree command."""

    @pytest.fixture
    def repo(self, tmp_path: Path) -> Path:
        path = tmp_path / "repo"
        path.mkdir()
        git = ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com"]
        subprocess.run([*git, "init", "-q", "-b", "main"], cwd=path, check=True)
        subprocess.run([*git, "commit", "-q", "--allow-empty", "-m", "init"], cwd=path, check=True)
        return path

    def test_create(self, repo: Path, console: Console) -> None:
        assert main(["worktree", "create", str(repo), "feat", "feat"], console=console) == 0
        assert (repo.parent / "repo-ws-feat").is_dir()

    def test_error(self, repo: Path, console: Console) -> None:
        (repo.parent / "repo-ws-feat").mkdir()
        assert main(["worktree", "create", str(repo), "feat", "feat"], console=console) == 1
        assert "already exists" in output_of(console)

    def test_list(self, repo: Path, console: Console) -> None:
        main(["worktree", "create", str(repo), "feat", "feature/list"], console=console)
        assert main(["worktree", "list", str(repo)], console=console) == 0
        output = output_of(console)
        assert "repo-ws-feat" in output
        assert "feature/list" in output
        assert "main" in output
