"""Wires workspaces, terminals and activity tracking together.

Example:
    config = load_config(project_root="/path/to/repo")
    async with Orchestrator(config) as orch:
        ws = await orch.create_workspace(Path("/path/to/repo"), "fix-login", "fix/login")
        term = await orch.open_terminal(ws.id)
        await orch.write(term, "codex\\n")
        orch.focus(ws.id)
"""

from __future__ import annotations

import secrets
from pathlib import Path
from typing import TYPE_CHECKING

from agentorch.activity.kinds import agent_kinds_from_config
from agentorch.activity.poller import ActivityPoller, TransitionListener
from agentorch.activity.reconciler import ActivityReconciler
from agentorch.activity.prompt_detector import QuestionPromptDetector
from agentorch.config.paths import get_activity_dir, get_notify_dir
from agentorch.config.schema import Config
from agentorch.logging import get_logger
from agentorch.terminal.subprocess_manager import SubprocessTerminalManager
from agentorch.workspace.directory import Workspace, WorkspaceDirectory
from agentorch.worktree import create_worktree, remove_worktree

if TYPE_CHECKING:
    from collections.abc import Callable

log = get_logger("orchestrator")


def new_workspace_id() -> str:
    """Opaque, filesystem-safe workspace id."""
    return f"ws-{secrets.token_hex(6)}"


class Orchestrator:
    """Owns one workspace directory, one activity poller and the terminals."""

    def __init__(self, config: Config | None = None) -> None:
        self._config = config or Config()
        activity = self._config.activity

        self.activity_dir = get_activity_dir(activity.app_name, activity.signal_root)
        self.notify_dir = get_notify_dir(activity.app_name, activity.signal_root)

        self.directory = WorkspaceDirectory()
        self.prompt_detector = QuestionPromptDetector(self.activity_dir, self.notify_dir)
        self.terminals = SubprocessTerminalManager(
            shell=self._config.terminal.shell,
            workspace_env_var=self._config.terminal.workspace_env_var,
            prompt_detector=self.prompt_detector,
        )
        self.poller = ActivityPoller(
            self.activity_dir,
            self.notify_dir,
            self.directory,
            reconciler=ActivityReconciler(dedupe_window=activity.dedupe_window),
            kinds=agent_kinds_from_config(activity.agent_kinds),
            poll_interval=activity.poll_interval,
        )
        self.directory.add_removal_listener(self.poller.reconciler.forget)
        self.terminals.add_exit_listener(self._on_terminal_exit)

    @property
    def config(self) -> Config:
        return self._config

    def add_listener(self, callback: TransitionListener) -> Callable[[], None]:
        """Subscribe to activity transitions."""
        return self.poller.add_listener(callback)

    # -------------------------------------------------------------------------
    # Workspaces
    # -------------------------------------------------------------------------

    def add_workspace(
        self,
        path: Path,
        name: str | None = None,
        *,
        workspace_id: str | None = None,
        branch: str | None = None,
        repo_path: Path | None = None,
    ) -> Workspace:
        """Register an existing directory as a workspace."""
        workspace = Workspace(
            id=workspace_id or new_workspace_id(),
            name=name or path.name,
            path=path,
            branch=branch,
            repo_path=repo_path,
        )
        return self.directory.register(workspace)

    async def create_workspace(
        self,
        repo_path: Path,
        name: str,
        branch: str,
        *,
        base_branch: str | None = None,
        force: bool = False,
    ) -> Workspace:
        """Create a git worktree and register it as a workspace."""
        path = await create_worktree(
            repo_path,
            name,
            branch,
            force=force,
            base_branch=base_branch,
            fetch_remote=self._config.worktree.fetch_remote,
        )
        return self.add_workspace(path, name, branch=branch, repo_path=repo_path)

    async def remove_workspace(self, workspace_id: str, delete_worktree: bool = False) -> None:
        """Close the workspace's terminals and drop its state."""
        for session in self.terminals.terminals(workspace_id):
            await self.terminals.destroy(session.id)

        workspace = self.directory.on_workspace_removed(workspace_id)
        if delete_worktree and workspace is not None and workspace.repo_path is not None:
            await remove_worktree(workspace.repo_path, workspace.path)

    def focus(self, workspace_id: str | None) -> None:
        self.directory.on_focus_changed(workspace_id)

    # -------------------------------------------------------------------------
    # Terminals
    # -------------------------------------------------------------------------

    async def open_terminal(
        self,
        workspace_id: str,
        shell: str | None = None,
        extra_env: dict[str, str] | None = None,
    ) -> str:
        """Spawn a shell in the workspace with its id in the environment."""
        workspace = self.directory.get(workspace_id)
        return await self.terminals.create(
            str(workspace.path),
            shell=shell,
            extra_env=extra_env,
            workspace_id=workspace_id,
        )

    async def write(self, terminal_id: str, data: str) -> None:
        await self.terminals.write(terminal_id, data)

    async def close_terminal(self, terminal_id: str) -> None:
        await self.terminals.destroy(terminal_id)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def _on_terminal_exit(self, terminal_id: str, exit_code: int | None) -> None:
        # The shell is gone, so markers named after its pid are stale
        self.prompt_detector.prune_stale_markers()

    def start(self) -> None:
        self.poller.start()
        self.prompt_detector.prune_stale_markers()

    async def stop(self) -> None:
        await self.poller.aclose()
        await self.terminals.destroy_all()

    async def __aenter__(self) -> Orchestrator:
        self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.stop()
