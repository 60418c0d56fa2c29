"""Terminal manager protocol for workspace terminal sessions."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class TerminalManager(Protocol):
    """Protocol for spawning and tearing down terminal sessions.

    Implementations:
    - SubprocessTerminalManager: local shell processes over pipes

    A terminal belongs to one workspace; the workspace id is injected into
    the child environment so agent hooks can report activity on their own.
    Destroying a terminal never removes activity markers: markers belong to
    the agent that wrote them, and another terminal in the same workspace
    may still be running one.
    """

    async def create(
        self,
        cwd: str,
        shell: str | None = None,
        extra_env: dict[str, str] | None = None,
        workspace_id: str | None = None,
    ) -> str:
        """Spawn a terminal session.

        Args:
            cwd: Working directory (usually the workspace worktree).
            shell: Shell override. If None, uses the manager's default.
            extra_env: Additional environment variables for the child.
            workspace_id: Owning workspace, exported to the child.

        Returns:
            The new terminal id.
        """
        ...

    async def write(self, terminal_id: str, data: str) -> None:
        """Send input to a terminal."""
        ...

    async def destroy(self, terminal_id: str) -> None:
        """Terminate a terminal session. Unknown ids are ignored."""
        ...

    async def destroy_all(self) -> None:
        """Terminate every terminal session."""
        ...
