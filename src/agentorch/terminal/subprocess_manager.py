"""Subprocess-based terminal manager for local shell sessions."""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import itertools
import os
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from agentorch.logging import get_logger

if TYPE_CHECKING:
    from agentorch.activity.prompt_detector import QuestionPromptDetector

log = get_logger("terminal")

DEFAULT_WORKSPACE_ENV_VAR = "AGENT_ORCH_WS_ID"
READ_CHUNK_SIZE = 4096

OutputListener = Callable[[str, str], None]
ExitListener = Callable[[str, int | None], None]


class TerminalNotFoundError(KeyError):
    """Raised when a terminal id is not known to the manager."""


@dataclass
class TerminalSession:
    """A running shell process bound to a workspace."""

    id: str
    cwd: str
    shell: str
    process: asyncio.subprocess.Process
    workspace_id: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    exit_code: int | None = None
    reader: asyncio.Task[None] | None = None

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def alive(self) -> bool:
        return self.process.returncode is None


def default_shell() -> str:
    """The shell used when neither caller nor config picks one."""
    if sys.platform == "win32":
        return os.environ.get("COMSPEC", "cmd.exe")
    return os.environ.get("SHELL") or "/bin/sh"


class SubprocessTerminalManager:
    """Spawn workspace shells with asyncio subprocesses.

    Output is merged (stderr into stdout), decoded incrementally and handed
    to output listeners and, if configured, the question prompt detector.
    """

    def __init__(
        self,
        shell: str | None = None,
        workspace_env_var: str = DEFAULT_WORKSPACE_ENV_VAR,
        prompt_detector: QuestionPromptDetector | None = None,
    ) -> None:
        """Initialize the terminal manager.

        Args:
            shell: Default shell for new terminals.
            workspace_env_var: Env var that carries the owning workspace id.
            prompt_detector: Optional terminal-side activity producer, fed
                with every output chunk and every submitted line.
        """
        self._shell = shell
        self._workspace_env_var = workspace_env_var
        self._prompt_detector = prompt_detector
        self._sessions: dict[str, TerminalSession] = {}
        self._ids = itertools.count(1)
        self._output_listeners: list[OutputListener] = []
        self._exit_listeners: list[ExitListener] = []

    @property
    def workspace_env_var(self) -> str:
        return self._workspace_env_var

    def add_output_listener(self, callback: OutputListener) -> None:
        """Register ``callback(terminal_id, text)`` for terminal output."""
        self._output_listeners.append(callback)

    def add_exit_listener(self, callback: ExitListener) -> None:
        """Register ``callback(terminal_id, exit_code)`` for exited shells."""
        self._exit_listeners.append(callback)

    def get(self, terminal_id: str) -> TerminalSession:
        try:
            return self._sessions[terminal_id]
        except KeyError:
            raise TerminalNotFoundError(terminal_id) from None

    def terminals(self, workspace_id: str | None = None) -> list[TerminalSession]:
        sessions = list(self._sessions.values())
        if workspace_id is None:
            return sessions
        return [s for s in sessions if s.workspace_id == workspace_id]

    def build_env(
        self,
        extra_env: dict[str, str] | None = None,
        workspace_id: str | None = None,
    ) -> dict[str, str]:
        """Environment for a new terminal: ours, the extras, the workspace id."""
        env = os.environ.copy()
        if extra_env:
            env.update(extra_env)
        if workspace_id:
            env[self._workspace_env_var] = workspace_id
        return env

    async def create(
        self,
        cwd: str,
        shell: str | None = None,
        extra_env: dict[str, str] | None = None,
        workspace_id: str | None = None,
    ) -> str:
        """Spawn a shell in ``cwd`` and start streaming its output.

        Raises:
            FileNotFoundError: If the shell or cwd does not exist.
        """
        shell_path = shell or self._shell or default_shell()
        process = await asyncio.create_subprocess_exec(
            shell_path,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,  # Merge stderr into stdout
            cwd=cwd,
            env=self.build_env(extra_env, workspace_id),
        )

        terminal_id = f"term-{next(self._ids)}"
        session = TerminalSession(
            id=terminal_id,
            cwd=cwd,
            shell=shell_path,
            process=process,
            workspace_id=workspace_id,
        )
        self._sessions[terminal_id] = session
        session.reader = asyncio.create_task(self._read_output(session))

        log.info(
            "Terminal %s created (pid=%d, shell=%s, cwd=%s, workspace=%s)",
            terminal_id,
            process.pid,
            shell_path,
            cwd,
            workspace_id,
        )
        return terminal_id

    async def _read_output(self, session: TerminalSession) -> None:
        stdout = session.process.stdout
        if stdout is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

        while True:
            data = await stdout.read(READ_CHUNK_SIZE)
            if not data:
                break
            text = decoder.decode(data)
            if text:
                self._dispatch_output(session, text)

        tail = decoder.decode(b"", final=True)
        if tail:
            self._dispatch_output(session, tail)

        session.exit_code = await session.process.wait()
        log.debug("Terminal %s exited (code=%s)", session.id, session.exit_code)

        # Exited on its own, not through destroy()
        if self._sessions.pop(session.id, None) is not None:
            if self._prompt_detector is not None:
                self._prompt_detector.forget(session.id)
            for callback in list(self._exit_listeners):
                try:
                    callback(session.id, session.exit_code)
                except Exception as e:
                    log.error("Error in terminal exit listener: %s", e)

    def _dispatch_output(self, session: TerminalSession, text: str) -> None:
        if self._prompt_detector is not None:
            self._prompt_detector.feed(
                session.id, session.workspace_id, text, shell_pid=session.pid
            )
        for callback in list(self._output_listeners):
            try:
                callback(session.id, text)
            except Exception as e:
                log.error("Error in terminal output listener: %s", e)

    async def write(self, terminal_id: str, data: str) -> None:
        """Send input to the shell.

        Raises:
            TerminalNotFoundError: If the terminal is unknown.
        """
        session = self.get(terminal_id)
        if self._prompt_detector is not None and ("\r" in data or "\n" in data):
            self._prompt_detector.on_submit(terminal_id, session.workspace_id, session.pid)

        stdin = session.process.stdin
        if stdin is None or stdin.is_closing():
            log.debug("Terminal %s stdin closed; dropping input", terminal_id)
            return
        stdin.write(data.encode("utf-8"))
        with contextlib.suppress(ConnectionResetError, BrokenPipeError):
            await stdin.drain()

    async def destroy(self, terminal_id: str) -> None:
        """Kill a terminal's shell.

        Activity markers are left alone; they belong to the agents.
        """
        session = self._sessions.pop(terminal_id, None)
        if session is None:
            return

        if self._prompt_detector is not None:
            self._prompt_detector.forget(terminal_id)

        log.debug("Destroying terminal %s (pid=%d)", terminal_id, session.pid)
        if session.alive:
            try:
                session.process.kill()
            except ProcessLookupError:
                pass  # Process already gone
        with contextlib.suppress(ProcessLookupError):
            session.exit_code = await session.process.wait()

        if session.reader is not None and not session.reader.done():
            session.reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await session.reader

        log.info("Terminal %s destroyed", terminal_id)

    async def destroy_all(self) -> None:
        for terminal_id in list(self._sessions):
            await self.destroy(terminal_id)
