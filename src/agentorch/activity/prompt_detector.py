"""Terminal-side activity producer for agents without hooks (Codex).

Codex has no prompt-submit hook, so the terminal that runs it reports for
it, with markers named after the shell's pid:

- the user submits input while Codex runs under the shell: the running
  marker ``<ws>.codex.<pid>`` is written
- Codex shows a question prompt: the running marker is swapped for the
  waiting marker ``<ws>.codex-wait.<pid>``
- the user answers: the waiting marker is swapped back, or just removed
  if Codex is gone

A question prompt from an agent that is not known to be running has no
marker to swap; a one-shot ``waiting_input`` signal flags the workspace
instead.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from agentorch.activity.kinds import CODEX, CODEX_WAITING, AgentKind, parse_marker_name
from agentorch.activity.markers import (
    clear_marker,
    has_marker,
    list_channel,
    swap_marker,
    write_marker,
)
from agentorch.activity.processes import is_codex_running_under, pid_alive
from agentorch.activity.signals import NotifyReason, write_notify_signal
from agentorch.logging import get_logger

log = get_logger("activity.prompt")

PROMPT_BUFFER_MAX = 4096

AgentCheck = Callable[[int], bool]

QUESTION_HEADER_RE = re.compile(r"Question\s+\d+\s*/\s*\d+", re.IGNORECASE)
QUESTION_UNANSWERED_RE = re.compile(r"\bunanswered\b", re.IGNORECASE)
QUESTION_HINT_RE = re.compile(
    r"\b(?:enter|return)\b.*\b(?:submit|send)\b.*\banswer\b", re.IGNORECASE
)
QUESTION_ALT_HINT_RE = re.compile(
    r"\b(?:waiting for your input|respond to continue)\b", re.IGNORECASE
)

_ANSI_CSI_RE = re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]")
_ANSI_OSC_RE = re.compile(r"\x1b\].*?(?:\x07|\x1b\\)", re.DOTALL)
_ANSI_DCS_RE = re.compile(r"\x1bP.*?\x1b\\", re.DOTALL)


def strip_ansi(data: str) -> str:
    """Remove CSI, OSC and DCS escape sequences."""
    data = _ANSI_CSI_RE.sub("", data)
    data = _ANSI_OSC_RE.sub("", data)
    return _ANSI_DCS_RE.sub("", data)


def looks_like_question_prompt(text: str) -> bool:
    """True if the text ends up showing an agent question prompt."""
    has_hint = bool(QUESTION_HINT_RE.search(text) or QUESTION_ALT_HINT_RE.search(text))
    has_header = bool(QUESTION_HEADER_RE.search(text) or QUESTION_UNANSWERED_RE.search(text))
    return has_hint and has_header


@dataclass
class _TerminalState:
    workspace_id: str
    shell_pid: int | None = None
    text: str = ""
    awaiting_answer: bool = False
    swapped: bool = False  # awaiting through a waiting marker, not a signal

    @property
    def token(self) -> str | None:
        return str(self.shell_pid) if self.shell_pid else None


class QuestionPromptDetector:
    """Per-terminal output scanner and Codex marker producer."""

    def __init__(
        self,
        activity_dir: Path,
        notify_dir: Path,
        *,
        running_kind: AgentKind = CODEX,
        waiting_kind: AgentKind = CODEX_WAITING,
        is_agent_running: AgentCheck = is_codex_running_under,
        buffer_max: int = PROMPT_BUFFER_MAX,
    ) -> None:
        """Initialize the detector.

        Args:
            activity_dir: Directory holding activity marker files.
            notify_dir: Directory for the fallback one-shot signals.
            running_kind: Marker kind written while the agent works.
            waiting_kind: Marker kind written while it waits on the user.
            is_agent_running: Tells whether the agent runs under a shell pid.
            buffer_max: Characters of recent output kept per terminal.
        """
        self._activity_dir = activity_dir
        self._notify_dir = notify_dir
        self._running_kind = running_kind
        self._waiting_kind = waiting_kind
        self._is_agent_running = is_agent_running
        self._buffer_max = buffer_max
        self._states: dict[str, _TerminalState] = {}

    def _state(
        self, terminal_id: str, workspace_id: str, shell_pid: int | None
    ) -> _TerminalState:
        state = self._states.get(terminal_id)
        if state is None or state.workspace_id != workspace_id:
            state = _TerminalState(workspace_id=workspace_id, shell_pid=shell_pid)
            self._states[terminal_id] = state
        elif shell_pid:
            state.shell_pid = shell_pid
        return state

    def _agent_running(self, state: _TerminalState) -> bool:
        if not state.shell_pid:
            return False
        return has_marker(
            self._activity_dir, self._running_kind, state.workspace_id, state.token
        ) or self._is_agent_running(state.shell_pid)

    def feed(
        self,
        terminal_id: str,
        workspace_id: str | None,
        chunk: str,
        shell_pid: int | None = None,
    ) -> bool:
        """Scan a chunk of terminal output.

        Returns:
            True if this chunk put the workspace into waiting.
        """
        if not workspace_id:
            return False

        state = self._state(terminal_id, workspace_id, shell_pid)
        if state.awaiting_answer:
            return False

        normalized = strip_ansi(chunk)
        if not normalized:
            return False

        state.text = (state.text + normalized)[-self._buffer_max :]
        if not looks_like_question_prompt(state.text):
            return False

        running = self._agent_running(state)
        state.awaiting_answer = True
        state.text = ""
        try:
            if running:
                swap_marker(
                    self._activity_dir,
                    self._running_kind,
                    self._waiting_kind,
                    workspace_id,
                    state.token,
                )
                state.swapped = True
            else:
                write_notify_signal(self._notify_dir, workspace_id, NotifyReason.WAITING_INPUT)
        except OSError as e:
            log.warning("Could not flag workspace %s as waiting: %s", workspace_id, e)
            return False
        log.info("Agent in workspace %s is waiting for input", workspace_id)
        return True

    def on_submit(
        self,
        terminal_id: str,
        workspace_id: str | None = None,
        shell_pid: int | None = None,
    ) -> None:
        """The user submitted input in a terminal.

        Re-arms prompt detection. Marks the workspace active when the agent
        runs under the shell, which also ends a waiting period.
        """
        if workspace_id:
            state = self._state(terminal_id, workspace_id, shell_pid)
        else:
            state = self._states.get(terminal_id)
        if state is None:
            return

        was_swapped = state.awaiting_answer and state.swapped
        state.awaiting_answer = False
        state.swapped = False
        state.text = ""
        if not state.token:
            return

        try:
            if was_swapped:
                if self._is_agent_running(state.shell_pid):
                    swap_marker(
                        self._activity_dir,
                        self._waiting_kind,
                        self._running_kind,
                        state.workspace_id,
                        state.token,
                    )
                else:
                    clear_marker(
                        self._activity_dir, self._waiting_kind, state.workspace_id, state.token
                    )
            elif self._is_agent_running(state.shell_pid):
                write_marker(
                    self._activity_dir, self._running_kind, state.workspace_id, state.token
                )
        except OSError as e:
            log.warning("Could not update markers for workspace %s: %s", state.workspace_id, e)

    def is_awaiting_answer(self, terminal_id: str) -> bool:
        state = self._states.get(terminal_id)
        return bool(state and state.awaiting_answer)

    def forget(self, terminal_id: str) -> None:
        """Stop tracking a terminal. Its markers are left alone."""
        self._states.pop(terminal_id, None)

    def prune_stale_markers(self) -> int:
        """Remove markers this producer wrote for shells that no longer exist.

        Returns:
            Number of markers removed.
        """
        kinds = [self._running_kind, self._waiting_kind]
        removed = 0
        for name in list_channel(self._activity_dir):
            marker = parse_marker_name(name, kinds)
            if marker is None or not (marker.instance_token or "").isdigit():
                continue
            if pid_alive(int(marker.instance_token)):
                continue
            kind = next(k for k in kinds if k.name == marker.kind)
            if clear_marker(self._activity_dir, kind, marker.workspace_id, marker.instance_token):
                removed += 1
        if removed:
            log.info("Removed %d stale terminal marker(s)", removed)
        return removed
