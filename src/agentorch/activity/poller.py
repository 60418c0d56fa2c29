"""Poll loop driving activity reconciliation.

Polling is used instead of native file watchers: the producers are
short-lived hook scripts in sandboxes, and a plain directory listing works
the same on every platform.

Each tick:
1. consume one-shot notify signals
2. list the activity directory and aggregate a snapshot
3. reconcile against the previous snapshot with the current focus
4. apply transitions to the sink, then publish them to listeners
5. keep the snapshot for the next tick

Only one poller may run per process; a second one would emit every
transition twice.
"""

from __future__ import annotations

import asyncio
import contextlib
import threading
from collections.abc import Callable, Sequence
from pathlib import Path

from agentorch.activity.kinds import AgentKind, default_agent_kinds
from agentorch.activity.markers import Snapshot, read_snapshot
from agentorch.activity.protocols import ActivitySink
from agentorch.activity.reconciler import ActivityReconciler, Transition
from agentorch.activity.signals import consume_notify_signals
from agentorch.logging import TRACE, get_logger

log = get_logger("activity.poller")

DEFAULT_POLL_INTERVAL = 0.5
MIN_POLL_INTERVAL = 0.05

TransitionListener = Callable[[Transition], None]


class PollerAlreadyRunningError(RuntimeError):
    """Raised when a second activity poller is started in the same process."""


_slot_lock = threading.Lock()
_running_poller: ActivityPoller | None = None


def _claim_slot(poller: ActivityPoller) -> None:
    global _running_poller
    with _slot_lock:
        if _running_poller is not None and _running_poller is not poller:
            raise PollerAlreadyRunningError(
                "An activity poller is already running; stop it before starting another"
            )
        _running_poller = poller


def _release_slot(poller: ActivityPoller) -> None:
    global _running_poller
    with _slot_lock:
        if _running_poller is poller:
            _running_poller = None


class ActivityPoller:
    """Polls the signal channel and feeds the reconciler.

    Example:
        poller = ActivityPoller(activity_dir, notify_dir, directory)
        poller.add_listener(lambda t: print(t.kind, t.workspace_id))

        async with poller:
            await asyncio.sleep(60)
    """

    def __init__(
        self,
        activity_dir: Path,
        notify_dir: Path,
        sink: ActivitySink,
        *,
        reconciler: ActivityReconciler | None = None,
        kinds: Sequence[AgentKind] | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        """Initialize the poller.

        Args:
            activity_dir: Directory holding activity marker files.
            notify_dir: Directory holding one-shot notify signals.
            sink: Receiver of transitions (usually the WorkspaceDirectory).
            reconciler: Reconciler to use; a fresh one by default.
            kinds: Agent kinds to recognize; the built-ins by default.
            poll_interval: Seconds between ticks.
        """
        self._activity_dir = activity_dir
        self._notify_dir = notify_dir
        self._sink = sink
        self._reconciler = reconciler or ActivityReconciler()
        self._kinds = list(kinds) if kinds is not None else default_agent_kinds()
        self._poll_interval = max(MIN_POLL_INTERVAL, poll_interval)

        self._previous = Snapshot.empty()
        self._listeners: list[TransitionListener] = []

        self._running = False
        self._task: asyncio.Task[None] | None = None

    @property
    def poll_interval(self) -> float:
        return self._poll_interval

    @poll_interval.setter
    def poll_interval(self, value: float) -> None:
        self._poll_interval = max(MIN_POLL_INTERVAL, value)

    @property
    def reconciler(self) -> ActivityReconciler:
        return self._reconciler

    @property
    def kinds(self) -> list[AgentKind]:
        return list(self._kinds)

    @property
    def activity_dir(self) -> Path:
        return self._activity_dir

    @property
    def notify_dir(self) -> Path:
        return self._notify_dir

    @property
    def previous(self) -> Snapshot:
        """Snapshot retained from the last completed tick."""
        return self._previous

    def add_listener(self, callback: TransitionListener) -> Callable[[], None]:
        """Register a callback for every applied transition.

        Returns:
            A function to unregister the callback.
        """
        self._listeners.append(callback)

        def unregister() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unregister

    def tick(self) -> list[Transition]:
        """Run one full poll cycle synchronously.

        Returns:
            The transitions applied during this tick.
        """
        signals = consume_notify_signals(self._notify_dir)
        current = read_snapshot(self._activity_dir, self._kinds)

        transitions = self._reconciler.reconcile(
            self._previous,
            current,
            self._sink.focused_workspace_id,
            signals,
        )
        self._reconciler.apply(transitions, self._sink)
        self._previous = current

        for transition in transitions:
            log.debug(
                "Workspace %s %s%s",
                transition.workspace_id,
                transition.kind.value,
                " (forced)" if transition.forced else "",
            )
            for callback in list(self._listeners):
                try:
                    callback(transition)
                except Exception as e:
                    log.error("Error in transition listener: %s", e)

        if not transitions:
            log.log(
                TRACE,
                "Tick: %d active workspace(s), no change",
                len(current.active_workspace_ids),
            )
        return transitions

    def _ensure_dirs(self) -> None:
        for directory in (self._activity_dir, self._notify_dir):
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                log.warning("Could not create %s: %s", directory, e)

    async def _poll_loop(self) -> None:
        try:
            while self._running:
                try:
                    self.tick()
                except Exception:
                    log.exception("Activity poll tick failed")
                await asyncio.sleep(self._poll_interval)
        except asyncio.CancelledError:
            log.debug("Activity poller cancelled")
            raise

    def start(self) -> None:
        """Start polling.

        Creates an async task; must be called from within a running event
        loop. Starting an already running poller is a no-op.

        Raises:
            PollerAlreadyRunningError: If another poller is running.
            RuntimeError: If no event loop is running; nothing is claimed.
        """
        if self._running:
            return

        # Raises RuntimeError before anything is claimed
        loop = asyncio.get_running_loop()

        _claim_slot(self)
        self._running = True
        # Markers present at startup surface as fresh Idle -> Active edges
        self._previous = Snapshot.empty()
        self._ensure_dirs()
        self._task = loop.create_task(self._poll_loop())
        log.info(
            "Activity poller started (interval=%.2fs, dir=%s)",
            self._poll_interval,
            self._activity_dir,
        )

    def stop(self) -> None:
        """Stop polling. Stopping a stopped poller is a no-op."""
        if not self._running and self._task is None:
            return
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None
        _release_slot(self)
        log.info("Activity poller stopped")

    async def aclose(self) -> None:
        """Stop polling and wait for the loop task to finish."""
        task = self._task
        self.stop()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def is_running(self) -> bool:
        return self._running

    async def __aenter__(self) -> ActivityPoller:
        self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()
