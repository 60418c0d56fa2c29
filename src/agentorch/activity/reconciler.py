"""Activity reconciler: turns successive snapshots into transitions.

Per workspace seen in either snapshot:

    Idle/Waiting -> Active   STARTED
    Active -> Idle           STOPPED, plus UNREAD(completed) unless focused
    Active -> Waiting        STOPPED, plus UNREAD(waiting_input) unless focused
    Waiting -> Idle          UNREAD(completed) unless focused
    anything else            nothing

A notify signal forces a completion for its workspace whatever the markers
say: STOPPED if the workspace is still considered active, and UNREAD unless
focused. When the signal arrives while the marker is still on disk, the
later stop edge from the marker's removal emits no second STOPPED. If the
forced stop was only a question to the user, that later edge is the real
completion and still raises UNREAD.

An UNREAD repeating the same (workspace, reason) within the dedupe window
is dropped.

``reconcile`` runs on the poll loop; ``forget`` may be called from any
thread. Both hold the reconciler lock.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum

from agentorch.activity.markers import ActivityStatus, Snapshot
from agentorch.activity.protocols import ActivitySink
from agentorch.activity.signals import NotifyReason, NotifySignal
from agentorch.logging import VERBOSE, get_logger

log = get_logger("activity.reconciler")

DEFAULT_DEDUPE_WINDOW = 0.75


class TransitionKind(Enum):
    """Kinds of events the reconciler emits."""

    STARTED = "started"
    STOPPED = "stopped"
    UNREAD = "unread"


@dataclass(frozen=True)
class Transition:
    """A single workspace state change derived during one tick."""

    kind: TransitionKind
    workspace_id: str
    reason: NotifyReason = NotifyReason.COMPLETED
    forced: bool = False


class ActivityReconciler:
    """Diffs snapshots and applies the focus-aware unread policy.

    State kept between ticks:
    - force-stopped workspaces whose marker was still present when a notify
      signal stopped them, with the signal's reason
    - forgotten (removed) workspaces whose markers still linger on disk
    - when each (workspace, reason) last raised unread
    """

    def __init__(
        self,
        dedupe_window: float = DEFAULT_DEDUPE_WINDOW,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the reconciler.

        Args:
            dedupe_window: Seconds within which a repeated unread for the
                same workspace and reason is dropped. 0 disables it.
            clock: Monotonic time source.
        """
        self._dedupe_window = max(0.0, dedupe_window)
        self._clock = clock
        self._lock = threading.Lock()
        self._force_stopped: dict[str, NotifyReason] = {}
        self._forgotten: set[str] = set()
        self._last_unread: dict[tuple[str, NotifyReason], float] = {}

    @property
    def force_stopped(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._force_stopped)

    def forget(self, workspace_id: str) -> None:
        """Drop all tracking for a removed workspace.

        Markers left behind by the workspace's agents produce no transitions
        until they disappear from the activity directory.
        """
        with self._lock:
            self._force_stopped.pop(workspace_id, None)
            self._forgotten.add(workspace_id)
            for key in [k for k in self._last_unread if k[0] == workspace_id]:
                del self._last_unread[key]
        log.debug("Forgot workspace %s", workspace_id)

    def _is_duplicate(self, workspace_id: str, reason: NotifyReason, now: float) -> bool:
        if not self._dedupe_window:
            return False
        key = (workspace_id, reason)
        last = self._last_unread.get(key)
        if last is not None and now - last < self._dedupe_window:
            return True
        self._last_unread[key] = now
        return False

    def reconcile(
        self,
        previous: Snapshot,
        current: Snapshot,
        focused_workspace_id: str | None,
        signals: Iterable[NotifySignal] = (),
    ) -> list[Transition]:
        """Derive the transitions between two snapshots.

        Args:
            previous: Snapshot retained from the last tick.
            current: Snapshot read this tick.
            focused_workspace_id: Workspace shown to the user, if any.
            signals: Notify signals consumed this tick.

        Returns:
            Transitions in application order.
        """
        with self._lock:
            return self._reconcile(previous, current, focused_workspace_id, signals)

    def _reconcile(
        self,
        previous: Snapshot,
        current: Snapshot,
        focused_workspace_id: str | None,
        signals: Iterable[NotifySignal],
    ) -> list[Transition]:
        transitions: list[Transition] = []
        unread_raised: set[str] = set()
        now = self._clock()

        def raise_unread(workspace_id: str, reason: NotifyReason, forced: bool) -> None:
            if workspace_id == focused_workspace_id or workspace_id in unread_raised:
                return
            if self._is_duplicate(workspace_id, reason, now):
                log.log(VERBOSE, "Dropped repeated %s unread for %s", reason.value, workspace_id)
                return
            unread_raised.add(workspace_id)
            transitions.append(
                Transition(TransitionKind.UNREAD, workspace_id, reason=reason, forced=forced)
            )

        for workspace_id in sorted(set(previous.statuses) | set(current.statuses)):
            if workspace_id in self._forgotten:
                continue

            before = previous.status(workspace_id)
            after = current.status(workspace_id)
            if before is after:
                continue

            if after is ActivityStatus.ACTIVE:
                self._force_stopped.pop(workspace_id, None)
                transitions.append(Transition(TransitionKind.STARTED, workspace_id))
                continue

            reason = (
                NotifyReason.WAITING_INPUT
                if after is ActivityStatus.WAITING
                else NotifyReason.COMPLETED
            )
            if before is ActivityStatus.ACTIVE:
                forced_reason = self._force_stopped.pop(workspace_id, None)
                if forced_reason is None:
                    transitions.append(
                        Transition(TransitionKind.STOPPED, workspace_id, reason=reason)
                    )
                    raise_unread(workspace_id, reason, forced=False)
                    continue
                log.log(VERBOSE, "Suppressed duplicate stop for %s", workspace_id)
                if forced_reason is not reason:
                    raise_unread(workspace_id, reason, forced=False)
            elif before is ActivityStatus.WAITING:
                # The agent left while blocked on the user: already stopped
                raise_unread(workspace_id, reason, forced=False)

        stopped_this_tick = {
            t.workspace_id for t in transitions if t.kind is TransitionKind.STOPPED
        }

        for signal in signals:
            workspace_id = signal.workspace_id
            if workspace_id in self._forgotten:
                continue

            still_active = (
                current.is_active(workspace_id)
                and workspace_id not in self._force_stopped
                and workspace_id not in stopped_this_tick
            )
            if still_active:
                self._force_stopped[workspace_id] = signal.reason
                stopped_this_tick.add(workspace_id)
                transitions.append(
                    Transition(
                        TransitionKind.STOPPED,
                        workspace_id,
                        reason=signal.reason,
                        forced=True,
                    )
                )
            raise_unread(workspace_id, signal.reason, forced=True)

        # Tombstones are needed only while markers linger
        self._forgotten = {ws for ws in self._forgotten if ws in current.statuses}
        if self._dedupe_window:
            horizon = now - self._dedupe_window
            self._last_unread = {k: t for k, t in self._last_unread.items() if t > horizon}

        return transitions

    def apply(self, transitions: Iterable[Transition], sink: ActivitySink) -> int:
        """Deliver transitions to the sink.

        A failing callback for one workspace is logged and does not stop
        delivery for the others.

        Returns:
            Number of transitions delivered without error.
        """
        delivered = 0
        for transition in transitions:
            try:
                if transition.kind is TransitionKind.STARTED:
                    sink.on_activity_started(transition.workspace_id)
                elif transition.kind is TransitionKind.STOPPED:
                    sink.on_activity_stopped(transition.workspace_id)
                else:
                    sink.on_unread_raised(transition.workspace_id)
            except Exception:
                log.exception(
                    "Error applying %s for workspace %s",
                    transition.kind.value,
                    transition.workspace_id,
                )
                continue
            delivered += 1
        return delivered
