"""Agent kinds and their marker naming rules.

Every agent kind owns one naming convention for the marker files its hooks
write into the activity directory. Two rule variants exist:

    FixedNameRule   <workspaceId>.<kind>                   one logical marker
    GlobRule        <workspaceId>.<kind>.<instanceToken>   one per instance

A kind flagged ``waiting`` marks an agent that is alive but blocked on the
user (``<workspaceId>.codex-wait.<pid>``). Such markers keep the workspace
out of Idle without counting it as Active.

A new agent kind is a new ``AgentKind`` carrying one of these rules; the
aggregator never branches on kind names.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from agentorch.config.schema import AgentKindConfig


@dataclass(frozen=True)
class ActivityMarker:
    """A parsed marker file name."""

    kind: str
    workspace_id: str
    instance_token: str | None = None


@dataclass(frozen=True)
class FixedNameRule:
    """Exactly one marker per workspace: ``<workspaceId>.<kind>``."""

    kind: str

    @property
    def suffix(self) -> str:
        return f".{self.kind}"

    def match(self, name: str) -> ActivityMarker | None:
        if not name.endswith(self.suffix):
            return None
        workspace_id = name[: -len(self.suffix)]
        if not workspace_id:
            return None
        return ActivityMarker(kind=self.kind, workspace_id=workspace_id)

    def filename(self, workspace_id: str, instance_token: str | None = None) -> str:
        return f"{workspace_id}{self.suffix}"

    def pattern(self, workspace_id: str) -> str:
        return self.filename(workspace_id)


@dataclass(frozen=True)
class GlobRule:
    """One marker per concurrent instance: ``<workspaceId>.<kind>.<token>``."""

    kind: str

    @property
    def segment(self) -> str:
        return f".{self.kind}."

    def match(self, name: str) -> ActivityMarker | None:
        # Workspace ids may contain dots, so split on the last occurrence
        idx = name.rfind(self.segment)
        if idx <= 0:
            return None
        token = name[idx + len(self.segment) :]
        if not token or "." in token:
            return None
        return ActivityMarker(
            kind=self.kind,
            workspace_id=name[:idx],
            instance_token=token,
        )

    def filename(self, workspace_id: str, instance_token: str | None = None) -> str:
        if not instance_token:
            raise ValueError(f"Agent kind {self.kind!r} requires an instance token")
        return f"{workspace_id}{self.segment}{instance_token}"

    def pattern(self, workspace_id: str) -> str:
        return f"{workspace_id}{self.segment}*"


MarkerRule = Union[FixedNameRule, GlobRule]

RULE_FIXED = "fixed"
RULE_GLOB = "glob"


@dataclass(frozen=True)
class AgentKind:
    """An agent kind tag together with its marker rule."""

    name: str
    rule: MarkerRule
    waiting: bool = False

    @classmethod
    def fixed(cls, name: str, waiting: bool = False) -> AgentKind:
        return cls(name=name, rule=FixedNameRule(name), waiting=waiting)

    @classmethod
    def glob(cls, name: str, waiting: bool = False) -> AgentKind:
        return cls(name=name, rule=GlobRule(name), waiting=waiting)

    @property
    def multi_instance(self) -> bool:
        """True if several concurrent markers may exist per workspace."""
        return isinstance(self.rule, GlobRule)

    def match(self, name: str) -> ActivityMarker | None:
        return self.rule.match(name)

    def filename(self, workspace_id: str, instance_token: str | None = None) -> str:
        return self.rule.filename(workspace_id, instance_token)


CLAUDE = AgentKind.fixed("claude")
CODEX = AgentKind.glob("codex")
CODEX_WAITING = AgentKind.glob("codex-wait", waiting=True)


def default_agent_kinds() -> list[AgentKind]:
    """Built-in agent kinds: Claude hooks and Codex terminal instances."""
    return [CLAUDE, CODEX, CODEX_WAITING]


def agent_kinds_from_config(configs: Iterable[AgentKindConfig]) -> list[AgentKind]:
    """Build agent kinds from config entries, falling back to the built-ins.

    Raises:
        ValueError: If an entry names an unknown rule.
    """
    kinds: list[AgentKind] = []
    for entry in configs:
        if entry.rule == RULE_FIXED:
            kinds.append(AgentKind.fixed(entry.name, waiting=entry.waiting))
        elif entry.rule == RULE_GLOB:
            kinds.append(AgentKind.glob(entry.name, waiting=entry.waiting))
        else:
            raise ValueError(f"Unknown marker rule {entry.rule!r} for agent kind {entry.name!r}")
    return kinds or default_agent_kinds()


def find_kind(kinds: Sequence[AgentKind], name: str) -> AgentKind:
    """Look up an agent kind by name.

    Raises:
        KeyError: If no kind with that name is configured.
    """
    for kind in kinds:
        if kind.name == name:
            return kind
    raise KeyError(name)


def parse_marker_name(name: str, kinds: Sequence[AgentKind]) -> ActivityMarker | None:
    """Parse a marker file name against the configured kinds.

    Glob rules are tried first: ``ws.codex.123`` must not be read as a
    fixed-name marker of some kind called ``123``.

    Returns:
        The parsed marker, or None for names no rule recognizes.
    """
    name = name.strip()
    if not name or name.startswith("."):
        return None

    ordered = sorted(kinds, key=lambda k: not k.multi_instance)
    for kind in ordered:
        marker = kind.match(name)
        if marker is not None:
            return marker
    return None
