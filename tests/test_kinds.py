"""Tests for agent kinds and marker naming rules."""

from __future__ import annotations

import pytest

from agentorch.activity.kinds import (
    CLAUDE,
    CODEX,
    CODEX_WAITING,
    ActivityMarker,
    AgentKind,
    FixedNameRule,
    GlobRule,
    agent_kinds_from_config,
    default_agent_kinds,
    find_kind,
    parse_marker_name,
)
from agentorch.config.schema import AgentKindConfig


class TestFixedNameRule:
    """Test <workspaceId>.<kind> matching."""

    def test_match(self) -> None:
        rule = FixedNameRule("claude")
        assert rule.match("ws-1.claude") == ActivityMarker("claude", "ws-1")

    def test_requires_workspace_id(self) -> None:
        assert FixedNameRule("claude").match(".claude") is None

    def test_other_suffix_not_matched(self) -> None:
        assert FixedNameRule("claude").match("ws-1.codex.1") is None

    def test_filename_ignores_token(self) -> None:
        assert FixedNameRule("claude").filename("ws-1", "123") == "ws-1.claude"


class TestGlobRule:
    """Test <workspaceId>.<kind>.<token> matching."""

    def test_match(self) -> None:
        marker = GlobRule("codex").match("ws-1.codex.123")
        assert marker == ActivityMarker("codex", "ws-1", "123")

    def test_workspace_id_with_dots(self) -> None:
        """Test that the last kind segment splits the name."""
        marker = GlobRule("codex").match("my.ws.codex.42")
        assert marker is not None
        assert marker.workspace_id == "my.ws"
        assert marker.instance_token == "42"

    def test_empty_token_rejected(self) -> None:
        assert GlobRule("codex").match("ws-1.codex.") is None

    def test_token_with_dot_rejected(self) -> None:
        assert GlobRule("codex").match("ws-1.codex.1.tmp") is None

    def test_missing_workspace_rejected(self) -> None:
        assert GlobRule("codex").match(".codex.1") is None

    def test_filename_requires_token(self) -> None:
        with pytest.raises(ValueError):
            GlobRule("codex").filename("ws-1")

    def test_pattern(self) -> None:
        assert GlobRule("codex").pattern("ws-1") == "ws-1.codex.*"


class TestAgentKind:
    """Test the built-in kinds and lookup helpers."""

    def test_builtins(self) -> None:
        assert not CLAUDE.multi_instance
        assert CODEX.multi_instance
        assert default_agent_kinds() == [CLAUDE, CODEX, CODEX_WAITING]
        assert CODEX_WAITING.waiting and not CODEX.waiting

    def test_from_config(self) -> None:
        kinds = agent_kinds_from_config(
            [AgentKindConfig(name="aider", rule="fixed"), AgentKindConfig(name="gemini")]
        )
        assert kinds == [AgentKind.fixed("aider"), AgentKind.glob("gemini")]

    def test_waiting_flag_from_config(self) -> None:
        (kind,) = agent_kinds_from_config([AgentKindConfig(name="aider-wait", waiting=True)])
        assert kind == AgentKind.glob("aider-wait", waiting=True)

    def test_from_empty_config_uses_builtins(self) -> None:
        assert agent_kinds_from_config([]) == default_agent_kinds()

    def test_unknown_rule(self) -> None:
        with pytest.raises(ValueError, match="Unknown marker rule"):
            agent_kinds_from_config([AgentKindConfig(name="x", rule="regex")])

    def test_find_kind(self) -> None:
        assert find_kind(default_agent_kinds(), "codex") is CODEX
        with pytest.raises(KeyError):
            find_kind(default_agent_kinds(), "nope")


class TestParseMarkerName:
    """Test parsing against a set of kinds."""

    def test_fixed_and_glob(self) -> None:
        kinds = default_agent_kinds()
        assert parse_marker_name("ws-1.claude", kinds) == ActivityMarker("claude", "ws-1")
        assert parse_marker_name("ws-1.codex.9", kinds) == ActivityMarker("codex", "ws-1", "9")

    def test_waiting_and_running_codex_markers_distinct(self) -> None:
        kinds = default_agent_kinds()
        assert parse_marker_name("ws-1.codex-wait.9", kinds) == ActivityMarker(
            "codex-wait", "ws-1", "9"
        )
        assert CODEX.match("ws-1.codex-wait.9") is None
        assert CODEX_WAITING.match("ws-1.codex.9") is None

    def test_glob_tried_before_fixed(self) -> None:
        """Test that a fixed kind named like a token does not steal glob markers."""
        kinds = [AgentKind.fixed("9"), CODEX]
        marker = parse_marker_name("ws-1.codex.9", kinds)
        assert marker == ActivityMarker("codex", "ws-1", "9")

    @pytest.mark.parametrize(
        "name",
        ["", "   ", ".DS_Store", "README", "ws-1.unknown", "ws-1.codex", "ws-1.codex.1.tmp"],
    )
    def test_unparseable_names_ignored(self, name: str) -> None:
        assert parse_marker_name(name, default_agent_kinds()) is None
