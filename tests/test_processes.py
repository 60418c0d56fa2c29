"""Tests for agent process detection."""

from __future__ import annotations

import os
import shutil
import subprocess
import sys
from pathlib import Path

import pytest

from agentorch.activity.processes import is_codex_running_under, looks_like_codex, pid_alive


class TestLooksLikeCodex:
    """Test matching of process names and command lines."""

    @pytest.mark.parametrize(
        "name",
        [
            "codex",
            "codex.exe",
            "CODEX.CMD",
            "/usr/local/bin/codex",
            "codex-x86_64-unknown-linux-musl",
        ],
    )
    def test_codex_binaries(self, name: str) -> None:
        assert looks_like_codex(name)

    def test_script_under_node(self) -> None:
        cmdline = ["node", "/usr/lib/node_modules/@openai/codex/bin/codex.js", "--full-auto"]
        assert looks_like_codex("node", cmdline)

    def test_script_under_bun(self) -> None:
        assert looks_like_codex("bun", ["bun", "C:\\tools\\codex\\codex.js"])

    @pytest.mark.parametrize(
        ("name", "cmdline"),
        [
            ("node", ["node", "server.js"]),
            ("python3", ["python3", "codex.js"]),
            ("bash", ["bash", "-c", "codex"]),
            ("vim", ["vim", "codex.md"]),
        ],
    )
    def test_other_processes(self, name: str, cmdline: list[str]) -> None:
        assert not looks_like_codex(name, cmdline)


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX sleep required")
class TestProcessTable:
    """Test lookups against real processes."""

    def test_child_named_codex_found(self, tmp_path: Path) -> None:
        sleep = shutil.which("sleep")
        if sleep is None:
            pytest.skip("sleep not available")
        fake = tmp_path / "codex"
        shutil.copy(sleep, fake)

        child = subprocess.Popen([str(fake), "5"])
        try:
            assert is_codex_running_under(os.getpid())
        finally:
            child.kill()
            child.wait()
        assert not is_codex_running_under(os.getpid())

    def test_missing_root(self) -> None:
        child = subprocess.Popen(["true"])
        child.wait()
        assert not is_codex_running_under(child.pid)
        assert not pid_alive(child.pid)

    def test_own_pid_alive(self) -> None:
        assert pid_alive(os.getpid())
