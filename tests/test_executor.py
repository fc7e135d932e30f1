"""Tests for the command runner and the Claude CLI delegate."""

from __future__ import annotations

import shutil
import stat
from pathlib import Path

import pytest

from gatekeeper.engine.executor import (
    MAX_PROMPT_LENGTH,
    OUTPUT_TRUNCATED_MARKER,
    ClaudeCodeDelegate,
    CommandRunner,
    ExecutionResult,
    format_result,
)

needs_bash = pytest.mark.skipif(shutil.which("bash") is None, reason="bash not installed")


@needs_bash
class TestCommandRunner:
    def test_success(self, tmp_path: Path) -> None:
        result = CommandRunner().run("echo hello && pwd", str(tmp_path))
        assert result.success is True
        assert result.exit_code == 0
        assert result.stdout.splitlines() == ["hello", str(tmp_path.resolve())]

    def test_failure_exit_code(self) -> None:
        result = CommandRunner().run("echo oops >&2; exit 3")
        assert result.success is False
        assert result.exit_code == 3
        assert result.stderr.strip() == "oops"

    def test_timeout(self) -> None:
        result = CommandRunner(timeout=1).run("sleep 5")
        assert result.timed_out is True
        assert result.exit_code == 1
        assert "timed out after 1s" in result.stderr

    def test_output_clipped(self) -> None:
        result = CommandRunner(max_output_bytes=10).run("printf '%0100d' 0")
        assert result.stdout == "0" * 10 + OUTPUT_TRUNCATED_MARKER

    def test_missing_shell(self) -> None:
        result = CommandRunner(shell="/nonexistent/shell").run("echo hi")
        assert result.success is False


def test_format_result() -> None:
    result = ExecutionResult(success=True, stdout="a\n", stderr="", exit_code=0)
    assert format_result(result) == "Exit code: 0\nSTDOUT:\na\n\nSTDERR:\n"


class TestClaudeCodeDelegate:
    def test_prompt_validation(self) -> None:
        with pytest.raises(ValueError, match="empty"):
            ClaudeCodeDelegate._validate_prompt("   ")
        with pytest.raises(ValueError, match="maximum length"):
            ClaudeCodeDelegate._validate_prompt("x" * (MAX_PROMPT_LENGTH + 1))
        assert ClaudeCodeDelegate._validate_prompt("a\x00b\tc\n") == "ab\tc\n"

    def test_missing_binary(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CLAUDE_REAL_BIN", str(tmp_path / "claude"))
        with pytest.raises(FileNotFoundError):
            ClaudeCodeDelegate._resolve_claude_binary()

    @needs_bash
    @pytest.mark.anyio
    async def test_runs_binary_in_sandbox(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        script = tmp_path / "claude"
        script.write_text(
            "#!/usr/bin/env bash\n"
            'echo "cwd=$(pwd)"\n'
            'echo "args=$*"\n'
            'echo "claudecode=${CLAUDECODE:-unset}"\n'
        )
        script.chmod(script.stat().st_mode | stat.S_IXUSR)
        monkeypatch.setenv("CLAUDECODE", "1")
        monkeypatch.setenv("CLAUDE_REAL_BIN", str(script))
        sandbox = tmp_path / "sandbox"
        sandbox.mkdir()

        outcome = await ClaudeCodeDelegate()("fix the bug", str(sandbox))

        assert outcome.exit_code == 0
        assert f"cwd={sandbox.resolve()}" in outcome.summary
        assert "args=-p fix the bug --dangerously-skip-permissions" in outcome.summary
        assert "claudecode=unset" in outcome.summary
