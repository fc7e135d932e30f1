"""Command runner and the default Claude CLI delegate."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from gatekeeper.delegation.models import DelegateOutcome

logger = logging.getLogger(__name__)

# Maximum prompt length to prevent DoS via extremely long prompts
MAX_PROMPT_LENGTH = 50_000

SUMMARY_TAIL_CHARS = 800
OUTPUT_TRUNCATED_MARKER = "\n... [output truncated]"


@dataclass
class ExecutionResult:
    """Result of a shell command."""

    success: bool
    stdout: str
    stderr: str
    exit_code: int
    timed_out: bool = False


def _clip(text: str, max_bytes: int) -> str:
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    return encoded[:max_bytes].decode("utf-8", errors="ignore") + OUTPUT_TRUNCATED_MARKER


class CommandRunner:
    """
    Runs policy-approved shell commands outside any sandbox.

    Each command gets a hard wall-clock timeout; stdout and stderr are each
    clipped to ``max_output_bytes``.
    """

    def __init__(
        self,
        timeout: int = 10,
        max_output_bytes: int = 512 * 1024,
        shell: str | None = None,
    ) -> None:
        self.timeout = timeout
        self.max_output_bytes = max_output_bytes
        self.shell = shell or os.environ.get("SHELL_BIN", "").strip() or "bash"

    def run(self, command: str, working_dir: str | None = None) -> ExecutionResult:
        try:
            result = subprocess.run(
                [self.shell, "-c", command],
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout,
                cwd=working_dir or os.getcwd(),
                check=False,
            )
        except subprocess.TimeoutExpired:
            logger.warning("Command timed out after %ss: %s", self.timeout, command[:200])
            return ExecutionResult(
                success=False,
                stdout="",
                stderr=f"Command timed out after {self.timeout}s",
                exit_code=1,
                timed_out=True,
            )
        except OSError as e:
            return ExecutionResult(success=False, stdout="", stderr=str(e), exit_code=1)

        return ExecutionResult(
            success=result.returncode == 0,
            stdout=_clip(result.stdout, self.max_output_bytes),
            stderr=_clip(result.stderr, self.max_output_bytes),
            exit_code=result.returncode,
        )


def format_result(result: ExecutionResult) -> str:
    return f"Exit code: {result.exit_code}\nSTDOUT:\n{result.stdout}\nSTDERR:\n{result.stderr}"


class ClaudeCodeDelegate:
    """
    Delegate that runs the ``claude`` CLI non-interactively in the sandbox.

    The binary comes from ``CLAUDE_REAL_BIN`` when set, otherwise from PATH,
    otherwise ``~/.local/bin/claude``. It is resolved on first use.
    """

    def __init__(self, claude_bin: str | None = None) -> None:
        self._claude_bin = claude_bin

    @staticmethod
    def _resolve_claude_binary() -> str:
        """Resolve and validate the Claude binary path."""
        bin_path = (
            os.environ.get("CLAUDE_REAL_BIN")
            or shutil.which("claude")
            or str(Path.home() / ".local" / "bin" / "claude")
        )
        resolved = Path(bin_path).resolve()
        if not resolved.exists():
            raise FileNotFoundError(f"Claude binary not found: {resolved}")
        if not os.access(str(resolved), os.X_OK):
            raise PermissionError(f"Claude binary not executable: {resolved}")
        return str(resolved)

    @staticmethod
    def _validate_prompt(prompt: str) -> str:
        """Validate and sanitize prompt input."""
        if not prompt or not prompt.strip():
            raise ValueError("Prompt cannot be empty")
        if len(prompt) > MAX_PROMPT_LENGTH:
            raise ValueError(f"Prompt exceeds maximum length ({MAX_PROMPT_LENGTH} chars)")
        # Strip null bytes and non-printable control chars (keep newlines, tabs)
        return "".join(c for c in prompt if c == "\n" or c == "\t" or (ord(c) >= 32))

    async def __call__(self, prompt: str, cwd: str) -> DelegateOutcome:
        if self._claude_bin is None:
            self._claude_bin = self._resolve_claude_binary()

        safe_prompt = self._validate_prompt(prompt)
        env = dict(os.environ)
        env.pop("CLAUDECODE", None)

        logger.info("Delegating to %s in %s", self._claude_bin, cwd)
        proc = await asyncio.create_subprocess_exec(
            self._claude_bin,
            "-p",
            safe_prompt,
            "--dangerously-skip-permissions",
            cwd=cwd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
        )
        stdout, stderr = await proc.communicate()
        exit_code = proc.returncode if proc.returncode is not None else 1
        if exit_code != 0:
            logger.warning(
                "Delegate exited with %d: %s",
                exit_code,
                stderr.decode("utf-8", errors="replace")[-500:],
            )

        output = stdout.decode("utf-8", errors="replace")
        return DelegateOutcome(exit_code=exit_code, summary=output[-SUMMARY_TAIL_CHARS:].strip())
