"""Isolated git worktree executor.

A delegated task runs inside a detached worktree created from the current
HEAD. Whatever it changes is captured as a binary-safe patch and turned into a
:class:`PendingProposal`; the user's checkout is untouched until the patch is
explicitly applied.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import subprocess
import tempfile
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from gatekeeper.delegation.models import DelegateOutcome, FileDiff, PendingProposal
from gatekeeper.errors import WorktreeError
from gatekeeper.validators import VALID, ValidationResult

logger = logging.getLogger(__name__)

GIT_TIMEOUT_SECONDS = 120
TEMP_PREFIX = "gatekeeper-delegate-"
PATCH_FILENAME = "proposal.patch"

DIRTY_TREE_ERROR = "Delegation review mode requires a clean repository; working tree is not clean."
APPLY_DIRTY_ERROR = "Cannot apply proposal: repository has uncommitted changes."
APPLY_HEAD_MOVED_ERROR = "Cannot apply proposal: repository HEAD changed since proposal creation."

LANGUAGE_BY_SUFFIX = {
    ".py": "python",
    ".pyi": "python",
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".kt": "kotlin",
    ".rb": "ruby",
    ".php": "php",
    ".c": "c",
    ".h": "c",
    ".cc": "cpp",
    ".cpp": "cpp",
    ".hpp": "cpp",
    ".cs": "csharp",
    ".swift": "swift",
    ".sh": "bash",
    ".bash": "bash",
    ".zsh": "bash",
    ".sql": "sql",
    ".html": "html",
    ".css": "css",
    ".scss": "scss",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
    ".ini": "ini",
    ".cfg": "ini",
    ".xml": "xml",
    ".md": "markdown",
    ".rst": "rst",
    ".txt": "text",
}

SPECIAL_FILENAMES = {
    "Dockerfile": "dockerfile",
    "Makefile": "makefile",
}


@dataclass(frozen=True)
class GitResult:
    code: int
    stdout: str
    stderr: str
    raw_stdout: bytes | None = None

    @property
    def stdout_bytes(self) -> bytes:
        """Undecoded stdout; runners that only produce text are encoded as UTF-8."""
        if self.raw_stdout is not None:
            return self.raw_stdout
        return self.stdout.encode("utf-8")

    @property
    def detail(self) -> str:
        return self.stderr.strip() or self.stdout.strip()


GitRunner = Callable[[list[str], str], GitResult]
Delegate = Callable[[str, str], Awaitable[DelegateOutcome]]


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def run_git(args: list[str], cwd: str) -> GitResult:
    """
    Run ``git <args>`` in ``cwd`` with a wall-clock timeout.

    Output is captured as bytes. ``stdout`` and ``stderr`` are decoded
    leniently for display; ``raw_stdout`` keeps the exact bytes for patches.
    """
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            timeout=GIT_TIMEOUT_SECONDS,
            check=False,
        )
    except subprocess.TimeoutExpired:
        return GitResult(code=124, stdout="", stderr=f"git {args[0]} timed out")
    except FileNotFoundError as exc:
        return GitResult(code=127, stdout="", stderr=str(exc))
    return GitResult(
        code=result.returncode,
        stdout=_decode(result.stdout),
        stderr=_decode(result.stderr),
        raw_stdout=result.stdout,
    )


def language_for_path(path: str) -> str:
    name = Path(path).name
    if name in SPECIAL_FILENAMES:
        return SPECIAL_FILENAMES[name]
    return LANGUAGE_BY_SUFFIX.get(Path(path).suffix.lower(), "text")


def preview_from_diff(diff: str, max_lines: int = 80, max_chars: int = 3000) -> str:
    limited = "\n".join(diff.split("\n")[:max_lines])
    return limited[:max_chars]


@dataclass(frozen=True)
class WorktreeRunResult:
    exit_code: int
    summary: str
    proposal: PendingProposal | None = None
    no_changes: bool = False


class WorktreeExecutor:
    """Runs delegates in throwaway worktrees and applies accepted patches."""

    def __init__(
        self,
        runner: GitRunner | None = None,
        temp_root: Path | None = None,
        ttl_seconds: float = 15 * 60,
        preview_max_lines: int = 80,
        preview_max_chars: int = 3000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.runner = runner or run_git
        self.temp_root = Path(temp_root) if temp_root else Path(tempfile.gettempdir())
        self.ttl_seconds = ttl_seconds
        self.preview_max_lines = preview_max_lines
        self.preview_max_chars = preview_max_chars
        self.clock = clock

    async def _git(self, args: list[str], cwd: str) -> GitResult:
        return await asyncio.to_thread(self.runner, args, cwd)

    async def _git_or_raise(self, args: list[str], cwd: str, error_prefix: str) -> GitResult:
        result = await self._git(args, cwd)
        if result.code != 0:
            raise WorktreeError(f"{error_prefix}: {result.detail or 'unknown git error'}")
        return result

    def _make_temp_dir(self) -> str:
        self.temp_root.mkdir(parents=True, exist_ok=True)
        return tempfile.mkdtemp(prefix=TEMP_PREFIX, dir=str(self.temp_root))

    # ═══════════════════════════════════════════════════════════════
    # Delegation run
    # ═══════════════════════════════════════════════════════════════

    async def run(
        self,
        session_id: str,
        prompt: str,
        delegate: Delegate,
        repo_dir: str | None = None,
    ) -> WorktreeRunResult:
        """
        Run ``delegate`` in a fresh worktree and capture its changes.

        Args:
            session_id: Session that will own the resulting proposal
            prompt: Task text passed through to the delegate
            delegate: Async callable ``(prompt, cwd) -> DelegateOutcome``
            repo_dir: Directory inside the target repository (default: cwd)

        Returns:
            WorktreeRunResult with either a proposal or ``no_changes=True``

        Raises:
            WorktreeError: the repository is dirty or a git step failed
        """
        start_dir = repo_dir or os.getcwd()
        repo_root = (
            await self._git_or_raise(
                ["rev-parse", "--show-toplevel"], start_dir, "Failed to locate git repository"
            )
        ).stdout.strip()

        status = await self._git_or_raise(
            ["status", "--porcelain"], repo_root, "Failed to check repository status"
        )
        if status.stdout.strip():
            raise WorktreeError(DIRTY_TREE_ERROR)

        base_head = (
            await self._git_or_raise(["rev-parse", "HEAD"], repo_root, "Failed to resolve current HEAD")
        ).stdout.strip()

        worktree_path = self._make_temp_dir()
        patch_dir = self._make_temp_dir()
        patch_path = os.path.join(patch_dir, PATCH_FILENAME)
        worktree_created = False

        try:
            await self._git_or_raise(
                ["worktree", "add", "--detach", worktree_path, base_head],
                repo_root,
                "Failed to create isolated worktree",
            )
            worktree_created = True
            logger.info("Delegation sandbox for session %s at %s", session_id, worktree_path)

            outcome = await delegate(prompt, worktree_path)

            await self._git_or_raise(
                ["add", "--all"], worktree_path, "Failed to stage delegated changes"
            )
            full_diff = await self._git_or_raise(
                ["diff", "--cached", "--binary", "--no-color"],
                worktree_path,
                "Failed to build diff for delegated changes",
            )
            patch_bytes = full_diff.stdout_bytes

            if not patch_bytes.strip():
                await self._remove_sandbox(repo_root, worktree_path)
                shutil.rmtree(patch_dir, ignore_errors=True)
                logger.info("Delegation for session %s produced no changes", session_id)
                return WorktreeRunResult(
                    exit_code=outcome.exit_code, summary=outcome.summary, no_changes=True
                )

            diff_stat = (
                await self._git_or_raise(
                    ["diff", "--cached", "--stat", "--no-color"],
                    worktree_path,
                    "Failed to build diffstat for delegated changes",
                )
            ).stdout.strip()
            name_only = (
                await self._git_or_raise(
                    ["diff", "--cached", "--name-only", "--no-color"],
                    worktree_path,
                    "Failed to list changed files for delegated changes",
                )
            ).stdout
            changed_files = [line.strip() for line in name_only.splitlines() if line.strip()]

            file_diffs: list[FileDiff] = []
            for file_path in changed_files:
                file_diff = await self._git_or_raise(
                    ["diff", "--cached", "--no-color", "--", file_path],
                    worktree_path,
                    f"Failed to build diff for {file_path}",
                )
                file_diffs.append(
                    FileDiff(
                        file_path=file_path,
                        language=language_for_path(file_path),
                        diff=file_diff.stdout,
                    )
                )

            Path(patch_path).write_bytes(patch_bytes)
            created_at = self.clock()
            proposal = PendingProposal(
                id=f"p-{uuid.uuid4()}",
                session_id=session_id,
                created_at=created_at,
                expires_at=created_at + self.ttl_seconds,
                project_name=Path(repo_root).name,
                repo_root=repo_root,
                base_head=base_head,
                worktree_path=worktree_path,
                patch_path=patch_path,
                changed_files=changed_files,
                diff_stat=diff_stat,
                diff_preview=preview_from_diff(
                    full_diff.stdout, self.preview_max_lines, self.preview_max_chars
                ),
                file_diffs=file_diffs,
                delegate_summary=outcome.summary,
                delegate_exit_code=outcome.exit_code,
            )
            logger.info(
                "Proposal %s ready for session %s (%d files)",
                proposal.id,
                session_id,
                len(changed_files),
            )
            return WorktreeRunResult(
                exit_code=outcome.exit_code, summary=outcome.summary, proposal=proposal
            )
        except BaseException:
            if worktree_created:
                await asyncio.shield(self._remove_sandbox(repo_root, worktree_path))
            shutil.rmtree(worktree_path, ignore_errors=True)
            shutil.rmtree(patch_dir, ignore_errors=True)
            raise

    # ═══════════════════════════════════════════════════════════════
    # Apply / cleanup
    # ═══════════════════════════════════════════════════════════════

    async def verify_apply_preconditions(self, proposal: PendingProposal) -> ValidationResult:
        """The checkout must be clean and still at the proposal's base commit."""
        status = await self._git(["status", "--porcelain"], proposal.repo_root)
        if status.code != 0:
            return ValidationResult(
                ok=False,
                error=f"Failed to check repository status before apply: {status.detail}",
            )
        if status.stdout.strip():
            return ValidationResult(ok=False, error=APPLY_DIRTY_ERROR)

        head = await self._git(["rev-parse", "HEAD"], proposal.repo_root)
        if head.code != 0:
            return ValidationResult(
                ok=False, error=f"Failed to read repository HEAD before apply: {head.detail}"
            )
        if head.stdout.strip() != proposal.base_head:
            return ValidationResult(ok=False, error=APPLY_HEAD_MOVED_ERROR)
        return VALID

    def patch_is_managed(self, proposal: PendingProposal) -> bool:
        """True when the patch file lives under this executor's temp root."""
        patch = Path(proposal.patch_path).resolve()
        return patch.is_relative_to(self.temp_root.resolve())

    async def apply_patch(self, proposal: PendingProposal) -> ValidationResult:
        if not self.patch_is_managed(proposal):
            return ValidationResult(
                ok=False,
                error="Failed to apply proposal patch: patch file is outside the sandbox root.",
            )
        result = await self._git(
            ["apply", "--whitespace=nowarn", proposal.patch_path], proposal.repo_root
        )
        if result.code != 0:
            return ValidationResult(
                ok=False,
                error=f"Failed to apply proposal patch: {result.detail or 'git apply failed'}",
            )
        logger.info("Applied proposal %s to %s", proposal.id, proposal.repo_root)
        return VALID

    async def cleanup(self, proposal: PendingProposal) -> None:
        """Remove the sandbox and patch directory. Safe to call repeatedly."""
        await self._remove_sandbox(proposal.repo_root, proposal.worktree_path)
        shutil.rmtree(proposal.worktree_path, ignore_errors=True)
        shutil.rmtree(os.path.dirname(proposal.patch_path), ignore_errors=True)

    async def _remove_sandbox(self, repo_root: str, worktree_path: str) -> None:
        result = await self._git(["worktree", "remove", "--force", worktree_path], repo_root)
        if result.code != 0:
            logger.debug("worktree remove for %s: %s", worktree_path, result.detail)
