"""Shared fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from gatekeeper.delegation.models import FileDiff, PendingProposal

from fakes import Events, Sent

POLICY_PATH = Path(__file__).resolve().parent.parent / "policies" / "policy.json"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def policy_path() -> Path:
    return POLICY_PATH


@pytest.fixture
def sent() -> Sent:
    return Sent()


@pytest.fixture
def events() -> Events:
    return Events()


@pytest.fixture
def make_proposal(tmp_path: Path) -> Callable[..., PendingProposal]:
    """Factory for proposals whose patch file really exists."""

    def _make(
        proposal_id: str = "p-1",
        session_id: str = "s1",
        created_at: float = 1000.0,
        ttl: float = 900.0,
        changed_files: list[str] | None = None,
        **overrides: Any,
    ) -> PendingProposal:
        patch_dir = tmp_path / f"patch-{proposal_id}"
        patch_dir.mkdir(exist_ok=True)
        patch_path = patch_dir / "proposal.patch"
        patch_path.write_text("diff --git a/a.py b/a.py\n", encoding="utf-8")
        files = changed_files if changed_files is not None else ["a.py", "docs/b.md"]
        fields: dict[str, Any] = {
            "id": proposal_id,
            "session_id": session_id,
            "created_at": created_at,
            "expires_at": created_at + ttl,
            "project_name": "demo",
            "repo_root": str(tmp_path / "repo"),
            "base_head": "abc123",
            "worktree_path": str(tmp_path / f"wt-{proposal_id}"),
            "patch_path": str(patch_path),
            "changed_files": files,
            "diff_stat": " a.py | 1 +\n 1 file changed",
            "diff_preview": "diff --git a/a.py b/a.py",
            "file_diffs": [FileDiff(file_path=f, language="python", diff=f"+{f}") for f in files],
            "delegate_summary": "done",
            "delegate_exit_code": 0,
        }
        fields.update(overrides)
        return PendingProposal(**fields)

    return _make
