"""
Delegation Data Models

Proposals produced by a delegated task, the display-safe view handed back to
callers, and the result of one delegation run.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class FileDiff:
    """Diff for a single changed file with a best-effort language label."""

    file_path: str
    language: str
    diff: str


@dataclass(frozen=True)
class DelegateOutcome:
    """What the delegate callback reports after working in the sandbox."""

    exit_code: int
    summary: str


@dataclass(frozen=True)
class PendingProposal:
    """
    A reviewable patch waiting for accept or reject.

    ``worktree_path`` and ``patch_path`` point into the temp root and stay on
    disk until the proposal is resolved or expires.
    """

    id: str
    session_id: str
    created_at: float
    expires_at: float
    project_name: str
    repo_root: str
    base_head: str
    worktree_path: str
    patch_path: str
    changed_files: list[str] = field(default_factory=list)
    diff_stat: str = ""
    diff_preview: str = ""
    file_diffs: list[FileDiff] = field(default_factory=list)
    delegate_summary: str = ""
    delegate_exit_code: int = 0

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PendingProposal:
        payload = dict(data)
        payload["changed_files"] = list(payload.get("changed_files") or [])
        payload["file_diffs"] = [FileDiff(**item) for item in payload.get("file_diffs") or []]
        return cls(**payload)

    def summary(self) -> ProposalSummary:
        return ProposalSummary(
            id=self.id,
            project_name=self.project_name,
            expires_at=self.expires_at,
            changed_files=list(self.changed_files),
            diff_stat=self.diff_stat,
            diff_preview=self.diff_preview,
            file_diffs=list(self.file_diffs),
        )


@dataclass(frozen=True)
class ProposalSummary:
    """Proposal metadata safe to show to a user: no filesystem paths."""

    id: str
    project_name: str
    expires_at: float
    changed_files: list[str]
    diff_stat: str
    diff_preview: str
    file_diffs: list[FileDiff] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DelegateResult:
    exit_code: int
    summary: str
    proposal: ProposalSummary | None = None
    no_changes: bool = False
