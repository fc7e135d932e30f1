"""Markdown job summaries, rewritten atomically on every status change."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from gatekeeper.jobs.audit import iso_timestamp, month_parts
from gatekeeper.jobs.state_machine import JobStatus


@dataclass
class JobSummary:
    job_id: str
    created_at: float
    status: JobStatus
    summary: str
    evidence_links: list[str] = field(default_factory=list)

    def to_markdown(self) -> str:
        lines = [
            f"# Job {self.job_id}",
            "",
            f"Created: {iso_timestamp(self.created_at)}",
            f"Status: {self.status.value}",
            "",
            "## Summary",
            self.summary,
            "",
            "## Evidence",
        ]
        if self.evidence_links:
            lines.extend(f"- {link}" for link in self.evidence_links)
        else:
            lines.append("- None")
        lines.append("")
        return "\n".join(lines)


class FileJobRepository:
    """Stores one summary file per job at ``<root>/jobs/YYYY/MM/<job_id>.md``."""

    def __init__(self, root_dir: Path):
        self.root_dir = Path(root_dir)

    def path_for(self, job_id: str, created_at: float) -> Path:
        year, month = month_parts(created_at)
        return self.root_dir / "jobs" / year / month / f"{job_id}.md"

    def write_summary(self, summary: JobSummary) -> Path:
        file_path = self.path_for(summary.job_id, summary.created_at)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        tmp_path = file_path.with_name(file_path.name + ".tmp")
        tmp_path.write_text(summary.to_markdown(), encoding="utf-8")
        os.replace(tmp_path, file_path)
        return file_path
