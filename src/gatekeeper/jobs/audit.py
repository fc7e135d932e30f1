"""Append-only JSONL audit stream, one file per job per month."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class AuditAppendResult:
    file_path: Path
    line: str


def month_parts(at: float) -> tuple[str, str]:
    moment = datetime.fromtimestamp(at, tz=timezone.utc)
    return f"{moment.year:04d}", f"{moment.month:02d}"


def iso_timestamp(at: float) -> str:
    return datetime.fromtimestamp(at, tz=timezone.utc).isoformat().replace("+00:00", "Z")


class AuditWriter:
    """Writes ``<root>/audit/YYYY/MM/<job_id>.jsonl``."""

    def __init__(self, root_dir: Path):
        self.root_dir = Path(root_dir)

    def path_for(self, job_id: str, at: float) -> Path:
        year, month = month_parts(at)
        return self.root_dir / "audit" / year / month / f"{job_id}.jsonl"

    def append_event(
        self,
        job_id: str,
        event_type: str,
        at: float,
        payload: dict[str, Any] | None = None,
    ) -> AuditAppendResult:
        file_path = self.path_for(job_id, at)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        record: dict[str, Any] = {
            "t": int(at),
            "at": iso_timestamp(at),
            "ev": event_type,
            "job_id": job_id,
        }
        record.update(payload or {})
        line = json.dumps(record, default=str) + "\n"

        with open(file_path, "a", encoding="utf-8") as fh:
            fh.write(line)
        return AuditAppendResult(file_path=file_path, line=line)

    def read_events(self, job_id: str, at: float) -> list[dict[str, Any]]:
        """Read back one month's events for a job (empty when none were written)."""
        file_path = self.path_for(job_id, at)
        if not file_path.exists():
            return []
        with open(file_path, encoding="utf-8") as fh:
            return [json.loads(line) for line in fh if line.strip()]
