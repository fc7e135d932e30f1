"""Proposal repositories: where pending proposals and their states live.

``FileProposalRepository`` keeps the whole set in one JSON document so a
restarted process can pick up proposals that have not expired yet.
"""

from __future__ import annotations

import json
import logging
import os
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from gatekeeper.delegation.models import PendingProposal
from gatekeeper.delegation.state_machine import DelegationState

logger = logging.getLogger(__name__)

DOCUMENT_VERSION = 1


@dataclass(frozen=True)
class StoredProposalRecord:
    proposal: PendingProposal
    state: DelegationState

    def to_dict(self) -> dict[str, Any]:
        return {"proposal": self.proposal.to_dict(), "state": self.state.to_dict()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StoredProposalRecord:
        return cls(
            proposal=PendingProposal.from_dict(data["proposal"]),
            state=DelegationState.from_dict(data["state"]),
        )


class ProposalRepository(Protocol):
    def get(self, session_id: str) -> StoredProposalRecord | None: ...

    def has(self, session_id: str) -> bool: ...

    def list(self, session_id: str | None = None) -> list[StoredProposalRecord]: ...

    def set(self, record: StoredProposalRecord) -> None: ...

    def delete(self, session_id: str) -> None: ...


class InMemoryProposalRepository:
    """Dict-backed repository keyed by session id."""

    def __init__(self) -> None:
        self._by_session: dict[str, StoredProposalRecord] = {}

    def get(self, session_id: str) -> StoredProposalRecord | None:
        return self._by_session.get(session_id)

    def has(self, session_id: str) -> bool:
        return session_id in self._by_session

    def list(self, session_id: str | None = None) -> list[StoredProposalRecord]:
        if session_id is not None:
            record = self._by_session.get(session_id)
            return [record] if record else []
        return list(self._by_session.values())

    def set(self, record: StoredProposalRecord) -> None:
        self._by_session[record.proposal.session_id] = record

    def delete(self, session_id: str) -> None:
        self._by_session.pop(session_id, None)


class FileProposalRepository(InMemoryProposalRepository):
    """
    In-memory repository mirrored to a JSON document on every mutation.

    Document shape::

        {"version": 1, "records": [{"proposal": {...}, "state": {...}}]}

    On load, expired records and records whose patch file no longer exists
    are dropped. A missing, unreadable or corrupt document loads as empty.
    Writes go to ``<path>.tmp`` and are renamed into place while holding an
    exclusive ``flock`` on ``<path>.lock``. Write errors propagate after the
    in-memory change is rolled back, so memory never runs ahead of disk.
    """

    def __init__(self, file_path: Path, clock: Callable[[], float] = time.time) -> None:
        super().__init__()
        self.file_path = Path(file_path)
        self.clock = clock
        self._by_session = self._load()

    def set(self, record: StoredProposalRecord) -> None:
        session_id = record.proposal.session_id
        previous = self._by_session.get(session_id)
        super().set(record)
        try:
            self._persist()
        except BaseException:
            self._restore(session_id, previous)
            raise

    def delete(self, session_id: str) -> None:
        previous = self._by_session.get(session_id)
        if previous is None:
            return
        super().delete(session_id)
        try:
            self._persist()
        except BaseException:
            self._restore(session_id, previous)
            raise

    def _restore(self, session_id: str, previous: StoredProposalRecord | None) -> None:
        if previous is None:
            self._by_session.pop(session_id, None)
        else:
            self._by_session[session_id] = previous

    def _load(self) -> dict[str, StoredProposalRecord]:
        try:
            raw = self.file_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            logger.warning("Could not read proposal store %s: %s", self.file_path, exc)
            return {}

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning("Proposal store %s is corrupt, starting empty: %s", self.file_path, exc)
            return {}

        records = payload.get("records") if isinstance(payload, dict) else None
        if not isinstance(records, list):
            logger.warning("Proposal store %s has no record list, starting empty", self.file_path)
            return {}

        now = self.clock()
        loaded: dict[str, StoredProposalRecord] = {}
        for item in records:
            try:
                record = StoredProposalRecord.from_dict(item)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed proposal record: %s", exc)
                continue
            proposal = record.proposal
            if not proposal.session_id:
                continue
            if proposal.is_expired(now):
                logger.info("Dropping expired proposal %s on load", proposal.id)
                continue
            if not proposal.patch_path or not Path(proposal.patch_path).exists():
                logger.info("Dropping proposal %s on load: patch file is gone", proposal.id)
                continue
            loaded[proposal.session_id] = record
        return loaded

    @contextmanager
    def _write_lock(self) -> Iterator[None]:
        import fcntl

        lock_path = self.file_path.with_name(self.file_path.name + ".lock")
        with open(lock_path, "a+", encoding="utf-8") as fh:
            fcntl.flock(fh.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(fh.fileno(), fcntl.LOCK_UN)

    def _persist(self) -> None:
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "version": DOCUMENT_VERSION,
            "records": [record.to_dict() for record in self._by_session.values()],
        }
        tmp_path = self.file_path.with_name(self.file_path.name + ".tmp")
        with self._write_lock():
            tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.replace(tmp_path, self.file_path)
