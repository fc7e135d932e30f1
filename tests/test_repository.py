"""Tests for proposal persistence."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import pytest

from gatekeeper.delegation.models import PendingProposal
from gatekeeper.delegation.proposals import ProposalStore
from gatekeeper.delegation.repository import (
    FileProposalRepository,
    InMemoryProposalRepository,
    StoredProposalRecord,
)
from gatekeeper.delegation.state_machine import DelegationState, DelegationStatus

MakeProposal = Callable[..., PendingProposal]


def _record(proposal: PendingProposal) -> StoredProposalRecord:
    return StoredProposalRecord(
        proposal=proposal,
        state=DelegationState(
            DelegationStatus.PROPOSAL_READY, proposal.created_at, proposal_id=proposal.id
        ),
    )


class TestInMemory:
    def test_basic_operations(self, make_proposal: MakeProposal) -> None:
        repo = InMemoryProposalRepository()
        record = _record(make_proposal())
        repo.set(record)

        assert repo.get("s1") == record
        assert repo.has("s1")
        assert repo.list() == [record]
        assert repo.list("other") == []

        repo.delete("s1")
        repo.delete("s1")
        assert repo.get("s1") is None


class TestFileRepository:
    def test_persist_and_reload(self, tmp_path: Path, make_proposal: MakeProposal) -> None:
        path = tmp_path / "sessions" / "proposals.json"
        store = ProposalStore(FileProposalRepository(path, clock=lambda: 1000.0))
        store.create_proposal(make_proposal())

        document = json.loads(path.read_text())
        assert document["version"] == 1
        assert document["records"][0]["proposal"]["id"] == "p-1"
        assert document["records"][0]["state"]["status"] == "proposal_ready"
        assert not path.with_name("proposals.json.tmp").exists()
        assert path.with_name("proposals.json.lock").exists()

        reloaded = ProposalStore(FileProposalRepository(path, clock=lambda: 1500.0))
        proposal = reloaded.get_proposal("s1")
        assert proposal is not None
        assert proposal.file_diffs[0].file_path == "a.py"
        assert reloaded.get_state("s1").proposal_id == "p-1"

    def test_failed_write_rolls_back_set(
        self, tmp_path: Path, make_proposal: MakeProposal
    ) -> None:
        path = tmp_path / "proposals.json"
        path.mkdir()
        repo = FileProposalRepository(path, clock=lambda: 1000.0)

        with pytest.raises(OSError):
            repo.set(_record(make_proposal()))

        assert repo.get("s1") is None
        assert not repo.has("s1")

    def test_failed_write_rolls_back_delete(
        self, tmp_path: Path, make_proposal: MakeProposal
    ) -> None:
        path = tmp_path / "proposals.json"
        repo = FileProposalRepository(path, clock=lambda: 1000.0)
        record = _record(make_proposal())
        repo.set(record)
        path.unlink()
        path.mkdir()

        with pytest.raises(OSError):
            repo.delete("s1")

        assert repo.get("s1") == record

    def test_delete_persists(self, tmp_path: Path, make_proposal: MakeProposal) -> None:
        path = tmp_path / "proposals.json"
        store = ProposalStore(FileProposalRepository(path, clock=lambda: 1000.0))
        store.create_proposal(make_proposal())
        store.reject_proposal("s1", at=1001.0)

        assert json.loads(path.read_text())["records"] == []
        assert FileProposalRepository(path, clock=lambda: 1000.0).list() == []

    def test_expired_dropped_on_load(self, tmp_path: Path, make_proposal: MakeProposal) -> None:
        path = tmp_path / "proposals.json"
        repo = FileProposalRepository(path, clock=lambda: 0.0)
        repo.set(_record(make_proposal(created_at=1000.0, ttl=900.0)))

        assert FileProposalRepository(path, clock=lambda: 1899.0).has("s1")
        assert not FileProposalRepository(path, clock=lambda: 1900.0).has("s1")

    def test_missing_patch_dropped_on_load(self, tmp_path: Path, make_proposal: MakeProposal) -> None:
        path = tmp_path / "proposals.json"
        proposal = make_proposal()
        FileProposalRepository(path, clock=lambda: 1000.0).set(_record(proposal))
        Path(proposal.patch_path).unlink()

        assert FileProposalRepository(path, clock=lambda: 1000.0).list() == []

    def test_corrupt_file_loads_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "proposals.json"
        path.write_text("{oops")
        assert FileProposalRepository(path).list() == []

    def test_wrong_shape_loads_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "proposals.json"
        path.write_text(json.dumps([1, 2, 3]))
        assert FileProposalRepository(path).list() == []

    def test_malformed_record_skipped(self, tmp_path: Path, make_proposal: MakeProposal) -> None:
        path = tmp_path / "proposals.json"
        good = _record(make_proposal())
        path.write_text(json.dumps({"version": 1, "records": [{"proposal": {}}, good.to_dict()]}))

        repo = FileProposalRepository(path, clock=lambda: 1000.0)
        assert [r.proposal.id for r in repo.list()] == ["p-1"]

    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        repo = FileProposalRepository(tmp_path / "nope" / "proposals.json")
        assert repo.list() == []
