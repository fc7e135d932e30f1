"""Tests for accepting, rejecting and listing proposals."""

from __future__ import annotations

import pytest

from gatekeeper.delegation.approval import (
    EXPIRED_MESSAGE,
    LOW_TRUST_APPLY_MESSAGE,
    NO_PENDING_MESSAGE,
    ApprovalService,
)
from gatekeeper.delegation.proposals import ProposalStore
from gatekeeper.validators import ValidationResult

from fakes import Events, FakeExecutor, Sent


class Clock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def store() -> ProposalStore:
    return ProposalStore()


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def notes() -> list[tuple[str, str]]:
    return []


def _service(
    store: ProposalStore,
    executor: FakeExecutor,
    events: Events,
    clock: Clock,
    notes: list[tuple[str, str]],
    **kwargs,
) -> ApprovalService:
    return ApprovalService(
        store=store,
        executor=executor,  # type: ignore[arg-type]
        events=events,
        notes=lambda session_id, text: notes.append((session_id, text)),
        clock=clock,
        **kwargs,
    )


class TestAccept:
    @pytest.mark.anyio
    async def test_accept_applies_and_cleans(
        self, store, make_proposal, events, clock, notes, sent: Sent
    ) -> None:
        store.create_proposal(make_proposal())
        executor = FakeExecutor()
        service = _service(store, executor, events, clock, notes)

        result = await service.handle_text("s1", "/accept p-1", "cli", sent)

        assert result.handled
        assert executor.applied == ["p-1"]
        assert executor.cleaned == ["p-1"]
        assert not store.has_pending("s1")
        assert sent.messages == [
            "[PROPOSAL APPLIED] p-1\n\nProposal applied.\nChanged files: 2"
        ]
        assert events.names == ["proposal_accepted"]
        assert notes == [("s1", "Proposal applied: p-1")]

    @pytest.mark.anyio
    async def test_bare_accept_with_pending(
        self, store, make_proposal, events, clock, notes, sent: Sent
    ) -> None:
        store.create_proposal(make_proposal())
        executor = FakeExecutor()
        service = _service(store, executor, events, clock, notes)

        result = await service.handle_text("s1", "accept", "cli", sent)

        assert result.handled
        assert executor.applied == ["p-1"]

    @pytest.mark.anyio
    async def test_low_trust_channel_refused(
        self, store, make_proposal, events, clock, notes, sent: Sent
    ) -> None:
        store.create_proposal(make_proposal())
        executor = FakeExecutor()
        service = _service(store, executor, events, clock, notes)

        await service.handle_text("s1", "/accept", "chat", sent)

        assert sent.messages == [LOW_TRUST_APPLY_MESSAGE]
        assert executor.applied == []
        assert store.has_pending("s1")

    @pytest.mark.anyio
    async def test_low_trust_channel_with_unsafe_writes(
        self, store, make_proposal, events, clock, notes, sent: Sent
    ) -> None:
        store.create_proposal(make_proposal())
        executor = FakeExecutor()
        service = _service(store, executor, events, clock, notes, unsafe_enable_writes=True)

        await service.handle_text("s1", "/accept", "chat", sent)

        assert executor.applied == ["p-1"]
        assert service.can_apply_from("chat")

    @pytest.mark.anyio
    async def test_precondition_failure_keeps_proposal(
        self, store, make_proposal, events, clock, notes, sent: Sent
    ) -> None:
        store.create_proposal(make_proposal())
        executor = FakeExecutor(
            preconditions=ValidationResult(ok=False, error="Cannot apply proposal: dirty")
        )
        service = _service(store, executor, events, clock, notes)

        await service.handle_text("s1", "/accept p-1", "cli", sent)

        assert sent.messages == ["Cannot apply proposal: dirty"]
        assert store.has_pending("s1")
        assert executor.applied == []
        assert executor.cleaned == []
        assert events.names == ["proposal_apply_failed"]
        assert notes[-1] == (
            "s1",
            "Proposal apply blocked: the repository was not ready for the patch.",
        )

    @pytest.mark.anyio
    async def test_precondition_note_omits_git_output(
        self, store, make_proposal, events, clock, notes, sent: Sent
    ) -> None:
        store.create_proposal(make_proposal())
        error = "Failed to check repository status before apply: fatal: index file corrupt"
        executor = FakeExecutor(preconditions=ValidationResult(ok=False, error=error))
        service = _service(store, executor, events, clock, notes)

        await service.handle_text("s1", "/accept", "cli", sent)

        assert store.has_pending("s1")
        assert all("index file corrupt" not in text for _, text in notes)

    @pytest.mark.anyio
    async def test_apply_failure_keeps_proposal(
        self, store, make_proposal, events, clock, notes, sent: Sent
    ) -> None:
        store.create_proposal(make_proposal())
        executor = FakeExecutor(
            apply_result=ValidationResult(ok=False, error="Failed to apply proposal patch: boom")
        )
        service = _service(store, executor, events, clock, notes)

        await service.handle_text("s1", "/accept", "cli", sent)

        assert sent.messages == ["Failed to apply proposal patch: boom"]
        assert store.has_pending("s1")
        assert events.items[0][1]["error"] == "Failed to apply proposal patch: boom"

    @pytest.mark.anyio
    async def test_wrong_id(self, store, make_proposal, events, clock, notes, sent: Sent) -> None:
        store.create_proposal(make_proposal())
        service = _service(store, FakeExecutor(), events, clock, notes)

        await service.handle_text("s1", "/accept p-9", "cli", sent)

        assert sent.messages == ["Proposal id p-9 does not match pending proposal p-1."]
        assert store.has_pending("s1")

    @pytest.mark.anyio
    async def test_nothing_pending(self, store, events, clock, notes, sent: Sent) -> None:
        service = _service(store, FakeExecutor(), events, clock, notes)
        await service.handle_text("s1", "/accept", "cli", sent)
        assert sent.messages == ["No pending proposal exists for session s1."]


class TestReject:
    @pytest.mark.anyio
    async def test_reject(self, store, make_proposal, events, clock, notes, sent: Sent) -> None:
        store.create_proposal(make_proposal())
        executor = FakeExecutor()
        service = _service(store, executor, events, clock, notes)

        await service.handle_text("s1", "/reject", "chat", sent)

        assert sent.messages == ["[PROPOSAL REJECTED] p-1\n\nProposal rejected."]
        assert executor.cleaned == ["p-1"]
        assert executor.applied == []
        assert not store.has_pending("s1")
        assert events.names == ["proposal_rejected"]
        assert notes == [("s1", "Proposal rejected: p-1")]


class TestExpiry:
    @pytest.mark.anyio
    async def test_expired_proposal_reported(
        self, store, make_proposal, events, clock, notes, sent: Sent
    ) -> None:
        store.create_proposal(make_proposal(created_at=1000.0, ttl=900.0))
        executor = FakeExecutor()
        service = _service(store, executor, events, clock, notes)
        clock.now = 1900.0

        await service.handle_text("s1", "/accept", "cli", sent)

        assert sent.messages == [EXPIRED_MESSAGE]
        assert executor.cleaned == ["p-1"]
        assert executor.applied == []
        assert events.names == ["proposal_expired"]

    @pytest.mark.anyio
    async def test_expire_stale_across_sessions(
        self, store, make_proposal, events, clock, notes
    ) -> None:
        store.create_proposal(make_proposal("p-a", session_id="a", created_at=0.0, ttl=10.0))
        store.create_proposal(make_proposal("p-b", session_id="b", created_at=990.0, ttl=900.0))
        executor = FakeExecutor()
        service = _service(store, executor, events, clock, notes)

        expired = await service.expire_stale()

        assert [p.id for p in expired] == ["p-a"]
        assert executor.cleaned == ["p-a"]
        assert store.has_pending("b")


class TestPendingAndOther:
    @pytest.mark.anyio
    async def test_pending_shows_proposal(
        self, store, make_proposal, events, clock, notes, sent: Sent
    ) -> None:
        store.create_proposal(make_proposal())
        service = _service(store, FakeExecutor(), events, clock, notes)

        await service.handle_text("s1", "/pending", "chat", sent)

        assert sent.messages[0].startswith("[PENDING PROPOSAL] p-1")
        assert len(sent.messages) == 4
        assert store.has_pending("s1")

    @pytest.mark.anyio
    async def test_pending_when_empty(self, store, events, clock, notes, sent: Sent) -> None:
        service = _service(store, FakeExecutor(), events, clock, notes)
        await service.handle_text("s1", "/pending", "chat", sent)
        assert sent.messages == [NO_PENDING_MESSAGE]

    @pytest.mark.anyio
    async def test_invalid_command(self, store, events, clock, notes, sent: Sent) -> None:
        service = _service(store, FakeExecutor(), events, clock, notes)
        result = await service.handle_text("s1", "/reject a b", "chat", sent)
        assert result.handled
        assert sent.messages == ["[INVALID] Usage: /reject or /reject <proposalId>"]

    @pytest.mark.anyio
    async def test_plain_text_not_handled(self, store, events, clock, notes, sent: Sent) -> None:
        service = _service(store, FakeExecutor(), events, clock, notes)
        result = await service.handle_text("s1", "accept", "chat", sent)
        assert result.handled is False
        assert sent.messages == []
        assert notes == []
