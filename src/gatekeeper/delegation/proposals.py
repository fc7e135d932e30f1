"""Proposal store: one pending proposal per session, paired with its state."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass

from gatekeeper.delegation.models import PendingProposal
from gatekeeper.delegation.repository import (
    InMemoryProposalRepository,
    ProposalRepository,
    StoredProposalRecord,
)
from gatekeeper.delegation.state_machine import (
    DelegationEvent,
    DelegationEventType,
    DelegationState,
    create_queued_delegation_state,
    transition_delegation_state,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProposalResolution:
    ok: bool
    proposal: PendingProposal | None = None
    state: DelegationState | None = None
    error: str | None = None


class ProposalStore:
    """
    Owns the session -> (proposal, state) mapping.

    A proposal and its delegation state are always written and removed
    together through the repository. All public methods hold one re-entrant
    lock so API handlers running in worker threads see a consistent view.
    """

    def __init__(self, repository: ProposalRepository | None = None) -> None:
        self.repository = repository if repository is not None else InMemoryProposalRepository()
        self._lock = threading.RLock()

    def create_proposal(self, proposal: PendingProposal) -> ProposalResolution:
        with self._lock:
            existing = self.repository.get(proposal.session_id)
            if existing is not None:
                return ProposalResolution(
                    ok=False,
                    error=(
                        f"Session {proposal.session_id} already has a pending proposal "
                        f"({existing.proposal.id})."
                    ),
                )

            at = proposal.created_at
            state = create_queued_delegation_state(at)
            for event in (
                DelegationEvent(DelegationEventType.START, at),
                DelegationEvent(DelegationEventType.SUCCESS_WITH_DIFF, at, proposal_id=proposal.id),
            ):
                result = transition_delegation_state(state, event)
                if not result.ok:
                    return ProposalResolution(ok=False, error=result.error)
                state = result.state

            self.repository.set(StoredProposalRecord(proposal=proposal, state=state))
            logger.info("Stored proposal %s for session %s", proposal.id, proposal.session_id)
            return ProposalResolution(ok=True, proposal=proposal, state=state)

    def get_proposal(self, session_id: str) -> PendingProposal | None:
        with self._lock:
            record = self.repository.get(session_id)
            return record.proposal if record else None

    def get_state(self, session_id: str) -> DelegationState | None:
        with self._lock:
            record = self.repository.get(session_id)
            return record.state if record else None

    def has_pending(self, session_id: str) -> bool:
        with self._lock:
            return self.repository.has(session_id)

    def list_pending(self, session_id: str | None = None) -> list[PendingProposal]:
        with self._lock:
            return [record.proposal for record in self.repository.list(session_id)]

    def resolve(self, session_id: str, expected_id: str | None = None) -> ProposalResolution:
        """Look up the session's proposal, checking ``expected_id`` when given."""
        with self._lock:
            record = self.repository.get(session_id)
            if record is None:
                return ProposalResolution(
                    ok=False, error=f"No pending proposal exists for session {session_id}."
                )
            if expected_id and record.proposal.id != expected_id:
                return ProposalResolution(
                    ok=False,
                    error=(
                        f"Proposal id {expected_id} does not match pending proposal "
                        f"{record.proposal.id}."
                    ),
                )
            return ProposalResolution(ok=True, proposal=record.proposal, state=record.state)

    def accept_proposal(
        self, session_id: str, expected_id: str | None = None, at: float | None = None
    ) -> ProposalResolution:
        return self._finish(session_id, DelegationEventType.ACCEPT, expected_id, at)

    def reject_proposal(
        self, session_id: str, expected_id: str | None = None, at: float | None = None
    ) -> ProposalResolution:
        return self._finish(session_id, DelegationEventType.REJECT, expected_id, at)

    def expire_stale(self, now: float | None = None) -> list[PendingProposal]:
        """Drop every proposal with ``expires_at <= now`` and return them."""
        now = time.time() if now is None else now
        expired: list[PendingProposal] = []
        with self._lock:
            for record in self.repository.list():
                if not record.proposal.is_expired(now):
                    continue
                result = transition_delegation_state(
                    record.state, DelegationEvent(DelegationEventType.EXPIRE, now)
                )
                if not result.ok:
                    logger.warning(
                        "Removing stale proposal %s despite state %s",
                        record.proposal.id,
                        record.state.status,
                    )
                self.repository.delete(record.proposal.session_id)
                expired.append(record.proposal)
        for proposal in expired:
            logger.info("Proposal %s for session %s expired", proposal.id, proposal.session_id)
        return expired

    def _finish(
        self,
        session_id: str,
        event_type: DelegationEventType,
        expected_id: str | None,
        at: float | None,
    ) -> ProposalResolution:
        at = time.time() if at is None else at
        with self._lock:
            resolved = self.resolve(session_id, expected_id)
            if not resolved.ok or resolved.proposal is None or resolved.state is None:
                return resolved

            result = transition_delegation_state(
                resolved.state, DelegationEvent(event_type, at, proposal_id=expected_id)
            )
            if not result.ok:
                return ProposalResolution(ok=False, error=result.error)

            self.repository.delete(session_id)
            return ProposalResolution(ok=True, proposal=resolved.proposal, state=result.state)
