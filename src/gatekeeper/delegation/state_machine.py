"""Delegation lifecycle: queued, running, then one of five terminal outcomes."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import Any


class DelegationStatus(StrEnum):
    QUEUED = "queued"
    RUNNING = "running"
    PROPOSAL_READY = "proposal_ready"
    NO_CHANGES = "no_changes"
    FAILED = "failed"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


TERMINAL_DELEGATION_STATUSES = frozenset(
    {
        DelegationStatus.NO_CHANGES,
        DelegationStatus.FAILED,
        DelegationStatus.ACCEPTED,
        DelegationStatus.REJECTED,
        DelegationStatus.EXPIRED,
    }
)


class DelegationEventType(StrEnum):
    START = "start"
    SUCCESS_WITH_DIFF = "delegate_success_with_diff"
    SUCCESS_NO_DIFF = "delegate_success_no_diff"
    FAILED = "delegate_failed"
    ACCEPT = "accept"
    REJECT = "reject"
    EXPIRE = "expire"


@dataclass(frozen=True)
class DelegationState:
    status: DelegationStatus
    changed_at: float
    proposal_id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DelegationState:
        return cls(
            status=DelegationStatus(data["status"]),
            changed_at=float(data["changed_at"]),
            proposal_id=data.get("proposal_id"),
            error=data.get("error"),
        )


@dataclass(frozen=True)
class DelegationEvent:
    type: DelegationEventType
    at: float
    proposal_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class DelegationTransitionResult:
    ok: bool
    state: DelegationState
    error: str | None = None


def create_queued_delegation_state(at: float) -> DelegationState:
    return DelegationState(status=DelegationStatus.QUEUED, changed_at=at)


def is_terminal_delegation_status(status: DelegationStatus) -> bool:
    return status in TERMINAL_DELEGATION_STATUSES


def _invalid(
    state: DelegationState, event: DelegationEvent, reason: str | None = None
) -> DelegationTransitionResult:
    suffix = f": {reason}" if reason else ""
    return DelegationTransitionResult(
        ok=False,
        state=state,
        error=f"Invalid delegation transition {state.status.value} -> {event.type.value}{suffix}",
    )


def _ok(status: DelegationStatus, event: DelegationEvent, **extra: Any) -> DelegationTransitionResult:
    return DelegationTransitionResult(
        ok=True, state=DelegationState(status=status, changed_at=event.at, **extra)
    )


def transition_delegation_state(
    state: DelegationState, event: DelegationEvent
) -> DelegationTransitionResult:
    """Apply one event. Illegal events return ``ok=False`` and the unchanged state."""
    status = state.status

    if status in TERMINAL_DELEGATION_STATUSES:
        return _invalid(state, event, "state is terminal")

    if status is DelegationStatus.QUEUED:
        if event.type is DelegationEventType.START:
            return _ok(DelegationStatus.RUNNING, event)
        return _invalid(state, event)

    if status is DelegationStatus.RUNNING:
        if event.type is DelegationEventType.SUCCESS_WITH_DIFF and event.proposal_id:
            return _ok(DelegationStatus.PROPOSAL_READY, event, proposal_id=event.proposal_id)
        if event.type is DelegationEventType.SUCCESS_NO_DIFF:
            return _ok(DelegationStatus.NO_CHANGES, event)
        if event.type is DelegationEventType.FAILED:
            return _ok(DelegationStatus.FAILED, event, error=event.error or "unknown error")
        return _invalid(state, event)

    # proposal_ready
    if event.type in (DelegationEventType.ACCEPT, DelegationEventType.REJECT):
        if event.proposal_id and event.proposal_id != state.proposal_id:
            return _invalid(state, event, "proposal id mismatch")
        target = (
            DelegationStatus.ACCEPTED
            if event.type is DelegationEventType.ACCEPT
            else DelegationStatus.REJECTED
        )
        return _ok(target, event, proposal_id=state.proposal_id)
    if event.type is DelegationEventType.EXPIRE:
        return _ok(DelegationStatus.EXPIRED, event, proposal_id=state.proposal_id)
    return _invalid(state, event)
