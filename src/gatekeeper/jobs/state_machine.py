"""Job lifecycle state machine.

Pure functions only: ``transition_job_state`` never mutates its input and
never raises for a bad event, it returns ``ok=False`` with the state unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import StrEnum


class JobStatus(StrEnum):
    RECEIVED = "RECEIVED"
    PARSED = "PARSED"
    POLICY_CHECKED = "POLICY_CHECKED"
    PLANNED = "PLANNED"
    EXECUTING = "EXECUTING"
    PR_OPENED = "PR_OPENED"
    WAITING_APPROVAL = "WAITING_APPROVAL"
    MERGED = "MERGED"
    DEPLOYED = "DEPLOYED"
    DONE = "DONE"
    DENIED = "DENIED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    TIMED_OUT = "TIMED_OUT"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_JOB_STATUSES


TERMINAL_JOB_STATUSES = frozenset(
    {
        JobStatus.DONE,
        JobStatus.DENIED,
        JobStatus.FAILED,
        JobStatus.CANCELLED,
        JobStatus.TIMED_OUT,
    }
)


class JobEventType(StrEnum):
    PARSED = "parsed"
    POLICY_CHECKED = "policy_checked"
    PLANNED = "planned"
    EXECUTING = "executing"
    PR_OPENED = "pr_opened"
    WAITING_APPROVAL = "waiting_approval"
    MERGED = "merged"
    DEPLOYED = "deployed"
    DONE = "done"
    DENIED = "denied"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"


_REASON_EVENTS = frozenset(
    {JobEventType.DENIED, JobEventType.FAILED, JobEventType.CANCELLED, JobEventType.TIMED_OUT}
)

# Accepted from every non-terminal state
_UNIVERSAL_TERMINAL = {
    JobEventType.FAILED: JobStatus.FAILED,
    JobEventType.CANCELLED: JobStatus.CANCELLED,
    JobEventType.TIMED_OUT: JobStatus.TIMED_OUT,
}

_TRANSITIONS: dict[tuple[JobStatus, JobEventType], JobStatus] = {
    (JobStatus.RECEIVED, JobEventType.PARSED): JobStatus.PARSED,
    (JobStatus.PARSED, JobEventType.POLICY_CHECKED): JobStatus.POLICY_CHECKED,
    (JobStatus.POLICY_CHECKED, JobEventType.PLANNED): JobStatus.PLANNED,
    (JobStatus.POLICY_CHECKED, JobEventType.DENIED): JobStatus.DENIED,
    (JobStatus.PLANNED, JobEventType.EXECUTING): JobStatus.EXECUTING,
    (JobStatus.EXECUTING, JobEventType.PR_OPENED): JobStatus.PR_OPENED,
    (JobStatus.EXECUTING, JobEventType.DONE): JobStatus.DONE,
    (JobStatus.PR_OPENED, JobEventType.WAITING_APPROVAL): JobStatus.WAITING_APPROVAL,
    (JobStatus.PR_OPENED, JobEventType.MERGED): JobStatus.MERGED,
    (JobStatus.WAITING_APPROVAL, JobEventType.MERGED): JobStatus.MERGED,
    (JobStatus.MERGED, JobEventType.DEPLOYED): JobStatus.DEPLOYED,
    (JobStatus.DEPLOYED, JobEventType.DONE): JobStatus.DONE,
}


@dataclass(frozen=True)
class JobState:
    job_id: str
    status: JobStatus
    changed_at: float
    pr_number: int | None = None
    reason: str | None = None


@dataclass(frozen=True)
class JobEvent:
    type: JobEventType
    at: float
    pr_number: int | None = None
    reason: str | None = None

    def __post_init__(self) -> None:
        if self.type is JobEventType.PR_OPENED and self.pr_number is None:
            raise ValueError("pr_opened events require a pr_number")
        if self.type in _REASON_EVENTS and not self.reason:
            raise ValueError(f"{self.type.value} events require a reason")


@dataclass(frozen=True)
class JobTransitionResult:
    ok: bool
    state: JobState | None
    error: str | None = None


def create_received_job_state(job_id: str, at: float) -> JobState:
    return JobState(job_id=job_id, status=JobStatus.RECEIVED, changed_at=at)


def is_terminal_job_status(status: JobStatus) -> bool:
    return status in TERMINAL_JOB_STATUSES


def _invalid(state: JobState, event: JobEvent, reason: str | None = None) -> JobTransitionResult:
    suffix = f": {reason}" if reason else ""
    return JobTransitionResult(
        ok=False,
        state=state,
        error=f"Invalid job transition {state.status.value} -> {event.type.value}{suffix}",
    )


def transition_job_state(state: JobState, event: JobEvent) -> JobTransitionResult:
    """Apply one event to a job state."""
    if state.status.is_terminal:
        return _invalid(state, event, "state is terminal")

    forced = _UNIVERSAL_TERMINAL.get(event.type)
    if forced is not None:
        return JobTransitionResult(
            ok=True,
            state=JobState(
                job_id=state.job_id,
                status=forced,
                changed_at=event.at,
                pr_number=state.pr_number,
                reason=event.reason,
            ),
        )

    target = _TRANSITIONS.get((state.status, event.type))
    if target is None:
        return _invalid(state, event)

    if target is JobStatus.PR_OPENED:
        next_state = replace(state, status=target, changed_at=event.at, pr_number=event.pr_number)
    elif target is JobStatus.DENIED:
        next_state = replace(state, status=target, changed_at=event.at, reason=event.reason)
    else:
        next_state = replace(state, status=target, changed_at=event.at)
    return JobTransitionResult(ok=True, state=next_state)
