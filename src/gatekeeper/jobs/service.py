"""Job service: identity, bookkeeping and side effects around the state machine."""

from __future__ import annotations

import logging
from typing import Any

from gatekeeper.jobs.audit import AuditWriter
from gatekeeper.jobs.repository import FileJobRepository, JobSummary
from gatekeeper.jobs.state_machine import (
    JobEvent,
    JobEventType,
    JobState,
    JobTransitionResult,
    create_received_job_state,
    transition_job_state,
)
from gatekeeper.safety.risk import JobPolicyDecision

logger = logging.getLogger(__name__)

DEFAULT_DENIAL_REASON = "Blocked by policy"


class JobService:
    """Tracks jobs in memory and drives them through validated transitions.

    Every outcome is a :class:`JobTransitionResult`; nothing here raises for
    an unknown job or an illegal event. When an ``audit`` writer or a
    ``repository`` is supplied, each successful transition is appended to the
    audit stream and the job's summary file is rewritten. Failures of either
    sink are logged and do not affect the transition.
    """

    def __init__(
        self,
        audit: AuditWriter | None = None,
        repository: FileJobRepository | None = None,
    ):
        self._states: dict[str, JobState] = {}
        self._created_at: dict[str, float] = {}
        self._summaries: dict[str, str] = {}
        self._evidence: dict[str, list[str]] = {}
        self._pr_numbers: dict[str, int] = {}
        self.audit = audit
        self.repository = repository

    # ═══════════════════════════════════════════════════════════════
    # Queries
    # ═══════════════════════════════════════════════════════════════

    def get_state(self, job_id: str) -> JobState | None:
        return self._states.get(job_id)

    def list_jobs(self) -> list[JobState]:
        return list(self._states.values())

    # ═══════════════════════════════════════════════════════════════
    # Mutators
    # ═══════════════════════════════════════════════════════════════

    def create_job(self, job_id: str, at: float, summary: str = "") -> JobTransitionResult:
        if job_id in self._states:
            return JobTransitionResult(
                ok=False, state=self._states[job_id], error=f"Job already exists: {job_id}"
            )

        state = create_received_job_state(job_id, at)
        self._states[job_id] = state
        self._created_at[job_id] = at
        self._summaries[job_id] = summary
        self._evidence[job_id] = []
        self._record(state, "received", {"summary": summary} if summary else {})
        return JobTransitionResult(ok=True, state=state)

    def mark_parsed(self, job_id: str, at: float) -> JobTransitionResult:
        return self._apply(job_id, JobEvent(JobEventType.PARSED, at))

    def apply_policy_decision(
        self, job_id: str, at: float, decision: JobPolicyDecision
    ) -> JobTransitionResult:
        """Record the policy check, then deny the job if the decision disallows it."""
        result = self._apply(
            job_id,
            JobEvent(JobEventType.POLICY_CHECKED, at),
            {"risk_level": decision.risk_level.value, "allowed": decision.allowed},
        )
        if not result.ok or decision.allowed:
            return result

        reason = decision.reason or DEFAULT_DENIAL_REASON
        return self._apply(job_id, JobEvent(JobEventType.DENIED, at, reason=reason))

    def mark_planned(self, job_id: str, at: float) -> JobTransitionResult:
        return self._apply(job_id, JobEvent(JobEventType.PLANNED, at))

    def mark_executing(self, job_id: str, at: float) -> JobTransitionResult:
        return self._apply(job_id, JobEvent(JobEventType.EXECUTING, at))

    def open_pr(self, job_id: str, at: float, pr_number: int) -> JobTransitionResult:
        existing = self._pr_numbers.get(job_id)
        if existing is not None:
            return JobTransitionResult(
                ok=False,
                state=self._states.get(job_id),
                error=f"Job {job_id} already has PR #{existing}",
            )

        result = self._apply(job_id, JobEvent(JobEventType.PR_OPENED, at, pr_number=pr_number))
        if result.ok:
            self._pr_numbers[job_id] = pr_number
        return result

    def mark_waiting_approval(self, job_id: str, at: float) -> JobTransitionResult:
        return self._apply(job_id, JobEvent(JobEventType.WAITING_APPROVAL, at))

    def mark_merged(self, job_id: str, at: float) -> JobTransitionResult:
        return self._apply(job_id, JobEvent(JobEventType.MERGED, at))

    def mark_deployed(self, job_id: str, at: float) -> JobTransitionResult:
        return self._apply(job_id, JobEvent(JobEventType.DEPLOYED, at))

    def mark_done(self, job_id: str, at: float) -> JobTransitionResult:
        return self._apply(job_id, JobEvent(JobEventType.DONE, at))

    def mark_failed(self, job_id: str, at: float, reason: str) -> JobTransitionResult:
        return self._apply(job_id, JobEvent(JobEventType.FAILED, at, reason=reason))

    def mark_cancelled(self, job_id: str, at: float, reason: str) -> JobTransitionResult:
        return self._apply(job_id, JobEvent(JobEventType.CANCELLED, at, reason=reason))

    def mark_timed_out(self, job_id: str, at: float, reason: str) -> JobTransitionResult:
        return self._apply(job_id, JobEvent(JobEventType.TIMED_OUT, at, reason=reason))

    def add_evidence(self, job_id: str, link: str) -> None:
        if job_id in self._evidence:
            self._evidence[job_id].append(link)

    # ═══════════════════════════════════════════════════════════════
    # Internals
    # ═══════════════════════════════════════════════════════════════

    def _apply(
        self, job_id: str, event: JobEvent, payload: dict[str, Any] | None = None
    ) -> JobTransitionResult:
        state = self._states.get(job_id)
        if state is None:
            return JobTransitionResult(ok=False, state=None, error=f"Job not found: {job_id}")

        result = transition_job_state(state, event)
        if not result.ok or result.state is None:
            logger.warning("Rejected job event for %s: %s", job_id, result.error)
            return result

        self._states[job_id] = result.state
        extra = dict(payload or {})
        if event.reason:
            extra["reason"] = event.reason
        if event.pr_number is not None:
            extra["pr_number"] = event.pr_number
        self._record(result.state, event.type.value, extra)
        return result

    def _record(self, state: JobState, event_type: str, payload: dict[str, Any]) -> None:
        body = {"status": state.status.value, **payload}
        if self.audit is not None:
            try:
                self.audit.append_event(state.job_id, event_type, state.changed_at, body)
            except OSError:
                logger.exception("Failed to append audit event for job %s", state.job_id)

        if self.repository is not None:
            summary = JobSummary(
                job_id=state.job_id,
                created_at=self._created_at[state.job_id],
                status=state.status,
                summary=self._summaries.get(state.job_id) or state.reason or "",
                evidence_links=list(self._evidence.get(state.job_id, [])),
            )
            try:
                self.repository.write_summary(summary)
            except OSError:
                logger.exception("Failed to write summary for job %s", state.job_id)
