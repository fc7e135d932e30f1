"""Job lifecycle: state machine, service, summary artifacts and audit stream."""

from __future__ import annotations

from gatekeeper.jobs.audit import AuditWriter
from gatekeeper.jobs.repository import FileJobRepository, JobSummary
from gatekeeper.jobs.service import JobService
from gatekeeper.jobs.state_machine import (
    TERMINAL_JOB_STATUSES,
    JobEvent,
    JobEventType,
    JobState,
    JobStatus,
    JobTransitionResult,
    create_received_job_state,
    is_terminal_job_status,
    transition_job_state,
)

__all__ = [
    "AuditWriter",
    "FileJobRepository",
    "JobEvent",
    "JobEventType",
    "JobService",
    "JobState",
    "JobStatus",
    "JobSummary",
    "JobTransitionResult",
    "TERMINAL_JOB_STATUSES",
    "create_received_job_state",
    "is_terminal_job_status",
    "transition_job_state",
]
