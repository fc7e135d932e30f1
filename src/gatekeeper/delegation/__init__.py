"""Sandboxed delegation, reviewable proposals and their approval."""

from __future__ import annotations

from gatekeeper.delegation.approval import ApprovalResult, ApprovalService
from gatekeeper.delegation.commands import ControlCommand, ControlCommandType, parse_control_command
from gatekeeper.delegation.models import (
    DelegateOutcome,
    DelegateResult,
    FileDiff,
    PendingProposal,
    ProposalSummary,
)
from gatekeeper.delegation.proposals import ProposalResolution, ProposalStore
from gatekeeper.delegation.repository import (
    FileProposalRepository,
    InMemoryProposalRepository,
    ProposalRepository,
    StoredProposalRecord,
)
from gatekeeper.delegation.service import DelegationService
from gatekeeper.delegation.state_machine import (
    DelegationEvent,
    DelegationEventType,
    DelegationState,
    DelegationStatus,
    create_queued_delegation_state,
    is_terminal_delegation_status,
    transition_delegation_state,
)
from gatekeeper.delegation.worktree import GitResult, WorktreeExecutor, WorktreeRunResult, run_git

__all__ = [
    "ApprovalResult",
    "ApprovalService",
    "ControlCommand",
    "ControlCommandType",
    "DelegateOutcome",
    "DelegateResult",
    "DelegationEvent",
    "DelegationEventType",
    "DelegationService",
    "DelegationState",
    "DelegationStatus",
    "FileDiff",
    "FileProposalRepository",
    "GitResult",
    "InMemoryProposalRepository",
    "PendingProposal",
    "ProposalRepository",
    "ProposalResolution",
    "ProposalStore",
    "ProposalSummary",
    "StoredProposalRecord",
    "WorktreeExecutor",
    "WorktreeRunResult",
    "create_queued_delegation_state",
    "is_terminal_delegation_status",
    "parse_control_command",
    "run_git",
    "transition_delegation_state",
]
