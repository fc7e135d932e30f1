"""Runtime: wires every component from a RuntimeConfig and handles turns."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any

from gatekeeper.config import RuntimeConfig
from gatekeeper.delegation.approval import ApprovalService
from gatekeeper.delegation.models import DelegateResult
from gatekeeper.delegation.proposals import ProposalStore
from gatekeeper.delegation.repository import FileProposalRepository, ProposalRepository
from gatekeeper.delegation.service import DelegationService
from gatekeeper.delegation.worktree import Delegate, GitRunner, WorktreeExecutor
from gatekeeper.engine.executor import (
    ClaudeCodeDelegate,
    CommandRunner,
    ExecutionResult,
    format_result,
)
from gatekeeper.engine.queue import JobQueue, QueuedJob
from gatekeeper.engine.session import BUSY_MESSAGE, SessionManager
from gatekeeper.jobs.audit import AuditWriter
from gatekeeper.jobs.repository import FileJobRepository
from gatekeeper.jobs.service import JobService
from gatekeeper.safety.policy import Allowed, Blocked, PolicyGate, PolicyVerdict
from gatekeeper.safety.risk import evaluate_job_policy
from gatekeeper.validators import validate_command_length, validate_input_length

logger = logging.getLogger(__name__)

SendFn = Callable[[str], Awaitable[None]]
SecretPrompt = Callable[[str], Awaitable[str]]

QUEUE_FULL_MESSAGE = "The job queue is full. Please try again shortly."


class QueueStatus(StrEnum):
    QUEUED = "queued"
    FULL = "full"
    PENDING = "pending"
    DENIED = "denied"


@dataclass(frozen=True)
class QueueDelegationResult:
    status: QueueStatus
    job_id: str | None = None
    proposal_id: str | None = None
    reason: str | None = None


def queue_result_message(result: QueueDelegationResult) -> str:
    if result.status is QueueStatus.FULL:
        return QUEUE_FULL_MESSAGE
    if result.status is QueueStatus.PENDING:
        pid = result.proposal_id
        return (
            f"A proposal is already pending for this session ({pid}). "
            f"Use pending, accept {pid}, or reject {pid}."
        )
    if result.status is QueueStatus.DENIED:
        return f"Delegation denied: {result.reason}"
    return f"Queued task {result.job_id}. I'll notify you here when it's done."


@dataclass(frozen=True)
class TurnResult:
    handled: bool
    error: str | None = None


@dataclass(frozen=True)
class CommandOutcome:
    verdict: PolicyVerdict | None
    executed: bool
    result: ExecutionResult | None = None
    error: str | None = None


class Runtime:
    """
    One process-wide set of collaborators.

    Args:
        config: Explicit runtime configuration
        gate: Policy gate (default: loaded from ``config.policy_path``)
        delegate: Delegate callback (default: :class:`ClaudeCodeDelegate`)
        git_runner: Git runner for the worktree executor
        repository: Proposal repository (default: file-backed under ``data_dir``)
        command_runner: Shell runner for policy-approved commands
        clock: Time source, epoch seconds
    """

    def __init__(
        self,
        config: RuntimeConfig,
        gate: PolicyGate | None = None,
        delegate: Delegate | None = None,
        git_runner: GitRunner | None = None,
        repository: ProposalRepository | None = None,
        command_runner: CommandRunner | None = None,
        temp_root: Path | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.clock = clock
        self.gate = gate or PolicyGate.from_file(config.policy_path)
        self.sessions = SessionManager(max_sessions=config.max_sessions)
        self.audit = AuditWriter(config.data_dir)
        self.jobs = JobService(audit=self.audit, repository=FileJobRepository(config.data_dir))
        self.store = ProposalStore(
            repository
            if repository is not None
            else FileProposalRepository(config.proposals_path, clock=clock)
        )
        self.executor = WorktreeExecutor(
            runner=git_runner,
            temp_root=temp_root,
            ttl_seconds=config.proposal_ttl_seconds,
            preview_max_lines=config.diff_preview_max_lines,
            preview_max_chars=config.diff_preview_max_chars,
            clock=clock,
        )
        self.delegation = DelegationService(
            executor=self.executor,
            store=self.store,
            delegate=delegate or ClaudeCodeDelegate(),
            events=self.record_event,
        )
        self.approvals = ApprovalService(
            store=self.store,
            executor=self.executor,
            events=self.record_event,
            notes=self.sessions.add_note,
            low_trust_channels=config.low_trust_channels,
            unsafe_enable_writes=config.unsafe_enable_writes,
            clock=clock,
            file_diff_max_lines=config.file_diff_max_lines,
            file_diff_max_chars=config.file_diff_max_chars,
        )
        self.queue = JobQueue(max_concurrent=config.queue_max_concurrent_jobs, sessions=self.sessions)
        self.command_runner = command_runner or CommandRunner(
            timeout=config.command_timeout, max_output_bytes=config.max_output_bytes
        )

    @classmethod
    def from_config(cls, config: RuntimeConfig, **overrides: Any) -> Runtime:
        config.ensure_dirs()
        return cls(config, **overrides)

    # ═══════════════════════════════════════════════════════════════
    # Events
    # ═══════════════════════════════════════════════════════════════

    def record_event(self, event: str, payload: dict[str, Any]) -> None:
        """Log a delegation event and append it to the session's audit stream."""
        session_id = payload.get("session_id", "unknown")
        logger.info("%s %s", event, {k: v for k, v in payload.items() if k != "session_id"})
        try:
            self.audit.append_event(f"delegation-{session_id}", event, self.clock(), payload)
        except OSError:
            logger.exception("Failed to write audit event %s", event)

    # ═══════════════════════════════════════════════════════════════
    # Turns
    # ═══════════════════════════════════════════════════════════════

    async def handle_input(
        self, session_id: str, text: str, channel: str, send: SendFn
    ) -> TurnResult:
        """
        Entry point for one user message.

        Control commands (accept / reject / pending) are handled here. Any
        other input is recorded in history and left for the caller.
        """
        validation = validate_input_length(text, self.config.max_user_input)
        if not validation.ok:
            await send(f"[ERROR] {validation.error}")
            return TurnResult(handled=True, error=validation.error)

        if not self.sessions.try_begin(session_id):
            await send(BUSY_MESSAGE)
            return TurnResult(handled=True, error=BUSY_MESSAGE)

        try:
            result = await self.approvals.handle_text(session_id, text, channel, send)
            if not result.handled:
                self.sessions.add_note(session_id, text)
            return TurnResult(handled=result.handled)
        finally:
            self.sessions.end(session_id)

    async def run_command(
        self,
        session_id: str,
        command: str,
        channel: str,
        send: SendFn,
        prompt_secret: SecretPrompt | None = None,
        working_dir: str | None = None,
    ) -> CommandOutcome:
        """Evaluate an agent-proposed command against policy and run it if permitted."""
        validation = validate_command_length(command, self.config.max_command_length)
        if not validation.ok:
            await send(f"[ERROR] {validation.error}")
            self.sessions.add_note(session_id, f"Command rejected: {validation.error}")
            return CommandOutcome(verdict=None, executed=False, error=validation.error)

        verdict = self.gate.evaluate(command)
        logger.info("Policy verdict %s (rule %s) for command", verdict.decision, verdict.rule_id)

        if isinstance(verdict, Blocked):
            self.sessions.add_note(
                session_id, f"Command blocked by policy (rule: {verdict.rule_id}): {verdict.reason}"
            )
            return CommandOutcome(verdict=verdict, executed=False, error=verdict.reason)

        if not isinstance(verdict, Allowed):
            low_trust = channel in self.config.low_trust_channels
            if low_trust and not self.config.unsafe_enable_writes:
                message = (
                    f"Command requires local approval and cannot run from {channel} "
                    f"(rule: {verdict.rule_id})."
                )
                self.sessions.add_note(session_id, message)
                return CommandOutcome(verdict=verdict, executed=False, error=message)

            if low_trust:
                await send(
                    f"[UNSAFE MODE] Running passphrase-gated command from {channel} "
                    f"(rule: {verdict.rule_id})."
                )
            else:
                await send(f"[REQUIRES PASSPHRASE] {verdict.prompt}")
                passphrase = await prompt_secret("Enter passphrase: ") if prompt_secret else ""
                verified = self.gate.verify_secret(verdict.rule_id, passphrase)
                logger.info("Secret verification for rule %s: %s", verdict.rule_id, verified)
                if not verified:
                    await send("[ACCESS DENIED] Incorrect passphrase.")
                    self.sessions.add_note(
                        session_id,
                        "Access denied: incorrect passphrase. The write command was not executed.",
                    )
                    return CommandOutcome(verdict=verdict, executed=False, error="access denied")

        result = await asyncio.to_thread(self.command_runner.run, command, working_dir)
        logger.info("Command exited with %d", result.exit_code)
        formatted = format_result(result)
        await send(formatted)
        self.sessions.add_note(session_id, f"Command output for: {command}\n{formatted}")
        return CommandOutcome(verdict=verdict, executed=True, result=result)

    # ═══════════════════════════════════════════════════════════════
    # Delegation
    # ═══════════════════════════════════════════════════════════════

    async def queue_delegation(
        self,
        session_id: str,
        prompt: str,
        send: SendFn,
        working_dir: str | None = None,
        paths: Iterable[str] = (),
        owner_approved: bool = False,
    ) -> QueueDelegationResult:
        """
        Register a job for ``prompt`` and start it in the background.

        ``paths`` are the locations the task is declared to touch; they
        decide the job's risk tier and whether it may run at all.
        Stale proposals are expired first.
        """
        await self.approvals.expire_stale()
        pending = self.store.get_proposal(session_id)
        if pending is not None:
            return QueueDelegationResult(status=QueueStatus.PENDING, proposal_id=pending.id)

        job = QueuedJob(session_id=session_id, prompt=prompt, send=send, working_dir=working_dir)
        now = self.clock()
        self.jobs.create_job(job.id, now, summary=prompt[:200])
        self.jobs.mark_parsed(job.id, now)
        decision = evaluate_job_policy(paths, owner_approved=owner_approved)
        checked = self.jobs.apply_policy_decision(job.id, now, decision)
        if not decision.allowed:
            reason = checked.state.reason if checked.state else decision.reason
            return QueueDelegationResult(status=QueueStatus.DENIED, job_id=job.id, reason=reason)

        if not self.queue.enqueue(job, self._run_job):
            self.jobs.mark_cancelled(job.id, self.clock(), "job queue full")
            return QueueDelegationResult(status=QueueStatus.FULL, job_id=job.id)
        return QueueDelegationResult(status=QueueStatus.QUEUED, job_id=job.id)

    async def _run_job(self, job: QueuedJob) -> DelegateResult:
        self.jobs.mark_planned(job.id, self.clock())
        self.jobs.mark_executing(job.id, self.clock())
        try:
            result = await self.delegation.delegate_with_review(
                job.session_id, job.prompt, job.working_dir
            )
        except Exception as exc:
            self.jobs.mark_failed(job.id, self.clock(), str(exc) or type(exc).__name__)
            raise

        if result.proposal is not None:
            self.jobs.add_evidence(job.id, f"proposal:{result.proposal.id}")
        self.jobs.mark_done(job.id, self.clock())
        return result

    async def shutdown(self) -> None:
        await self.queue.join()
