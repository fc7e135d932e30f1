"""Approval service: accept, reject and inspect pending proposals."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from gatekeeper.delegation.commands import ControlCommand, ControlCommandType, parse_control_command
from gatekeeper.delegation.messages import format_pending_proposal_messages
from gatekeeper.delegation.models import PendingProposal
from gatekeeper.delegation.proposals import ProposalStore
from gatekeeper.delegation.service import EventSink, emit_event
from gatekeeper.delegation.worktree import WorktreeExecutor

logger = logging.getLogger(__name__)

SendFn = Callable[[str], Awaitable[None]]
NoteFn = Callable[[str, str], None]

EXPIRED_MESSAGE = "The pending proposal expired and was discarded."
NO_PENDING_MESSAGE = "There is no pending delegated proposal for this session."
LOW_TRUST_APPLY_MESSAGE = (
    "Applying delegated changes is disabled from this channel "
    "unless GATEKEEPER_UNSAFE_ENABLE_WRITES=1."
)


@dataclass(frozen=True)
class ApprovalResult:
    handled: bool


class ApprovalService:
    """
    Handles control commands for one store and executor.

    Expiry is lazy: every handled command first expires stale proposals
    across all sessions. Accept only mutates the store after the patch has
    been applied; a failed precondition or apply leaves the proposal pending.
    """

    def __init__(
        self,
        store: ProposalStore,
        executor: WorktreeExecutor,
        events: EventSink | None = None,
        notes: NoteFn | None = None,
        low_trust_channels: frozenset[str] = frozenset({"chat"}),
        unsafe_enable_writes: bool = False,
        clock: Callable[[], float] = time.time,
        file_diff_max_lines: int = 120,
        file_diff_max_chars: int = 1400,
    ) -> None:
        self.store = store
        self.executor = executor
        self.events = events
        self.notes = notes
        self.low_trust_channels = low_trust_channels
        self.unsafe_enable_writes = unsafe_enable_writes
        self.clock = clock
        self.file_diff_max_lines = file_diff_max_lines
        self.file_diff_max_chars = file_diff_max_chars

    def can_apply_from(self, channel: str) -> bool:
        return channel not in self.low_trust_channels or self.unsafe_enable_writes

    def _note(self, session_id: str, text: str) -> None:
        if self.notes is None:
            return
        try:
            self.notes(session_id, text)
        except Exception:
            logger.exception("Failed to record history note for %s", session_id)

    async def expire_stale(self) -> list[PendingProposal]:
        """Expire stale proposals everywhere and clean up their sandboxes."""
        expired = self.store.expire_stale(self.clock())
        for proposal in expired:
            await self.executor.cleanup(proposal)
            emit_event(
                self.events,
                "proposal_expired",
                {"session_id": proposal.session_id, "proposal_id": proposal.id},
            )
        return expired

    async def handle_text(
        self, session_id: str, text: str, channel: str, send: SendFn
    ) -> ApprovalResult:
        command = parse_control_command(text, has_pending=self.store.has_pending(session_id))
        return await self.handle(session_id, command, channel, send)

    async def handle(
        self, session_id: str, command: ControlCommand, channel: str, send: SendFn
    ) -> ApprovalResult:
        if command.type is ControlCommandType.NONE:
            return ApprovalResult(handled=False)

        expired = await self.expire_stale()
        expired_here = any(p.session_id == session_id for p in expired)

        if command.type is ControlCommandType.INVALID:
            await send(f"[INVALID] {command.error}")
            self._note(session_id, f"Delegation control command rejected: {command.error}")
        elif command.type is ControlCommandType.PENDING:
            await self._show_pending(session_id, send)
        elif command.type is ControlCommandType.REJECT:
            await self._reject(session_id, command.proposal_id, send, expired_here)
        else:
            await self._accept(session_id, command.proposal_id, channel, send, expired_here)
        return ApprovalResult(handled=True)

    async def _show_pending(self, session_id: str, send: SendFn) -> None:
        pending = self.store.get_proposal(session_id)
        if pending is None:
            await send(NO_PENDING_MESSAGE)
            self._note(session_id, "No pending delegated proposal.")
            return
        for message in format_pending_proposal_messages(
            pending, max_lines=self.file_diff_max_lines, max_chars=self.file_diff_max_chars
        ):
            await send(message)
        self._note(session_id, f"Pending proposal shown: {pending.id}")

    async def _reject(
        self, session_id: str, proposal_id: str | None, send: SendFn, expired_here: bool
    ) -> None:
        resolved = self.store.reject_proposal(session_id, proposal_id, self.clock())
        if not resolved.ok or resolved.proposal is None:
            error = resolved.error or "Could not reject proposal."
            await send(EXPIRED_MESSAGE if expired_here else error)
            self._note(session_id, f"Proposal reject failed: {error}")
            return

        proposal = resolved.proposal
        await self.executor.cleanup(proposal)
        emit_event(
            self.events,
            "proposal_rejected",
            {"session_id": session_id, "proposal_id": proposal.id},
        )
        await send(f"[PROPOSAL REJECTED] {proposal.id}\n\nProposal rejected.")
        self._note(session_id, f"Proposal rejected: {proposal.id}")

    async def _accept(
        self,
        session_id: str,
        proposal_id: str | None,
        channel: str,
        send: SendFn,
        expired_here: bool,
    ) -> None:
        if not self.can_apply_from(channel):
            await send(LOW_TRUST_APPLY_MESSAGE)
            self._note(session_id, f"Proposal apply denied from low-trust channel {channel}.")
            return

        resolved = self.store.resolve(session_id, proposal_id)
        if not resolved.ok or resolved.proposal is None:
            error = resolved.error or "Could not find proposal."
            await send(EXPIRED_MESSAGE if expired_here else error)
            self._note(session_id, f"Proposal apply failed: {error}")
            return

        proposal = resolved.proposal
        preconditions = await self.executor.verify_apply_preconditions(proposal)
        if not preconditions.ok:
            message = preconditions.error or "Cannot apply proposal due to repository state."
            await self._apply_failed(session_id, proposal, message, send)
            self._note(
                session_id, "Proposal apply blocked: the repository was not ready for the patch."
            )
            return

        applied = await self.executor.apply_patch(proposal)
        if not applied.ok:
            message = applied.error or "Failed to apply proposal patch."
            await self._apply_failed(session_id, proposal, message, send)
            self._note(session_id, "Proposal apply failed: the patch did not apply cleanly.")
            return

        accepted = self.store.accept_proposal(session_id, proposal_id, self.clock())
        if not accepted.ok or accepted.proposal is None:
            message = accepted.error or "Proposal applied, but internal state did not resolve."
            await send(message)
            self._note(session_id, f"Proposal apply state mismatch: {message}")
            return

        await self.executor.cleanup(accepted.proposal)
        emit_event(
            self.events,
            "proposal_accepted",
            {
                "session_id": session_id,
                "proposal_id": accepted.proposal.id,
                "changed_files": list(accepted.proposal.changed_files),
            },
        )
        await send(
            f"[PROPOSAL APPLIED] {accepted.proposal.id}\n\nProposal applied.\n"
            f"Changed files: {len(accepted.proposal.changed_files)}"
        )
        self._note(session_id, f"Proposal applied: {accepted.proposal.id}")

    async def _apply_failed(
        self, session_id: str, proposal: PendingProposal, message: str, send: SendFn
    ) -> None:
        await send(message)
        emit_event(
            self.events,
            "proposal_apply_failed",
            {"session_id": session_id, "proposal_id": proposal.id, "error": message},
        )
        logger.warning("Proposal %s not applied: %s", proposal.id, message)
