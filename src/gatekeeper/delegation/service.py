"""Delegation service: run a task in a sandbox and register its proposal."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from gatekeeper.delegation.models import DelegateResult, PendingProposal
from gatekeeper.delegation.proposals import ProposalStore
from gatekeeper.delegation.worktree import Delegate, WorktreeExecutor
from gatekeeper.errors import InvalidWorkingDirError, ProposalConflictError
from gatekeeper.validators import validate_working_dir

logger = logging.getLogger(__name__)

EventSink = Callable[[str, dict[str, Any]], None]


def emit_event(sink: EventSink | None, event: str, payload: dict[str, Any]) -> None:
    """Deliver an event; sink failures are logged and dropped."""
    if sink is None:
        return
    try:
        sink(event, payload)
    except Exception:
        logger.exception("Event sink failed for %s", event)


class DelegationService:
    """Glues the worktree executor to the proposal store."""

    def __init__(
        self,
        executor: WorktreeExecutor,
        store: ProposalStore,
        delegate: Delegate,
        events: EventSink | None = None,
    ) -> None:
        self.executor = executor
        self.store = store
        self.delegate = delegate
        self.events = events

    async def delegate_with_review(
        self, session_id: str, prompt: str, working_dir: str | None = None
    ) -> DelegateResult:
        """
        Run one delegated task and, if it changed anything, store a proposal.

        Args:
            session_id: Owner of the resulting proposal
            prompt: Task text for the delegate
            working_dir: Directory inside the target repository

        Returns:
            DelegateResult; ``proposal`` carries no filesystem paths

        Raises:
            InvalidWorkingDirError: ``working_dir`` is not an existing directory
            ProposalConflictError: the session already has a pending proposal
            WorktreeError: the sandbox could not be prepared or diffed
            OSError: the proposal could not be persisted; the sandbox is removed
        """
        if working_dir is not None:
            validation = validate_working_dir(working_dir)
            if not validation.ok:
                raise InvalidWorkingDirError(validation.error or "Invalid working directory")

        emit_event(
            self.events,
            "delegation_started",
            {"session_id": session_id, "working_dir": working_dir},
        )

        try:
            run = await self.executor.run(session_id, prompt, self.delegate, repo_dir=working_dir)
        except BaseException as exc:
            emit_event(
                self.events,
                "delegation_failed",
                {"session_id": session_id, "error": str(exc) or type(exc).__name__},
            )
            raise

        if run.proposal is None:
            emit_event(self.events, "no_changes", {"session_id": session_id})
            emit_event(
                self.events,
                "completed",
                {"session_id": session_id, "exit_code": run.exit_code},
            )
            return DelegateResult(exit_code=run.exit_code, summary=run.summary, no_changes=True)

        proposal = run.proposal
        try:
            created = self.store.create_proposal(proposal)
        except Exception as exc:
            await self._discard(proposal, str(exc) or type(exc).__name__)
            raise
        if not created.ok:
            await self._discard(proposal, created.error)
            raise ProposalConflictError(created.error or "Could not store delegated proposal.")

        emit_event(
            self.events,
            "proposal_ready",
            {
                "session_id": session_id,
                "proposal_id": proposal.id,
                "changed_files": list(proposal.changed_files),
                "expires_at": proposal.expires_at,
            },
        )
        return DelegateResult(
            exit_code=run.exit_code, summary=run.summary, proposal=proposal.summary()
        )

    async def _discard(self, proposal: PendingProposal, error: str | None) -> None:
        await self.executor.cleanup(proposal)
        emit_event(
            self.events,
            "delegation_failed",
            {"session_id": proposal.session_id, "error": error},
        )
