"""In-process job queue for long-running delegations.

Jobs run as asyncio tasks so a session's busy flag is never held while a
delegate works. Capacity is a hard bound on concurrently running jobs; there
is no waiting line behind it.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from gatekeeper.delegation.messages import format_delegate_completion_messages
from gatekeeper.delegation.models import DelegateResult
from gatekeeper.engine.session import SessionManager

logger = logging.getLogger(__name__)

MAX_CONCURRENT_JOBS = 10

SendFn = Callable[[str], Awaitable[None]]


@dataclass
class QueuedJob:
    session_id: str
    prompt: str
    send: SendFn
    working_dir: str | None = None
    id: str = field(default_factory=lambda: f"job-{uuid.uuid4().hex[:8]}")


JobRunner = Callable[[QueuedJob], Awaitable[DelegateResult]]


class JobQueue:
    """Bounded set of background delegation tasks."""

    def __init__(
        self,
        max_concurrent: int = MAX_CONCURRENT_JOBS,
        sessions: SessionManager | None = None,
    ) -> None:
        self.max_concurrent = max_concurrent
        self.sessions = sessions
        self.active = 0
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def size(self) -> int:
        return self.active

    def enqueue(self, job: QueuedJob, run: JobRunner) -> bool:
        """
        Start ``run(job)`` in the background.

        Must be called from a running event loop. Returns False, without
        starting anything, when ``max_concurrent`` jobs are already active.
        """
        if self.active >= self.max_concurrent:
            logger.warning("Job queue full (%d active); rejected %s", self.active, job.id)
            return False

        self.active += 1
        task = asyncio.get_running_loop().create_task(self._run(job, run), name=job.id)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def join(self) -> None:
        """Wait until every in-flight job has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run(self, job: QueuedJob, run: JobRunner) -> None:
        try:
            logger.info("Starting delegation task %s for session %s", job.id, job.session_id)
            try:
                result = await run(job)
            except Exception as exc:
                logger.error("Delegation task %s failed: %s", job.id, exc)
                await self._notify(job, [f"The delegated task failed: {exc}"])
                return

            logger.info("Delegation task %s completed", job.id)
            self._note(job, f"[Background task completed] Delegation result: {result.summary}")
            await self._notify(job, format_delegate_completion_messages(result))
        finally:
            self.active -= 1

    def _note(self, job: QueuedJob, text: str) -> None:
        if self.sessions is None:
            return
        try:
            self.sessions.add_note(job.session_id, text)
        except Exception:
            logger.exception("Failed to record history note for task %s", job.id)

    async def _notify(self, job: QueuedJob, messages: list[str]) -> None:
        try:
            for message in messages:
                await job.send(message)
        except Exception:
            logger.exception("Failed to send notification for task %s", job.id)
