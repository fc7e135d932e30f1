"""Execution engine: sessions, background queue, command runner and runtime wiring."""

from gatekeeper.engine.executor import (
    ClaudeCodeDelegate,
    CommandRunner,
    ExecutionResult,
    format_result,
)
from gatekeeper.engine.queue import JobQueue, QueuedJob
from gatekeeper.engine.runtime import (
    CommandOutcome,
    QueueDelegationResult,
    QueueStatus,
    Runtime,
    TurnResult,
    queue_result_message,
)
from gatekeeper.engine.session import BUSY_MESSAGE, SessionLimitError, SessionManager, SessionState

__all__ = [
    "BUSY_MESSAGE",
    "ClaudeCodeDelegate",
    "CommandOutcome",
    "CommandRunner",
    "ExecutionResult",
    "JobQueue",
    "QueueDelegationResult",
    "QueueStatus",
    "QueuedJob",
    "Runtime",
    "SessionLimitError",
    "SessionManager",
    "SessionState",
    "TurnResult",
    "format_result",
    "queue_result_message",
]
