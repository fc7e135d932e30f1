"""Session manager: per-session history and busy flag."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from gatekeeper.errors import GatekeeperError

BUSY_MESSAGE = "Still processing the previous request"


@dataclass
class SessionState:
    session_id: str
    history: list[dict[str, Any]] = field(default_factory=list)
    busy: bool = False


class SessionLimitError(GatekeeperError):
    """Raised when a new session would exceed ``max_sessions``."""


class SessionManager:
    """
    Owns every session's history. Other components append through
    :meth:`add_note` rather than mutating history lists directly.
    """

    def __init__(self, max_sessions: int = 100, system_prompt: str | None = None) -> None:
        self.max_sessions = max_sessions
        self.system_prompt = system_prompt
        self._sessions: dict[str, SessionState] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> SessionState:
        with self._lock:
            existing = self._sessions.get(session_id)
            if existing is not None:
                return existing
            if len(self._sessions) >= self.max_sessions:
                raise SessionLimitError(
                    f"Session limit reached ({self.max_sessions}); cannot open {session_id}"
                )
            state = SessionState(session_id=session_id)
            if self.system_prompt:
                state.history.append({"role": "system", "content": self.system_prompt})
            self._sessions[session_id] = state
            return state

    def has(self, session_id: str) -> bool:
        return session_id in self._sessions

    def is_at_limit(self) -> bool:
        return len(self._sessions) >= self.max_sessions

    @property
    def count(self) -> int:
        return len(self._sessions)

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def try_begin(self, session_id: str) -> bool:
        """Mark the session busy. False if a turn is already in progress."""
        state = self.get(session_id)
        with self._lock:
            if state.busy:
                return False
            state.busy = True
            return True

    def end(self, session_id: str) -> None:
        with self._lock:
            state = self._sessions.get(session_id)
            if state is not None:
                state.busy = False

    def add_note(self, session_id: str, content: str, role: str = "user") -> None:
        state = self.get(session_id)
        with self._lock:
            state.history.append({"role": role, "content": content})

    def history(self, session_id: str) -> list[dict[str, Any]]:
        """A copy of the session's history."""
        return list(self.get(session_id).history)
