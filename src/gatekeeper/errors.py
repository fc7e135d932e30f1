"""Exception hierarchy shared across gatekeeper components."""

from __future__ import annotations


class GatekeeperError(Exception):
    """Base class for all gatekeeper errors."""


class ConfigError(GatekeeperError):
    """Runtime configuration is invalid."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("Invalid runtime configuration:\n- " + "\n- ".join(errors))


class PolicyConfigError(GatekeeperError):
    """Policy file is missing or malformed. Fatal at startup."""


class WorktreeError(GatekeeperError):
    """A git operation needed for sandboxed delegation failed."""


class ProposalConflictError(GatekeeperError):
    """A delegated proposal could not be stored for its session."""


class InvalidWorkingDirError(GatekeeperError, ValueError):
    """A caller-supplied working directory failed validation."""
