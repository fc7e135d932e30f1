"""Parser for the proposal control vocabulary: accept, reject, pending."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class ControlCommandType(StrEnum):
    NONE = "none"
    INVALID = "invalid"
    ACCEPT = "accept"
    REJECT = "reject"
    PENDING = "pending"


@dataclass(frozen=True)
class ControlCommand:
    type: ControlCommandType
    proposal_id: str | None = None
    error: str | None = None


NOT_A_COMMAND = ControlCommand(ControlCommandType.NONE)

_ID_COMMANDS = {"accept": ControlCommandType.ACCEPT, "reject": ControlCommandType.REJECT}


def parse_control_command(text: str, has_pending: bool = False) -> ControlCommand:
    """
    Parse user input into a control command.

    Slash forms (``/accept [id]``, ``/reject [id]``, ``/pending``) are always
    recognised. The bare words ``accept``, ``reject`` and ``pending`` only
    count while the session has a pending proposal, so ordinary chat is not
    mistaken for a decision.
    """
    raw = text.strip()
    parts = raw.split()
    if not parts:
        return NOT_A_COMMAND

    head = parts[0]
    if head.startswith("/"):
        name = head[1:]
    elif has_pending and head.lower() in ("accept", "reject", "pending"):
        name = head.lower()
    else:
        return NOT_A_COMMAND

    if name == "pending":
        if len(parts) > 1:
            return ControlCommand(ControlCommandType.INVALID, error="Usage: /pending")
        return ControlCommand(ControlCommandType.PENDING)

    command_type = _ID_COMMANDS.get(name)
    if command_type is None:
        return NOT_A_COMMAND
    if len(parts) == 1:
        return ControlCommand(command_type)
    if len(parts) == 2:
        return ControlCommand(command_type, proposal_id=parts[1])
    return ControlCommand(
        ControlCommandType.INVALID, error=f"Usage: /{name} or /{name} <proposalId>"
    )
