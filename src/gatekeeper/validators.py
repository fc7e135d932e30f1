"""Input validation applied before any side effect."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a validation or precondition check."""

    ok: bool
    error: str | None = None


VALID = ValidationResult(ok=True)


def validate_input_length(text: str, max_len: int) -> ValidationResult:
    if not text:
        return ValidationResult(ok=False, error="Input cannot be empty")
    if len(text) > max_len:
        return ValidationResult(
            ok=False,
            error=(
                f"Input too long ({len(text)} characters, max {max_len}). "
                "Please keep your message shorter."
            ),
        )
    return VALID


def validate_command_length(command: str, max_len: int) -> ValidationResult:
    if not command or not command.strip():
        return ValidationResult(ok=False, error="Command cannot be empty")
    if len(command) > max_len:
        return ValidationResult(
            ok=False,
            error=f"Command too long ({len(command)} characters, max {max_len}).",
        )
    return VALID


def validate_working_dir(working_dir: str | Path) -> ValidationResult:
    """Working directories must already exist and be directories."""
    raw = str(working_dir)
    if not raw.strip():
        return ValidationResult(ok=False, error="Working directory cannot be empty")
    if "\x00" in raw:
        return ValidationResult(ok=False, error="Working directory contains a null byte")
    path = Path(raw).expanduser()
    if not path.exists():
        return ValidationResult(ok=False, error=f"Working directory does not exist: {path}")
    if not path.is_dir():
        return ValidationResult(ok=False, error=f"Working directory is not a directory: {path}")
    return VALID
