"""Runtime configuration built from environment overrides."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from gatekeeper.errors import ConfigError

ENV_PREFIX = "GATEKEEPER_"

DEFAULT_DATA_DIR = Path.home() / ".gatekeeper"
DEFAULT_POLICY_PATH = Path("policies") / "policy.json"

# (env suffix, attribute, minimum)
_NUMERIC_OVERRIDES: list[tuple[str, str, int]] = [
    ("MAX_SESSIONS", "max_sessions", 1),
    ("MAX_USER_INPUT", "max_user_input", 1),
    ("MAX_COMMAND_LENGTH", "max_command_length", 1),
    ("MAX_OUTPUT_BYTES", "max_output_bytes", 1),
    ("COMMAND_TIMEOUT", "command_timeout", 1),
    ("QUEUE_MAX_CONCURRENT_JOBS", "queue_max_concurrent_jobs", 1),
    ("PROPOSAL_TTL", "proposal_ttl_seconds", 1),
    ("DIFF_PREVIEW_MAX_LINES", "diff_preview_max_lines", 1),
    ("DIFF_PREVIEW_MAX_CHARS", "diff_preview_max_chars", 1),
    ("FILE_DIFF_MAX_LINES", "file_diff_max_lines", 1),
    ("FILE_DIFF_MAX_CHARS", "file_diff_max_chars", 1),
]

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class RuntimeConfig:
    """Explicit configuration passed into every component constructor."""

    data_dir: Path = DEFAULT_DATA_DIR
    policy_path: Path = DEFAULT_POLICY_PATH
    max_sessions: int = 100
    max_user_input: int = 8000
    max_command_length: int = 10_000
    max_output_bytes: int = 512 * 1024
    command_timeout: int = 10
    queue_max_concurrent_jobs: int = 10
    proposal_ttl_seconds: int = 15 * 60
    diff_preview_max_lines: int = 80
    diff_preview_max_chars: int = 3000
    file_diff_max_lines: int = 120
    file_diff_max_chars: int = 1400
    unsafe_enable_writes: bool = False
    low_trust_channels: frozenset[str] = field(default_factory=lambda: frozenset({"chat"}))

    @property
    def proposals_path(self) -> Path:
        return self.data_dir / "sessions" / "proposals.json"

    @property
    def log_dir(self) -> Path:
        return self.data_dir / "logs"

    def ensure_dirs(self) -> None:
        for path in (self.data_dir, self.log_dir, self.proposals_path.parent):
            path.mkdir(parents=True, exist_ok=True)


def _parse_positive_int(name: str, raw: str, minimum: int) -> tuple[int | None, str | None]:
    try:
        value = int(raw.strip(), 10)
    except ValueError:
        return None, f"{name} must be an integer >= {minimum} (received: {raw!r})."
    if value < minimum:
        return None, f"{name} must be >= {minimum} (received: {value})."
    return value, None


def load_config(env: Mapping[str, str] | None = None) -> RuntimeConfig:
    """Build a RuntimeConfig from ``GATEKEEPER_*`` variables.

    Every invalid variable is reported; nothing is silently defaulted.

    Raises:
        ConfigError: listing all problems found.
    """
    env = os.environ if env is None else env
    errors: list[str] = []
    values: dict[str, object] = {}

    data_dir = env.get(f"{ENV_PREFIX}DATA_DIR")
    if data_dir is not None:
        if not data_dir.strip():
            errors.append(f"{ENV_PREFIX}DATA_DIR cannot be empty when set.")
        else:
            values["data_dir"] = Path(data_dir).expanduser()

    policy_path = env.get(f"{ENV_PREFIX}POLICY_PATH")
    if policy_path is not None:
        if not policy_path.strip():
            errors.append(f"{ENV_PREFIX}POLICY_PATH cannot be empty when set.")
        else:
            values["policy_path"] = Path(policy_path).expanduser()

    for suffix, attr, minimum in _NUMERIC_OVERRIDES:
        name = f"{ENV_PREFIX}{suffix}"
        raw = env.get(name)
        if raw is None or not raw.strip():
            continue
        value, error = _parse_positive_int(name, raw, minimum)
        if error:
            errors.append(error)
        else:
            values[attr] = value

    unsafe = env.get(f"{ENV_PREFIX}UNSAFE_ENABLE_WRITES")
    if unsafe is not None:
        lowered = unsafe.strip().lower()
        if lowered in _TRUE_VALUES:
            values["unsafe_enable_writes"] = True
        elif lowered in _FALSE_VALUES:
            values["unsafe_enable_writes"] = False
        else:
            errors.append(f"{ENV_PREFIX}UNSAFE_ENABLE_WRITES must be a boolean (received: {unsafe!r}).")

    if errors:
        raise ConfigError(errors)

    return RuntimeConfig(**values)  # type: ignore[arg-type]
