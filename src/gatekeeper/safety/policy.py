"""Policy gate for agent-proposed shell commands.

Rules are evaluated in file order and the first match wins, so the order of
``rules`` in the policy file is security-relevant. Matching is case-sensitive.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import re
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError, field_validator

from gatekeeper.errors import PolicyConfigError

logger = logging.getLogger(__name__)


class PolicyAction(StrEnum):
    """What a matching rule does."""

    ALLOW = "allow"
    BLOCK = "block"
    REQUIRES_SECRET = "requires-secret"


class PolicyRule(BaseModel):
    id: str = Field(min_length=1)
    description: str
    pattern: str = Field(min_length=1)
    action: PolicyAction
    secret_hash: str | None = None

    @field_validator("pattern")
    @classmethod
    def _pattern_compiles(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as exc:
            raise ValueError(f"invalid regular expression: {exc}") from exc
        return value


class PolicyConfig(BaseModel):
    default_action: Literal["allow", "block"]
    rules: list[PolicyRule]


# ---------------------------------------------------------------------------
# Verdicts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Allowed:
    rule_id: str | None
    decision: Literal["allowed"] = "allowed"


@dataclass(frozen=True)
class Blocked:
    rule_id: str
    reason: str
    decision: Literal["blocked"] = "blocked"


@dataclass(frozen=True)
class RequiresSecret:
    rule_id: str
    prompt: str
    decision: Literal["requires-secret"] = "requires-secret"


PolicyVerdict = Allowed | Blocked | RequiresSecret

DEFAULT_BLOCK_REASON = "No rule matched; default policy is block"


def load_policy_config(path: Path) -> PolicyConfig:
    """Read and validate a policy file.

    Raises:
        PolicyConfigError: the file is unreadable, not JSON, or fails validation.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PolicyConfigError(f"Cannot read policy file {path}: {exc}") from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise PolicyConfigError(f"Policy file {path} is not valid JSON: {exc}") from exc
    try:
        return PolicyConfig.model_validate(data)
    except ValidationError as exc:
        raise PolicyConfigError(f"Policy file {path} is malformed:\n{exc}") from exc


class PolicyGate:
    """Evaluates commands against an ordered rule list."""

    def __init__(self, config: PolicyConfig) -> None:
        self.config = config
        self._compiled = [(rule, re.compile(rule.pattern)) for rule in config.rules]
        self._by_id = {rule.id: rule for rule in config.rules}

    @classmethod
    def from_file(cls, path: Path) -> PolicyGate:
        gate = cls(load_policy_config(path))
        logger.info("Loaded %d policy rules from %s", len(gate.config.rules), path)
        return gate

    def evaluate(self, command: str) -> PolicyVerdict:
        for rule, regex in self._compiled:
            if regex.search(command):
                return self._verdict_from_rule(rule)

        if self.config.default_action == "allow":
            return Allowed(rule_id=None)
        return Blocked(rule_id="default", reason=DEFAULT_BLOCK_REASON)

    @staticmethod
    def _verdict_from_rule(rule: PolicyRule) -> PolicyVerdict:
        if rule.action is PolicyAction.ALLOW:
            return Allowed(rule_id=rule.id)
        if rule.action is PolicyAction.BLOCK:
            return Blocked(rule_id=rule.id, reason=rule.description)
        return RequiresSecret(
            rule_id=rule.id,
            prompt=f"Passphrase required for: {rule.description}",
        )

    def verify_secret(self, rule_id: str, passphrase: str) -> bool:
        """Check a passphrase against a rule's stored sha256 hash.

        Never raises: unknown rules, rules without a hash, and hashes of a
        different length all yield False.
        """
        rule = self._by_id.get(rule_id)
        if rule is None or not rule.secret_hash:
            return False

        digest = hashlib.sha256(passphrase.strip().encode("utf-8")).hexdigest()
        return hmac.compare_digest(digest.encode("utf-8"), rule.secret_hash.encode("utf-8"))


def hash_secret(passphrase: str) -> str:
    """Produce the ``secret_hash`` value for a policy rule."""
    return hashlib.sha256(passphrase.strip().encode("utf-8")).hexdigest()
