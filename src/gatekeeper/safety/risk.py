"""Risk tiers for the set of paths a job touches."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import StrEnum


class RiskLevel(StrEnum):
    """Ordinal risk tiers, R0 (read-only) to R3 (high risk)."""

    R0 = "R0"
    R1 = "R1"
    R2 = "R2"
    R3 = "R3"

    @property
    def rank(self) -> int:
        return int(self.value[1])


class ApprovalAuthority(StrEnum):
    NONE = "none"
    OWNER = "owner"


R1_PREFIXES = ("/jobs/", "/audit/", "/intel/", "/memory/")
R2_PREFIXES = ("/skills/", "/cron/")
R3_PREFIXES = ("/agent/", "/policies/", "/.github/")


@dataclass(frozen=True)
class RiskClassification:
    risk_level: RiskLevel
    reasons: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class JobPolicyDecision:
    risk_level: RiskLevel
    allowed: bool
    requires_approval: bool
    approval_authority: ApprovalAuthority
    reasons: list[str] = field(default_factory=list)

    @property
    def reason(self) -> str:
        return "; ".join(self.reasons)


def normalize_path(path: str) -> str:
    if not path:
        return "/"
    normalized = path.replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized if normalized.startswith("/") else f"/{normalized}"


def classify_path(path: str) -> RiskLevel:
    """Tier a single path. Paths outside every table are R3."""
    normalized = normalize_path(path)
    if normalized.startswith(R3_PREFIXES):
        return RiskLevel.R3
    if normalized.startswith(R2_PREFIXES):
        return RiskLevel.R2
    if normalized.startswith(R1_PREFIXES):
        return RiskLevel.R1
    return RiskLevel.R3


def classify_paths(paths: Iterable[str]) -> RiskClassification:
    """Classify a job by the highest tier among its touched paths."""
    paths = list(paths)
    if not paths:
        return RiskClassification(
            risk_level=RiskLevel.R0,
            reasons=["No write paths touched; classified as read-only"],
        )

    highest = RiskLevel.R0
    saw_unknown = False
    for path in paths:
        normalized = normalize_path(path)
        risk = classify_path(normalized)
        if risk.rank > highest.rank:
            highest = risk
        if risk is RiskLevel.R3 and not normalized.startswith(R3_PREFIXES):
            saw_unknown = True

    reasons: list[str] = []
    if highest is RiskLevel.R1:
        reasons.append("Touches informational paths (/jobs, /audit, /intel, /memory)")
    elif highest is RiskLevel.R2:
        reasons.append("Touches behavior-adjacent paths (/skills or /cron)")
    elif highest is RiskLevel.R3:
        reasons.append(
            "Touches high-risk paths (/agent, /policies, /.github) or unknown write locations"
        )
    if saw_unknown:
        reasons.append("At least one touched path is outside explicit allowlisted risk categories")

    return RiskClassification(risk_level=highest, reasons=reasons)


def evaluate_job_policy(paths: Iterable[str], owner_approved: bool = False) -> JobPolicyDecision:
    """Decide whether a job may proceed and who must approve it."""
    risk = classify_paths(paths)
    requires_approval = risk.risk_level in (RiskLevel.R2, RiskLevel.R3)
    allowed = not requires_approval or owner_approved
    reasons = list(risk.reasons)
    if requires_approval and not allowed:
        reasons.append("Owner approval required before execution")

    return JobPolicyDecision(
        risk_level=risk.risk_level,
        allowed=allowed,
        requires_approval=requires_approval,
        approval_authority=ApprovalAuthority.OWNER if requires_approval else ApprovalAuthority.NONE,
        reasons=reasons,
    )
