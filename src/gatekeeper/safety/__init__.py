"""Safety gates: command policy and path risk tiers."""

from __future__ import annotations

from gatekeeper.safety.policy import (
    Allowed,
    Blocked,
    PolicyAction,
    PolicyConfig,
    PolicyGate,
    PolicyRule,
    PolicyVerdict,
    RequiresSecret,
    hash_secret,
    load_policy_config,
)
from gatekeeper.safety.risk import (
    ApprovalAuthority,
    JobPolicyDecision,
    RiskClassification,
    RiskLevel,
    classify_path,
    classify_paths,
    evaluate_job_policy,
)

__all__ = [
    "Allowed",
    "ApprovalAuthority",
    "Blocked",
    "JobPolicyDecision",
    "PolicyAction",
    "PolicyConfig",
    "PolicyGate",
    "PolicyRule",
    "PolicyVerdict",
    "RequiresSecret",
    "RiskClassification",
    "RiskLevel",
    "classify_path",
    "classify_paths",
    "evaluate_job_policy",
    "hash_secret",
    "load_policy_config",
]
