"""Tests for path risk classification."""

from __future__ import annotations

import pytest

from gatekeeper.safety.risk import (
    ApprovalAuthority,
    RiskLevel,
    classify_path,
    classify_paths,
    evaluate_job_policy,
    normalize_path,
)


class TestClassifyPath:
    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("/jobs/2026/01/a.md", RiskLevel.R1),
            ("audit/x.jsonl", RiskLevel.R1),
            ("./memory/notes.md", RiskLevel.R1),
            ("/intel/report.md", RiskLevel.R1),
            ("/skills/foo.py", RiskLevel.R2),
            ("cron/nightly", RiskLevel.R2),
            ("/agent/main.py", RiskLevel.R3),
            ("policies/policy.json", RiskLevel.R3),
            ("/.github/workflows/ci.yml", RiskLevel.R3),
            ("/src/app.py", RiskLevel.R3),
        ],
    )
    def test_tiers(self, path: str, expected: RiskLevel) -> None:
        assert classify_path(path) is expected

    def test_backslashes_normalized(self) -> None:
        assert normalize_path("skills\\tool.py") == "/skills/tool.py"
        assert classify_path("skills\\tool.py") is RiskLevel.R2

    def test_empty_path(self) -> None:
        assert normalize_path("") == "/"

    def test_prefix_requires_directory_boundary(self) -> None:
        assert classify_path("/jobsite/a.md") is RiskLevel.R3


class TestClassifyPaths:
    def test_no_paths_is_read_only(self) -> None:
        result = classify_paths([])
        assert result.risk_level is RiskLevel.R0
        assert "read-only" in result.reasons[0]

    def test_highest_tier_wins(self) -> None:
        result = classify_paths(["/jobs/a.md", "/skills/b.py"])
        assert result.risk_level is RiskLevel.R2
        assert len(result.reasons) == 1

    def test_unknown_path_adds_reason(self) -> None:
        result = classify_paths(["/jobs/a.md", "/elsewhere/b.txt"])
        assert result.risk_level is RiskLevel.R3
        assert any("outside explicit allowlisted" in r for r in result.reasons)

    def test_known_r3_path_has_no_unknown_reason(self) -> None:
        result = classify_paths(["/agent/x.py"])
        assert result.risk_level is RiskLevel.R3
        assert not any("outside explicit" in r for r in result.reasons)


class TestEvaluateJobPolicy:
    def test_r0_allowed_without_approval(self) -> None:
        decision = evaluate_job_policy([])
        assert decision.allowed is True
        assert decision.requires_approval is False
        assert decision.approval_authority is ApprovalAuthority.NONE

    def test_r1_allowed(self) -> None:
        decision = evaluate_job_policy(["/memory/x.md"])
        assert decision.risk_level is RiskLevel.R1
        assert decision.allowed is True

    def test_r2_denied_without_owner(self) -> None:
        decision = evaluate_job_policy(["/skills/x.py"])
        assert decision.allowed is False
        assert decision.requires_approval is True
        assert decision.approval_authority is ApprovalAuthority.OWNER
        assert decision.reasons[-1] == "Owner approval required before execution"

    def test_r3_allowed_with_owner(self) -> None:
        decision = evaluate_job_policy(["/policies/p.json"], owner_approved=True)
        assert decision.allowed is True
        assert decision.requires_approval is True
        assert "Owner approval required" not in decision.reason

    def test_rank_ordering(self) -> None:
        assert [r.rank for r in RiskLevel] == [0, 1, 2, 3]
