"""Tests for control command parsing and user-facing proposal text."""

from __future__ import annotations

import pytest

from gatekeeper.delegation.commands import (
    NOT_A_COMMAND,
    ControlCommand,
    ControlCommandType,
    parse_control_command,
)
from gatekeeper.delegation.messages import (
    TRUNCATION_MARKER,
    format_delegate_completion_message,
    format_delegate_completion_messages,
    format_file_diff,
    format_pending_proposal_message,
    format_pending_proposal_messages,
    iso,
    truncate_diff,
)
from gatekeeper.delegation.models import DelegateResult, FileDiff


class TestParseControlCommand:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("/accept", ControlCommand(ControlCommandType.ACCEPT)),
            ("/accept p-1", ControlCommand(ControlCommandType.ACCEPT, proposal_id="p-1")),
            ("  /reject   p-2 ", ControlCommand(ControlCommandType.REJECT, proposal_id="p-2")),
            ("/pending", ControlCommand(ControlCommandType.PENDING)),
        ],
    )
    def test_slash_forms(self, text: str, expected: ControlCommand) -> None:
        assert parse_control_command(text) == expected

    def test_usage_errors(self) -> None:
        assert parse_control_command("/pending now").error == "Usage: /pending"
        result = parse_control_command("/accept a b")
        assert result.type is ControlCommandType.INVALID
        assert result.error == "Usage: /accept or /accept <proposalId>"

    @pytest.mark.parametrize("text", ["", "   ", "hello there", "/help", "/acceptable"])
    def test_not_commands(self, text: str) -> None:
        assert parse_control_command(text) == NOT_A_COMMAND

    def test_bare_words_need_pending_proposal(self) -> None:
        assert parse_control_command("accept").type is ControlCommandType.NONE
        assert parse_control_command("reject that idea please").type is ControlCommandType.NONE

        assert parse_control_command("accept", has_pending=True).type is ControlCommandType.ACCEPT
        assert parse_control_command("Reject p-1", has_pending=True) == ControlCommand(
            ControlCommandType.REJECT, proposal_id="p-1"
        )
        assert parse_control_command("pending", has_pending=True).type is ControlCommandType.PENDING

    def test_bare_word_with_extra_words_is_invalid(self) -> None:
        result = parse_control_command("accept this change now", has_pending=True)
        assert result.type is ControlCommandType.INVALID


class TestTruncation:
    def test_short_diff_untouched(self) -> None:
        assert truncate_diff("+a\n+b") == "+a\n+b"

    def test_line_limit(self) -> None:
        diff = "\n".join(f"+{i}" for i in range(10))
        assert truncate_diff(diff, max_lines=3) == f"+0\n+1\n+2\n{TRUNCATION_MARKER}"

    def test_char_limit(self) -> None:
        result = truncate_diff("x" * 50, max_chars=10)
        assert result == "x" * 10 + f"\n{TRUNCATION_MARKER}"

    def test_file_diff_block(self) -> None:
        text = format_file_diff(FileDiff("src/a.py", "python", "+print(1)\n"))
        assert text == "File: src/a.py\nLanguage: python\n```diff\n+print(1)\n```"

    def test_empty_file_diff(self) -> None:
        text = format_file_diff(FileDiff("blob.bin", "text", ""))
        assert "(no textual diff output)" in text


class TestPendingMessages:
    def test_layout(self, make_proposal) -> None:
        proposal = make_proposal()
        messages = format_pending_proposal_messages(proposal)

        assert messages[0].startswith("[PENDING PROPOSAL] p-1")
        assert "the demo project" in messages[0]
        assert f"Expires: {iso(proposal.expires_at)}" in messages[0]
        assert "Changed files (2): a.py, docs/b.md" in messages[0]
        assert messages[1].startswith("File: a.py")
        assert messages[2].startswith("File: docs/b.md")
        assert messages[-1] == "Use /accept p-1 to apply or /reject p-1 to discard."
        assert format_pending_proposal_message(proposal) == "\n\n".join(messages)

    def test_limits_passed_through(self, make_proposal) -> None:
        proposal = make_proposal(
            changed_files=["a.py"], file_diffs=[FileDiff("a.py", "python", "y" * 500)]
        )
        messages = format_pending_proposal_messages(proposal, max_lines=5, max_chars=20)
        assert TRUNCATION_MARKER in messages[1]

    def test_iso(self) -> None:
        assert iso(1900.0) == "1970-01-01T00:31:40.000Z"


class TestCompletionMessages:
    def test_with_proposal(self, make_proposal) -> None:
        summary = make_proposal().summary()
        result = DelegateResult(exit_code=0, summary="Added files", proposal=summary)
        messages = format_delegate_completion_messages(result)

        assert messages[0].startswith("Claude has finished the delegated task.")
        assert "Summary:\nAdded files" in messages[0]
        assert "[PROPOSAL READY] p-1" in messages[0]
        assert messages[-1].startswith("Use /accept p-1")

    def test_no_changes(self) -> None:
        result = DelegateResult(exit_code=0, summary="Looked around", no_changes=True)
        text = format_delegate_completion_message(result)
        assert text.endswith("No file changes were proposed.")
        assert "Summary:\nLooked around" in text

    def test_plain_summary(self) -> None:
        result = DelegateResult(exit_code=1, summary="It broke")
        assert format_delegate_completion_messages(result) == [
            "Claude has finished the delegated task:\n\nIt broke"
        ]

    def test_nothing_at_all(self) -> None:
        assert format_delegate_completion_message(DelegateResult(exit_code=0, summary="")) == (
            "Claude has finished the delegated task."
        )
