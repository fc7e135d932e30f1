"""User-facing text for proposals and delegation results."""

from __future__ import annotations

from datetime import datetime, timezone

from gatekeeper.delegation.models import DelegateResult, FileDiff, PendingProposal, ProposalSummary

FILE_DIFF_MAX_LINES = 120
FILE_DIFF_MAX_CHARS = 1400
TRUNCATION_MARKER = "... [diff truncated]"


def iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def truncate_diff(
    diff: str, max_lines: int = FILE_DIFF_MAX_LINES, max_chars: int = FILE_DIFF_MAX_CHARS
) -> str:
    clipped = "\n".join(diff.split("\n")[:max_lines])[:max_chars]
    if len(clipped) < len(diff):
        return f"{clipped}\n{TRUNCATION_MARKER}"
    return clipped


def format_file_diff(
    file_diff: FileDiff,
    max_lines: int = FILE_DIFF_MAX_LINES,
    max_chars: int = FILE_DIFF_MAX_CHARS,
) -> str:
    body = truncate_diff(file_diff.diff.strip() or "(no textual diff output)", max_lines, max_chars)
    return "\n".join(
        [
            f"File: {file_diff.file_path}",
            f"Language: {file_diff.language}",
            "```diff",
            body,
            "```",
        ]
    )


def _header(*parts: str) -> str:
    return "\n\n".join(part for part in parts if part)


def _file_messages(proposal: PendingProposal | ProposalSummary, **limits: int) -> list[str]:
    if not proposal.file_diffs:
        return ["No per-file diff output is available."]
    return [format_file_diff(file_diff, **limits) for file_diff in proposal.file_diffs]


def _decision_hint(proposal_id: str) -> str:
    return f"Use /accept {proposal_id} to apply or /reject {proposal_id} to discard."


def format_pending_proposal_messages(proposal: PendingProposal, **limits: int) -> list[str]:
    files = ", ".join(proposal.changed_files) or "No file list available"
    messages = [
        _header(
            f"[PENDING PROPOSAL] {proposal.id}",
            f"Here are the proposed changes to the {proposal.project_name} project.",
            f"Expires: {iso(proposal.expires_at)}",
            f"Changed files ({len(proposal.changed_files)}): {files}",
            f"Diffstat:\n{proposal.diff_stat}" if proposal.diff_stat else "",
        )
    ]
    messages.extend(_file_messages(proposal, **limits))
    messages.append(_decision_hint(proposal.id))
    return messages


def format_pending_proposal_message(proposal: PendingProposal, **limits: int) -> str:
    return "\n\n".join(format_pending_proposal_messages(proposal, **limits))


def format_delegate_completion_messages(result: DelegateResult, **limits: int) -> list[str]:
    summary = f"Summary:\n{result.summary}" if result.summary else ""

    if result.proposal is not None:
        proposal = result.proposal
        files = ", ".join(proposal.changed_files) or "No files listed"
        messages = [
            _header(
                "Claude has finished the delegated task.",
                f"Here are the proposed changes to the {proposal.project_name} project.",
                summary,
                f"[PROPOSAL READY] {proposal.id}",
                f"Expires: {iso(proposal.expires_at)}",
                f"Changed files ({len(proposal.changed_files)}): {files}",
                f"Diffstat:\n{proposal.diff_stat}" if proposal.diff_stat else "",
            )
        ]
        messages.extend(_file_messages(proposal, **limits))
        messages.append(_decision_hint(proposal.id))
        return messages

    if result.no_changes:
        return [
            _header(
                "Claude has finished the delegated task.",
                summary,
                "No file changes were proposed.",
            )
        ]

    if result.summary:
        return [f"Claude has finished the delegated task:\n\n{result.summary}"]
    return ["Claude has finished the delegated task."]


def format_delegate_completion_message(result: DelegateResult, **limits: int) -> str:
    return "\n\n".join(format_delegate_completion_messages(result, **limits))
