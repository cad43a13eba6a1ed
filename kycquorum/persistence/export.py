"""Consensus record export formatters.

Provides JSON and Markdown export functions for a submission's
consensus progress, used as an audit trail of who voted and how.
"""

from __future__ import annotations

from kycquorum.schemas.consensus import ConsensusProgress, Submission, VoteDecision


def export_json(progress: ConsensusProgress) -> str:
    """Export a consensus record as a formatted JSON string."""
    return progress.model_dump_json(indent=2)


def export_markdown(
    progress: ConsensusProgress, submission: Submission | None = None,
) -> str:
    """Export a consensus record as a human-readable Markdown report.

    Generates sections for submission metadata, the tally, and every
    vote in cast order.

    Returns:
        Markdown-formatted string.
    """
    lines: list[str] = []

    lines.append(f"# Consensus Report: {progress.submission_id}")
    lines.append("")

    lines.append("## Submission")
    lines.append("")
    if submission is not None:
        if submission.user_id:
            lines.append(f"- **User:** {submission.user_id}")
        if submission.document_type:
            lines.append(f"- **Document Type:** {submission.document_type}")
        lines.append(f"- **Submitted:** {submission.created_at.isoformat()}")
    lines.append(f"- **Status:** {progress.status.value.replace('_', ' ').title()}")
    if progress.decided_at:
        lines.append(f"- **Decided:** {progress.decided_at.isoformat()}")
    if progress.rejection_reason:
        lines.append(f"- **Rejection Reason:** {progress.rejection_reason}")
    lines.append("")

    lines.append("## Tally")
    lines.append("")
    lines.append("| Approvals | Rejections | Received | Required | Progress |")
    lines.append("|-----------|------------|----------|----------|----------|")
    lines.append(
        f"| {progress.approvals} | {progress.rejections} "
        f"| {progress.votes_received} | {progress.votes_required} "
        f"| {progress.progress:.0f}% |"
    )
    lines.append("")

    if progress.votes:
        lines.append("## Votes")
        lines.append("")
        for vote in progress.votes:
            verb = "approved" if vote.decision == VoteDecision.APPROVE else "rejected"
            who = vote.verifier_name or vote.verifier_id
            lines.append(f"- **{who}** {verb} at {vote.cast_at.isoformat()}")
            if vote.note:
                lines.append(f"  - _{vote.note}_")
        lines.append("")

    return "\n".join(lines)
