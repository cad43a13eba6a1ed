"""Rich display components for the kycq CLI.

Tables and panels for tallies, consensus progress, pending
submissions and the verifier registry.
"""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from kycquorum.schemas.consensus import (
    ConsensusOutcome,
    ConsensusProgress,
    Submission,
    TallyReport,
    Verifier,
    VoteDecision,
    VoteResult,
)

# ── Status styles ─────────────────────────────────────────────────

_STATUS_STYLES = {
    "pending": "yellow",
    "in_progress": "cyan",
    "verified": "bold green",
    "rejected": "bold red",
    "approved": "green",
    "suspended": "red",
}


def status_text(status: str) -> Text:
    """Return a styled, upper-cased status label."""
    return Text(status.replace("_", " ").upper(), style=_STATUS_STYLES.get(status, ""))


def _progress_bar(percent: float, width: int = 20) -> str:
    filled = round(percent / 100 * width)
    return "█" * filled + "░" * (width - filled)


def render_tally(console: Console, report: TallyReport) -> None:
    """Print a one-row tally table."""
    table = Table(title=f"Tally: {report.submission_id}")
    table.add_column("Approvals", justify="right", style="green")
    table.add_column("Rejections", justify="right", style="red")
    table.add_column("Total", justify="right")
    table.add_column("Status")
    table.add_row(
        str(report.approvals),
        str(report.rejections),
        str(report.total),
        status_text(report.status.value),
    )
    console.print(table)


def render_outcome(console: Console, outcome: ConsensusOutcome) -> None:
    """Print the result of a consensus evaluation."""
    tally = outcome.tally
    counts = f"{tally.approvals} approve / {tally.rejections} reject / {tally.total} total"
    if outcome.reached and outcome.decision is not None:
        verb = "applied" if outcome.applied else "already final"
        body = Text.assemble(
            "Consensus ", status_text(outcome.decision.value), f" ({verb})\n", counts,
        )
        style = "green" if outcome.decision.value == "verified" else "red"
    elif outcome.indeterminate:
        body = Text(f"Indeterminate: no strict majority\n{counts}")
        style = "yellow"
    else:
        body = Text(f"Consensus not reached yet\n{counts}")
        style = "dim"
    console.print(Panel(body, title=outcome.submission_id, border_style=style))


def render_vote_result(console: Console, result: VoteResult) -> None:
    """Print a recorded vote followed by the consensus outcome."""
    vote = result.vote
    color = "green" if vote.decision == VoteDecision.APPROVE else "red"
    console.print(
        f"[{color}]Recorded {vote.decision.value}[/{color}] "
        f"from [cyan]{vote.verifier_id}[/cyan] on {vote.submission_id}"
    )
    render_outcome(console, result.outcome)


def render_progress(console: Console, progress: ConsensusProgress) -> None:
    """Print consensus progress with the full vote list."""
    meta = Table(
        title=f"Submission: {progress.submission_id}",
        show_header=False,
        show_lines=True,
    )
    meta.add_column("Field", style="bold")
    meta.add_column("Value")
    meta.add_row("Status", status_text(progress.status.value))
    meta.add_row(
        "Progress",
        f"{_progress_bar(progress.progress)} {progress.progress:.0f}%",
    )
    meta.add_row(
        "Votes",
        f"{progress.votes_received} of {progress.votes_required} required",
    )
    meta.add_row("Approvals", str(progress.approvals))
    meta.add_row("Rejections", str(progress.rejections))
    if progress.decided_at:
        meta.add_row("Decided", progress.decided_at.isoformat())
    if progress.rejection_reason:
        meta.add_row("Rejection Reason", progress.rejection_reason)
    console.print(meta)

    if progress.votes:
        console.print()
        votes = Table(title="Votes")
        votes.add_column("Verifier", style="cyan")
        votes.add_column("Decision")
        votes.add_column("Cast At", style="dim")
        votes.add_column("Note", max_width=40)
        for vote in progress.votes:
            color = "green" if vote.decision == VoteDecision.APPROVE else "red"
            votes.add_row(
                vote.verifier_name or vote.verifier_id,
                Text(vote.decision.value.upper(), style=color),
                vote.cast_at.isoformat(timespec="seconds"),
                vote.note or "-",
            )
        console.print(votes)


def render_submissions(console: Console, submissions: list[Submission], title: str) -> None:
    """Print a submission listing."""
    table = Table(title=f"{title} ({len(submissions)} shown)")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("User")
    table.add_column("Document")
    table.add_column("Submitted", style="dim")
    table.add_column("Status")
    for s in submissions:
        table.add_row(
            s.submission_id,
            s.user_id or "-",
            s.document_type or "-",
            s.created_at.isoformat(timespec="seconds"),
            status_text(s.status.value),
        )
    console.print(table)


def render_verifiers(console: Console, verifiers: list[Verifier]) -> None:
    """Print the verifier registry."""
    table = Table(title=f"Verifiers ({len(verifiers)})")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Registered", style="dim")
    for v in verifiers:
        table.add_row(
            v.verifier_id,
            v.name or "-",
            status_text(v.status.value),
            v.registered_at.isoformat(timespec="seconds"),
        )
    console.print(table)
