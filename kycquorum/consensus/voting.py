"""Vote tallying and quorum resolution.

Pure functions over a vote set. Nothing here touches a store, so the
result depends only on which votes exist, never on the order in which
they arrived.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from kycquorum.schemas.config import ConsensusConfig
from kycquorum.schemas.consensus import (
    SubmissionStatus,
    Vote,
    VoteDecision,
    VoteTally,
)

logger = logging.getLogger(__name__)


def tally_votes(votes: Iterable[Vote]) -> VoteTally:
    """Count approve and reject votes.

    Args:
        votes: The full vote set for one submission.

    Returns:
        VoteTally with approvals, rejections and total.
    """
    approvals = 0
    rejections = 0
    for vote in votes:
        if vote.decision == VoteDecision.APPROVE:
            approvals += 1
        else:
            rejections += 1
    return VoteTally(
        approvals=approvals,
        rejections=rejections,
        total=approvals + rejections,
    )


def resolve_quorum(
    tally: VoteTally, config: ConsensusConfig,
) -> tuple[SubmissionStatus | None, bool]:
    """Apply the quorum rule to a tally.

    Consensus needs ``total >= min_votes`` and a ratio at or above the
    threshold. When both ratios clear it (only possible with a threshold
    of 0.5 or less) the strict majority wins and an exact tie is
    indeterminate.

    Returns:
        ``(decision, indeterminate)``. ``decision`` is None while quorum
        does not hold.
    """
    if tally.total < config.min_votes:
        return None, False

    approved = tally.approval_ratio >= config.threshold
    rejected = tally.rejection_ratio >= config.threshold

    if approved and rejected:
        if tally.approvals > tally.rejections:
            return SubmissionStatus.VERIFIED, False
        if tally.rejections > tally.approvals:
            return SubmissionStatus.REJECTED, False
        logger.info(
            "Indeterminate tally %d/%d at threshold %.2f",
            tally.approvals, tally.rejections, config.threshold,
        )
        return None, True

    if approved:
        return SubmissionStatus.VERIFIED, False
    if rejected:
        return SubmissionStatus.REJECTED, False
    return None, False


def latest_rejection_note(votes: Iterable[Vote]) -> str | None:
    """Return the note of the most recent reject vote that carries one.

    Ties on cast time are broken by verifier id so the result stays
    independent of arrival order.
    """
    noted = [
        v for v in votes
        if v.decision == VoteDecision.REJECT and v.note and v.note.strip()
    ]
    if not noted:
        return None
    latest = max(noted, key=lambda v: (v.cast_at, v.verifier_id))
    return latest.note.strip()


def progress_percent(votes_received: int, votes_required: int) -> float:
    """Votes received as a percentage of votes required, capped at 100."""
    if votes_required <= 0:
        return 100.0
    return min(votes_received / votes_required * 100.0, 100.0)
