"""Consensus protocol engine for multi-bank KYC verification.

Manages the full consensus flow: vote ingestion with per-verifier
uniqueness, quorum evaluation over the current vote set, and the
exactly-once terminal transition of a submission.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime

from kycquorum.consensus.voting import (
    latest_rejection_note,
    progress_percent,
    resolve_quorum,
    tally_votes,
)
from kycquorum.errors import (
    AlreadyVoted,
    StoreUnavailable,
    SubmissionNotPending,
    UnknownSubmission,
    VerifierNotEligible,
)
from kycquorum.persistence.base import SubmissionStore, VerifierRegistry, VoteStore
from kycquorum.schemas.config import ConsensusConfig
from kycquorum.schemas.consensus import (
    ConsensusOutcome,
    ConsensusProgress,
    ProgressStatus,
    Submission,
    SubmissionStatus,
    TallyReport,
    VerifierStatus,
    Vote,
    VoteDecision,
    VoteResult,
    VotingEligibility,
)
from kycquorum.service.events import ConsensusEventEmitter, EventType

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ConsensusEngine:
    """Full consensus protocol engine.

    Stateless between calls: every decision is derived from what the
    stores hold at evaluation time, so any number of engines in any
    number of processes can serve the same submissions.
    """

    def __init__(
        self,
        votes: VoteStore,
        submissions: SubmissionStore,
        config: ConsensusConfig | None = None,
        verifiers: VerifierRegistry | None = None,
        emitter: ConsensusEventEmitter | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._votes = votes
        self._submissions = submissions
        self._config = config or ConsensusConfig()
        self._verifiers = verifiers
        self._emitter = emitter
        self._clock = clock

    @property
    def config(self) -> ConsensusConfig:
        return self._config

    async def submit_document(
        self,
        user_id: str,
        document_type: str,
        document_hash: str = "",
        submission_id: str | None = None,
    ) -> Submission:
        """Open a new pending submission for consensus."""
        submission = Submission(
            submission_id=submission_id or str(uuid.uuid4()),
            user_id=user_id,
            document_type=document_type,
            document_hash=document_hash,
            created_at=self._clock(),
        )
        return await self._submissions.create_submission(submission)

    async def cast_vote(
        self,
        submission_id: str,
        verifier_id: str,
        decision: VoteDecision | str,
        note: str | None = None,
        verifier_name: str = "",
    ) -> VoteResult:
        """Record one verifier's vote and re-evaluate consensus.

        Args:
            submission_id: Submission being voted on.
            verifier_id: Identity of the voting verifier.
            decision: ``approve`` or ``reject``.
            note: Optional free-text reason. The latest reject note
                becomes the rejection reason.
            verifier_name: Display name stored with the vote.

        Returns:
            VoteResult with the recorded vote and the consensus outcome.

        Raises:
            UnknownSubmission: The submission does not exist.
            SubmissionNotPending: The submission already has a decision.
            VerifierNotEligible: The verifier is not an approved bank.
            AlreadyVoted: The verifier has voted on this submission before.
                Consensus is re-evaluated first, so a retried deciding vote
                still finalizes its submission.
            StoreUnavailable: A store could not be reached.
        """
        decision = VoteDecision(decision)
        submission = await self._require_submission(submission_id)
        if submission.status.is_terminal:
            raise SubmissionNotPending(submission_id, submission.status)

        if self._verifiers is not None:
            verifier = await self._verifiers.get_verifier(verifier_id)
            if verifier is None or verifier.status != VerifierStatus.APPROVED:
                reason = (
                    "verifier is not registered"
                    if verifier is None
                    else f"verifier status is {verifier.status.value}"
                )
                logger.warning(
                    "Vote from %s on %s refused: %s", verifier_id, submission_id, reason,
                )
                raise VerifierNotEligible(verifier_id, reason)
            verifier_name = verifier_name or verifier.name

        vote = Vote(
            submission_id=submission_id,
            verifier_id=verifier_id,
            verifier_name=verifier_name,
            decision=decision,
            note=note,
            cast_at=self._clock(),
        )

        if not await self._votes.insert_vote(vote):
            logger.warning(
                "Duplicate vote from %s on %s ignored", verifier_id, submission_id,
            )
            # The stored vote's own evaluation may have failed; finish it here.
            outcome = await self.evaluate_consensus(submission_id)
            raise AlreadyVoted(
                submission_id,
                verifier_id,
                outcome.tally,
                outcome.decision or SubmissionStatus.PENDING,
            )

        logger.info(
            "Recorded %s vote from %s on %s",
            decision.value, verifier_id, submission_id,
        )
        if self._emitter is not None:
            await self._emitter.emit(
                EventType.VOTE_ADDED,
                submission_id,
                verifier_id,
                verifier_id=verifier_id,
                decision=decision.value,
            )

        outcome = await self.evaluate_consensus(submission_id)
        return VoteResult(
            vote=vote,
            outcome=outcome,
            consensus_reached_now=outcome.applied,
        )

    async def evaluate_consensus(self, submission_id: str) -> ConsensusOutcome:
        """Evaluate quorum over the current vote set and finalize once.

        Safe to call from any trigger (after an insert, on a timer, from
        a subscription). Only the evaluation whose conditional update
        wins performs the transition; every other caller gets the
        winning decision back with ``applied=False``.

        Raises:
            UnknownSubmission: The submission does not exist.
            StoreUnavailable: A store could not be reached. Nothing was
                written and the call can be retried.
        """
        submission = await self._require_submission(submission_id)
        votes = await self._votes.list_votes(submission_id)
        tally = tally_votes(votes)

        if submission.status.is_terminal:
            return ConsensusOutcome(
                submission_id=submission_id,
                reached=True,
                decision=submission.status,
                tally=tally,
            )

        decision, indeterminate = resolve_quorum(tally, self._config)
        if decision is None:
            return ConsensusOutcome(
                submission_id=submission_id,
                tally=tally,
                indeterminate=indeterminate,
            )

        reason = (
            latest_rejection_note(votes)
            if decision == SubmissionStatus.REJECTED
            else None
        )
        decided_at = self._clock()
        won = await self._submissions.finalize(
            submission_id, decision, decided_at, reason,
        )

        if won:
            logger.info(
                "Consensus reached on %s: %s (%d approve / %d reject)",
                submission_id, decision.value, tally.approvals, tally.rejections,
            )
            if self._emitter is not None:
                await self._emitter.emit(
                    EventType.STATUS_CHANGED,
                    submission_id,
                    decision.value,
                    status=decision.value,
                    decided_at=decided_at.isoformat(),
                    rejection_reason=reason,
                    approvals=tally.approvals,
                    rejections=tally.rejections,
                )
            return ConsensusOutcome(
                submission_id=submission_id,
                reached=True,
                decision=decision,
                tally=tally,
                applied=True,
            )

        # Another evaluator finalized first; report its decision.
        current = await self._require_submission(submission_id)
        if not current.status.is_terminal:
            raise StoreUnavailable(
                f"Finalize of {submission_id} was refused but it is still pending"
            )
        logger.info(
            "Finalization of %s already applied as %s",
            submission_id, current.status.value,
        )
        return ConsensusOutcome(
            submission_id=submission_id,
            reached=True,
            decision=current.status,
            tally=tally,
        )

    async def get_tally(self, submission_id: str) -> TallyReport:
        """Return the current tally and status of a submission."""
        submission = await self._require_submission(submission_id)
        tally = tally_votes(await self._votes.list_votes(submission_id))
        return TallyReport(
            submission_id=submission_id,
            approvals=tally.approvals,
            rejections=tally.rejections,
            total=tally.total,
            status=submission.status,
        )

    async def get_progress(self, submission_id: str) -> ConsensusProgress:
        """Return the detailed consensus view shown to verifiers."""
        submission = await self._require_submission(submission_id)
        votes = await self._votes.list_votes(submission_id)
        tally = tally_votes(votes)

        if submission.status == SubmissionStatus.VERIFIED:
            status = ProgressStatus.VERIFIED
        elif submission.status == SubmissionStatus.REJECTED:
            status = ProgressStatus.REJECTED
        elif tally.total > 0:
            status = ProgressStatus.IN_PROGRESS
        else:
            status = ProgressStatus.PENDING

        return ConsensusProgress(
            submission_id=submission_id,
            status=status,
            votes_required=self._config.min_votes,
            votes_received=tally.total,
            approvals=tally.approvals,
            rejections=tally.rejections,
            progress=progress_percent(tally.total, self._config.min_votes),
            consensus_reached=submission.status.is_terminal,
            votes=votes,
            decided_at=submission.decided_at,
            rejection_reason=submission.rejection_reason,
        )

    async def check_eligibility(
        self, submission_id: str, verifier_id: str,
    ) -> VotingEligibility:
        """Report whether a verifier may vote on a submission right now."""
        submission = await self._require_submission(submission_id)
        previous = await self._votes.get_vote(submission_id, verifier_id)
        already_voted = previous is not None

        if self._verifiers is not None:
            verifier = await self._verifiers.get_verifier(verifier_id)
            if verifier is None or verifier.status != VerifierStatus.APPROVED:
                return VotingEligibility(
                    eligible=False,
                    reason="Verifier is not registered or approved",
                    already_voted=already_voted,
                    previous_vote=previous,
                )

        if submission.status.is_terminal:
            return VotingEligibility(
                eligible=False,
                reason="This submission has already been finalized",
                already_voted=already_voted,
                previous_vote=previous,
            )

        if already_voted:
            return VotingEligibility(
                eligible=False,
                reason="Verifier has already voted on this submission",
                already_voted=True,
                previous_vote=previous,
            )

        return VotingEligibility(eligible=True)

    async def list_pending(self, limit: int = 50) -> list[Submission]:
        """Submissions still awaiting consensus, oldest first."""
        return await self._submissions.list_submissions(
            SubmissionStatus.PENDING, limit=limit,
        )

    async def _require_submission(self, submission_id: str) -> Submission:
        submission = await self._submissions.get_submission(submission_id)
        if submission is None:
            raise UnknownSubmission(submission_id)
        return submission
