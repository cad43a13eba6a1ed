"""Error taxonomy for the consensus engine.

Every engine operation either returns a definite outcome or raises one
of these. A lost finalization race is not an error: the losing
evaluator returns the winning outcome instead.
"""

from __future__ import annotations

from kycquorum.schemas.consensus import SubmissionStatus, VoteTally


class ConsensusError(Exception):
    """Base exception for all consensus-engine errors."""


class UnknownSubmission(ConsensusError):
    """Raised when a submission id does not exist in the store."""

    def __init__(self, submission_id: str) -> None:
        super().__init__(f"Unknown submission: {submission_id}")
        self.submission_id = submission_id


class SubmissionNotPending(ConsensusError):
    """Raised when voting on a submission that already has a final decision."""

    def __init__(self, submission_id: str, status: SubmissionStatus) -> None:
        super().__init__(
            f"Submission {submission_id} is already {status.value}"
        )
        self.submission_id = submission_id
        self.status = status


class AlreadyVoted(ConsensusError):
    """Raised when a verifier votes twice on the same submission.

    Carries the current tally and submission status so callers can show
    them instead of treating the duplicate as fatal.
    """

    def __init__(
        self,
        submission_id: str,
        verifier_id: str,
        tally: VoteTally,
        status: SubmissionStatus = SubmissionStatus.PENDING,
    ) -> None:
        super().__init__(
            f"Verifier {verifier_id} has already voted on {submission_id}"
        )
        self.submission_id = submission_id
        self.verifier_id = verifier_id
        self.tally = tally
        self.status = status


class VerifierNotEligible(ConsensusError):
    """Raised when an unregistered or unapproved verifier tries to vote."""

    def __init__(self, verifier_id: str, reason: str) -> None:
        super().__init__(f"Verifier {verifier_id} cannot vote: {reason}")
        self.verifier_id = verifier_id
        self.reason = reason


class StoreUnavailable(ConsensusError):
    """Transient store I/O failure. Retry with backoff on the caller side."""


class ConfigError(ConsensusError):
    """Raised when a configuration file holds invalid values."""
