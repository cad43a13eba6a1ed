"""Consensus schemas for KYC verification.

Defines the persisted records (Submission, Vote, Verifier), the derived
VoteTally, and the result types returned by the consensus engine
(ConsensusOutcome, VoteResult, TallyReport, ConsensusProgress,
VotingEligibility).
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class SubmissionStatus(StrEnum):
    """Verification status of a submission. Only PENDING is non-terminal."""

    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not SubmissionStatus.PENDING


class VoteDecision(StrEnum):
    """A single verifier's judgment on a submission."""

    APPROVE = "approve"
    REJECT = "reject"


class VerifierStatus(StrEnum):
    """Registration status of a verifying bank."""

    PENDING = "pending"
    APPROVED = "approved"
    SUSPENDED = "suspended"


class ProgressStatus(StrEnum):
    """Coarse consensus state shown to verifiers."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    VERIFIED = "verified"
    REJECTED = "rejected"


class Submission(BaseModel):
    """An identity-document verification request undergoing consensus."""

    submission_id: str = Field(description="Unique submission identifier")
    user_id: str = Field(default="", description="Owner of the submitted document")
    document_type: str = Field(default="", description="Document kind (e.g. 'passport')")
    document_hash: str = Field(
        default="", description="Opaque content hash recorded at submission time",
    )
    status: SubmissionStatus = Field(
        default=SubmissionStatus.PENDING, description="Current verification status",
    )
    created_at: datetime = Field(description="When the document was submitted")
    decided_at: datetime | None = Field(
        default=None, description="When the terminal decision was applied",
    )
    rejection_reason: str | None = Field(
        default=None, description="Reason carried from the latest reject vote",
    )


class Vote(BaseModel):
    """One verifier's immutable vote on one submission."""

    submission_id: str = Field(description="Submission being voted on")
    verifier_id: str = Field(description="Identity of the voting verifier")
    verifier_name: str = Field(default="", description="Display name of the verifier")
    decision: VoteDecision = Field(description="Approve or reject")
    note: str | None = Field(default=None, description="Optional free-text reason")
    cast_at: datetime = Field(description="When the vote was cast")


class Verifier(BaseModel):
    """A bank entitled to cast one vote per submission once approved."""

    verifier_id: str = Field(description="Unique verifier identifier")
    name: str = Field(default="", description="Display name")
    status: VerifierStatus = Field(
        default=VerifierStatus.PENDING, description="Registration status",
    )
    registered_at: datetime = Field(description="When the verifier registered")


class VoteTally(BaseModel):
    """Counts of approve/reject votes for a submission at a point in time."""

    approvals: int = Field(default=0, ge=0, description="Number of approve votes")
    rejections: int = Field(default=0, ge=0, description="Number of reject votes")
    total: int = Field(default=0, ge=0, description="Total votes cast")

    @property
    def approval_ratio(self) -> float:
        return self.approvals / self.total if self.total else 0.0

    @property
    def rejection_ratio(self) -> float:
        return self.rejections / self.total if self.total else 0.0


class ConsensusOutcome(BaseModel):
    """Result of evaluating consensus for a submission.

    ``applied`` is True only for the evaluation that actually performed
    the terminal transition. Evaluations that lost the race, or ran
    after finalization, report the winning decision with applied=False.
    """

    submission_id: str = Field(description="Evaluated submission")
    reached: bool = Field(default=False, description="Whether quorum holds")
    decision: SubmissionStatus | None = Field(
        default=None, description="Terminal decision when reached",
    )
    tally: VoteTally = Field(default_factory=VoteTally, description="Tally used")
    indeterminate: bool = Field(
        default=False,
        description="Both ratios cleared the threshold with no strict majority",
    )
    applied: bool = Field(
        default=False, description="Whether this evaluation wrote the decision",
    )


class VoteResult(BaseModel):
    """Result of a successful cast_vote call."""

    vote: Vote = Field(description="The recorded vote")
    outcome: ConsensusOutcome = Field(description="Consensus after this vote")
    consensus_reached_now: bool = Field(
        default=False, description="Whether this vote's evaluation finalized",
    )

    @property
    def tally(self) -> VoteTally:
        return self.outcome.tally


class TallyReport(BaseModel):
    """Current tally plus submission status."""

    submission_id: str
    approvals: int = 0
    rejections: int = 0
    total: int = 0
    status: SubmissionStatus = SubmissionStatus.PENDING


class ConsensusProgress(BaseModel):
    """Detailed consensus view for verifier dashboards."""

    submission_id: str = Field(description="Submission this progress describes")
    status: ProgressStatus = Field(description="Coarse consensus state")
    votes_required: int = Field(description="Minimum votes before quorum can hold")
    votes_received: int = Field(default=0, description="Votes cast so far")
    approvals: int = Field(default=0, description="Approve votes")
    rejections: int = Field(default=0, description="Reject votes")
    progress: float = Field(
        default=0.0, ge=0.0, le=100.0,
        description="Votes received as a percentage of votes required, capped at 100",
    )
    consensus_reached: bool = Field(default=False)
    votes: list[Vote] = Field(default_factory=list, description="Votes in cast order")
    decided_at: datetime | None = None
    rejection_reason: str | None = None


class VotingEligibility(BaseModel):
    """Whether a verifier may vote on a submission right now."""

    eligible: bool
    reason: str = ""
    already_voted: bool = False
    previous_vote: Vote | None = None
