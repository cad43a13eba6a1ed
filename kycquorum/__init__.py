"""kyc-quorum: multi-bank KYC consensus verification."""

__version__ = "0.1.0"

from .consensus import ConsensusEngine
from .errors import (
    AlreadyVoted,
    ConsensusError,
    StoreUnavailable,
    SubmissionNotPending,
    UnknownSubmission,
    VerifierNotEligible,
)
from .schemas import ConsensusConfig, SubmissionStatus, VoteDecision

__all__ = [
    "AlreadyVoted",
    "ConsensusConfig",
    "ConsensusEngine",
    "ConsensusError",
    "StoreUnavailable",
    "SubmissionNotPending",
    "SubmissionStatus",
    "UnknownSubmission",
    "VerifierNotEligible",
    "VoteDecision",
]
