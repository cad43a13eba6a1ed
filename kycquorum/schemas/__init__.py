"""kyc-quorum schema definitions.

All Pydantic v2 models used by the engine, stores, CLI and server.
"""

from kycquorum.schemas.config import (
    ConsensusConfig,
    ServiceConfig,
    Settings,
    StoreBackend,
    StoreConfig,
)
from kycquorum.schemas.consensus import (
    ConsensusOutcome,
    ConsensusProgress,
    ProgressStatus,
    Submission,
    SubmissionStatus,
    TallyReport,
    Verifier,
    VerifierStatus,
    Vote,
    VoteDecision,
    VoteResult,
    VoteTally,
    VotingEligibility,
)

__all__ = [
    "ConsensusConfig",
    "ConsensusOutcome",
    "ConsensusProgress",
    "ProgressStatus",
    "ServiceConfig",
    "Settings",
    "StoreBackend",
    "StoreConfig",
    "Submission",
    "SubmissionStatus",
    "TallyReport",
    "Verifier",
    "VerifierStatus",
    "Vote",
    "VoteDecision",
    "VoteResult",
    "VoteTally",
    "VotingEligibility",
]
