"""Consensus protocol for multi-bank KYC verification.

Provides vote tallying, quorum resolution, and the engine that records
votes and finalizes submissions exactly once.
"""

from kycquorum.consensus.protocol import ConsensusEngine
from kycquorum.consensus.voting import (
    latest_rejection_note,
    progress_percent,
    resolve_quorum,
    tally_votes,
)

__all__ = [
    "ConsensusEngine",
    "latest_rejection_note",
    "progress_percent",
    "resolve_quorum",
    "tally_votes",
]
