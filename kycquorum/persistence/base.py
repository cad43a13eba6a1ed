"""Abstract store interfaces used by the consensus engine.

The engine talks to its collaborators exclusively through these
interfaces and never reaches for a backend client directly. All
coordination between concurrent voters happens through two atomic
primitives: ``VoteStore.insert_vote`` (insert-if-absent keyed by
submission and verifier) and ``SubmissionStore.finalize`` (conditional
update guarded by ``status = pending``).

Implementations must raise ``StoreUnavailable`` for transient I/O
failures and must not retry internally.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from kycquorum.schemas.consensus import (
    Submission,
    SubmissionStatus,
    Verifier,
    VerifierStatus,
    Vote,
)


class VoteStore(ABC):
    """Durable collection of votes, unique per (submission, verifier)."""

    @abstractmethod
    async def insert_vote(self, vote: Vote) -> bool:
        """Insert the vote unless one already exists for its key.

        Returns:
            True if the vote was inserted, False if the verifier had
            already voted on the submission.
        """

    @abstractmethod
    async def list_votes(self, submission_id: str) -> list[Vote]:
        """Return every vote for a submission, oldest first."""

    @abstractmethod
    async def get_vote(self, submission_id: str, verifier_id: str) -> Vote | None:
        """Return one verifier's vote on a submission, if any."""


class SubmissionStore(ABC):
    """Durable collection of submissions with a terminal-transition guard."""

    @abstractmethod
    async def create_submission(self, submission: Submission) -> Submission:
        """Persist a new pending submission and return it."""

    @abstractmethod
    async def get_submission(self, submission_id: str) -> Submission | None:
        """Return a submission by id, or None if absent."""

    @abstractmethod
    async def finalize(
        self,
        submission_id: str,
        status: SubmissionStatus,
        decided_at: datetime,
        rejection_reason: str | None = None,
    ) -> bool:
        """Move a pending submission to a terminal status.

        Must be a single conditional write guarded by ``status = pending``.

        Returns:
            True if this call performed the transition, False if the
            submission was no longer pending.
        """

    @abstractmethod
    async def list_submissions(
        self,
        status: SubmissionStatus | None = None,
        limit: int = 50,
    ) -> list[Submission]:
        """List submissions, oldest first, optionally filtered by status."""


class VerifierRegistry(ABC):
    """Registered verifying banks and their approval status."""

    @abstractmethod
    async def register(self, verifier: Verifier) -> Verifier:
        """Add or replace a verifier registration."""

    @abstractmethod
    async def get_verifier(self, verifier_id: str) -> Verifier | None:
        """Return a verifier by id, or None if unregistered."""

    @abstractmethod
    async def list_verifiers(self) -> list[Verifier]:
        """Return every registered verifier."""

    @abstractmethod
    async def set_status(self, verifier_id: str, status: VerifierStatus) -> bool:
        """Update a verifier's status. Returns False if unregistered."""
