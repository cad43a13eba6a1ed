"""In-memory stores for tests, demos and the ``memory`` backend.

Each primitive runs without yielding to the event loop between its
check and its write, so within one process it is as atomic as the
SQL statements the durable stores use.
"""

from __future__ import annotations

from datetime import datetime

from kycquorum.errors import UnknownSubmission
from kycquorum.persistence.base import SubmissionStore, VerifierRegistry, VoteStore
from kycquorum.schemas.consensus import (
    Submission,
    SubmissionStatus,
    Verifier,
    VerifierStatus,
    Vote,
)


class MemorySubmissionStore(SubmissionStore):
    """Dict-backed submission store.

    ``write_count`` counts successful terminal transitions.
    """

    def __init__(self) -> None:
        self._rows: dict[str, Submission] = {}
        self.write_count = 0

    def __contains__(self, submission_id: object) -> bool:
        return submission_id in self._rows

    async def create_submission(self, submission: Submission) -> Submission:
        if submission.submission_id in self._rows:
            raise ValueError(f"Submission already exists: {submission.submission_id}")
        self._rows[submission.submission_id] = submission.model_copy()
        return submission

    async def get_submission(self, submission_id: str) -> Submission | None:
        row = self._rows.get(submission_id)
        return row.model_copy() if row else None

    async def finalize(
        self,
        submission_id: str,
        status: SubmissionStatus,
        decided_at: datetime,
        rejection_reason: str | None = None,
    ) -> bool:
        row = self._rows.get(submission_id)
        if row is None or row.status != SubmissionStatus.PENDING:
            return False
        self._rows[submission_id] = row.model_copy(update={
            "status": status,
            "decided_at": decided_at,
            "rejection_reason": rejection_reason,
        })
        self.write_count += 1
        return True

    async def list_submissions(
        self,
        status: SubmissionStatus | None = None,
        limit: int = 50,
    ) -> list[Submission]:
        rows = [
            r for r in self._rows.values()
            if status is None or r.status == status
        ]
        rows.sort(key=lambda r: r.created_at)
        return [r.model_copy() for r in rows[:limit]]


class MemoryVoteStore(VoteStore):
    """Dict-backed vote store keyed by (submission_id, verifier_id).

    When given a submission store, inserts for unknown submissions fail
    the same way a foreign key would.
    """

    def __init__(self, submissions: MemorySubmissionStore | None = None) -> None:
        self._rows: dict[tuple[str, str], Vote] = {}
        self._submissions = submissions

    async def insert_vote(self, vote: Vote) -> bool:
        if self._submissions is not None and vote.submission_id not in self._submissions:
            raise UnknownSubmission(vote.submission_id)
        key = (vote.submission_id, vote.verifier_id)
        if key in self._rows:
            return False
        self._rows[key] = vote
        return True

    async def list_votes(self, submission_id: str) -> list[Vote]:
        votes = [v for (sid, _), v in self._rows.items() if sid == submission_id]
        votes.sort(key=lambda v: v.cast_at)
        return votes

    async def get_vote(self, submission_id: str, verifier_id: str) -> Vote | None:
        return self._rows.get((submission_id, verifier_id))


class MemoryVerifierRegistry(VerifierRegistry):
    """Dict-backed verifier registry."""

    def __init__(self) -> None:
        self._rows: dict[str, Verifier] = {}

    async def register(self, verifier: Verifier) -> Verifier:
        self._rows[verifier.verifier_id] = verifier
        return verifier

    async def get_verifier(self, verifier_id: str) -> Verifier | None:
        return self._rows.get(verifier_id)

    async def list_verifiers(self) -> list[Verifier]:
        return sorted(self._rows.values(), key=lambda v: (v.registered_at, v.verifier_id))

    async def set_status(self, verifier_id: str, status: VerifierStatus) -> bool:
        verifier = self._rows.get(verifier_id)
        if verifier is None:
            return False
        self._rows[verifier_id] = verifier.model_copy(update={"status": status})
        return True
