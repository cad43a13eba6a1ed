"""SQLite-backed vote, submission and verifier stores.

Wraps an aiosqlite connection initialized by database.init_db(). The
two atomic primitives map directly onto single SQL statements:
``INSERT ... ON CONFLICT DO NOTHING`` against the UNIQUE
(submission_id, verifier_id) constraint, and
``UPDATE ... WHERE status = 'pending'``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime

import aiosqlite

from kycquorum.errors import StoreUnavailable, UnknownSubmission
from kycquorum.persistence.base import SubmissionStore, VerifierRegistry, VoteStore
from kycquorum.schemas.consensus import (
    Submission,
    SubmissionStatus,
    Verifier,
    VerifierStatus,
    Vote,
    VoteDecision,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _store_errors(action: str) -> AsyncIterator[None]:
    """Translate backend failures into StoreUnavailable."""
    try:
        yield
    except aiosqlite.IntegrityError:
        raise
    except aiosqlite.Error as exc:
        logger.warning("SQLite %s failed: %s", action, exc)
        raise StoreUnavailable(f"SQLite {action} failed: {exc}") from exc


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _row_to_vote(row: aiosqlite.Row) -> Vote:
    return Vote(
        submission_id=row["submission_id"],
        verifier_id=row["verifier_id"],
        verifier_name=row["verifier_name"],
        decision=VoteDecision(row["decision"]),
        note=row["note"],
        cast_at=datetime.fromisoformat(row["cast_at"]),
    )


def _row_to_submission(row: aiosqlite.Row) -> Submission:
    return Submission(
        submission_id=row["submission_id"],
        user_id=row["user_id"],
        document_type=row["document_type"],
        document_hash=row["document_hash"],
        status=SubmissionStatus(row["status"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        decided_at=_parse_ts(row["decided_at"]),
        rejection_reason=row["rejection_reason"],
    )


def _row_to_verifier(row: aiosqlite.Row) -> Verifier:
    return Verifier(
        verifier_id=row["verifier_id"],
        name=row["name"],
        status=VerifierStatus(row["status"]),
        registered_at=datetime.fromisoformat(row["registered_at"]),
    )


class SqliteVoteStore(VoteStore):
    """Vote store backed by the ``votes`` table."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db
        self._db.row_factory = aiosqlite.Row

    async def insert_vote(self, vote: Vote) -> bool:
        async with _store_errors("vote insert"):
            try:
                cursor = await self._db.execute(
                    """
                    INSERT INTO votes
                        (submission_id, verifier_id, verifier_name,
                         decision, note, cast_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT (submission_id, verifier_id) DO NOTHING
                    """,
                    (
                        vote.submission_id,
                        vote.verifier_id,
                        vote.verifier_name,
                        vote.decision.value,
                        vote.note,
                        vote.cast_at.isoformat(),
                    ),
                )
            except aiosqlite.IntegrityError as exc:
                # Only the foreign key can fail here; the unique key is absorbed.
                raise UnknownSubmission(vote.submission_id) from exc
            inserted = cursor.rowcount == 1
            await cursor.close()
            await self._db.commit()
        return inserted

    async def list_votes(self, submission_id: str) -> list[Vote]:
        async with _store_errors("vote read"):
            async with self._db.execute(
                "SELECT * FROM votes WHERE submission_id = ? ORDER BY cast_at, id",
                (submission_id,),
            ) as cursor:
                rows = await cursor.fetchall()
        return [_row_to_vote(row) for row in rows]

    async def get_vote(self, submission_id: str, verifier_id: str) -> Vote | None:
        async with _store_errors("vote read"):
            async with self._db.execute(
                "SELECT * FROM votes WHERE submission_id = ? AND verifier_id = ?",
                (submission_id, verifier_id),
            ) as cursor:
                row = await cursor.fetchone()
        return _row_to_vote(row) if row else None


class SqliteSubmissionStore(SubmissionStore):
    """Submission store backed by the ``submissions`` table."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db
        self._db.row_factory = aiosqlite.Row

    async def create_submission(self, submission: Submission) -> Submission:
        async with _store_errors("submission insert"):
            try:
                await self._db.execute(
                    """
                    INSERT INTO submissions
                        (submission_id, user_id, document_type, document_hash,
                         status, created_at, decided_at, rejection_reason)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        submission.submission_id,
                        submission.user_id,
                        submission.document_type,
                        submission.document_hash,
                        submission.status.value,
                        submission.created_at.isoformat(),
                        submission.decided_at.isoformat() if submission.decided_at else None,
                        submission.rejection_reason,
                    ),
                )
            except aiosqlite.IntegrityError as exc:
                raise ValueError(
                    f"Submission already exists: {submission.submission_id}"
                ) from exc
            await self._db.commit()
        logger.info("Created submission %s", submission.submission_id)
        return submission

    async def get_submission(self, submission_id: str) -> Submission | None:
        async with _store_errors("submission read"):
            async with self._db.execute(
                "SELECT * FROM submissions WHERE submission_id = ?",
                (submission_id,),
            ) as cursor:
                row = await cursor.fetchone()
        return _row_to_submission(row) if row else None

    async def finalize(
        self,
        submission_id: str,
        status: SubmissionStatus,
        decided_at: datetime,
        rejection_reason: str | None = None,
    ) -> bool:
        async with _store_errors("submission finalize"):
            cursor = await self._db.execute(
                """
                UPDATE submissions
                SET status = ?, decided_at = ?, rejection_reason = ?
                WHERE submission_id = ? AND status = 'pending'
                """,
                (
                    status.value,
                    decided_at.isoformat(),
                    rejection_reason,
                    submission_id,
                ),
            )
            updated = cursor.rowcount == 1
            await cursor.close()
            await self._db.commit()
        return updated

    async def list_submissions(
        self,
        status: SubmissionStatus | None = None,
        limit: int = 50,
    ) -> list[Submission]:
        sql = "SELECT * FROM submissions"
        params: list[object] = []
        if status is not None:
            sql += " WHERE status = ?"
            params.append(status.value)
        sql += " ORDER BY created_at ASC LIMIT ?"
        params.append(limit)

        async with _store_errors("submission list"):
            async with self._db.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
        return [_row_to_submission(row) for row in rows]


class SqliteVerifierRegistry(VerifierRegistry):
    """Verifier registry backed by the ``verifiers`` table."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db
        self._db.row_factory = aiosqlite.Row

    async def register(self, verifier: Verifier) -> Verifier:
        async with _store_errors("verifier register"):
            await self._db.execute(
                """
                INSERT OR REPLACE INTO verifiers
                    (verifier_id, name, status, registered_at)
                VALUES (?, ?, ?, ?)
                """,
                (
                    verifier.verifier_id,
                    verifier.name,
                    verifier.status.value,
                    verifier.registered_at.isoformat(),
                ),
            )
            await self._db.commit()
        logger.info("Registered verifier %s (%s)", verifier.verifier_id, verifier.status)
        return verifier

    async def get_verifier(self, verifier_id: str) -> Verifier | None:
        async with _store_errors("verifier read"):
            async with self._db.execute(
                "SELECT * FROM verifiers WHERE verifier_id = ?",
                (verifier_id,),
            ) as cursor:
                row = await cursor.fetchone()
        return _row_to_verifier(row) if row else None

    async def list_verifiers(self) -> list[Verifier]:
        async with _store_errors("verifier list"):
            async with self._db.execute(
                "SELECT * FROM verifiers ORDER BY registered_at, verifier_id",
            ) as cursor:
                rows = await cursor.fetchall()
        return [_row_to_verifier(row) for row in rows]

    async def set_status(self, verifier_id: str, status: VerifierStatus) -> bool:
        async with _store_errors("verifier update"):
            cursor = await self._db.execute(
                "UPDATE verifiers SET status = ? WHERE verifier_id = ?",
                (status.value, verifier_id),
            )
            updated = cursor.rowcount == 1
            await cursor.close()
            await self._db.commit()
        return updated
