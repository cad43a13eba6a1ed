"""Supabase (hosted Postgres) stores.

Uses the tables of the KYC platform: ``kyc_document_submissions``,
``kyc_verification_votes`` and ``bank_registrations``. The votes table
must carry UNIQUE (document_id, bank_id); see
``kycquorum/config/supabase_schema.sql``. A unique violation (SQLSTATE
23505) is the "already voted" signal, and finalization is a filtered
UPDATE judged by the rows it returns.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

import httpx
from supabase import AsyncClient, PostgrestAPIError, acreate_client

from kycquorum.errors import StoreUnavailable, UnknownSubmission
from kycquorum.persistence.base import SubmissionStore, VerifierRegistry, VoteStore
from kycquorum.schemas.config import StoreConfig
from kycquorum.schemas.consensus import (
    Submission,
    SubmissionStatus,
    Verifier,
    VerifierStatus,
    Vote,
)

logger = logging.getLogger(__name__)

SUBMISSIONS_TABLE = "kyc_document_submissions"
VOTES_TABLE = "kyc_verification_votes"
VERIFIERS_TABLE = "bank_registrations"

_UNIQUE_VIOLATION = "23505"
_FOREIGN_KEY_VIOLATION = "23503"


async def create_supabase_client(config: StoreConfig) -> AsyncClient:
    """Create an async Supabase client from the env vars named in config."""
    try:
        url = os.environ[config.supabase_url_env]
        key = os.environ[config.supabase_key_env]
    except KeyError as exc:
        raise StoreUnavailable(
            f"Supabase credentials missing: set {exc.args[0]}"
        ) from exc
    return await acreate_client(url, key)


@asynccontextmanager
async def _store_errors(action: str) -> AsyncIterator[None]:
    """Translate client failures into StoreUnavailable."""
    try:
        yield
    except httpx.HTTPError as exc:
        logger.warning("Supabase %s failed: %s", action, exc)
        raise StoreUnavailable(f"Supabase {action} failed: {exc}") from exc
    except PostgrestAPIError as exc:
        if exc.code in (_UNIQUE_VIOLATION, _FOREIGN_KEY_VIOLATION):
            raise
        logger.warning("Supabase %s failed: %s", action, exc.message)
        raise StoreUnavailable(f"Supabase {action} failed: {exc.message}") from exc


def _row_to_submission(row: dict[str, Any]) -> Submission:
    return Submission(
        submission_id=row["id"],
        user_id=row.get("user_id") or "",
        document_type=row.get("document_type") or "",
        document_hash=row.get("document_hash") or "",
        status=SubmissionStatus(row["verification_status"]),
        created_at=row["submitted_at"],
        decided_at=row.get("verified_at"),
        rejection_reason=row.get("rejection_reason"),
    )


def _row_to_vote(row: dict[str, Any]) -> Vote:
    return Vote(
        submission_id=row["document_id"],
        verifier_id=row["bank_id"],
        verifier_name=row.get("bank_name") or "",
        decision=row["decision"],
        note=row.get("notes"),
        cast_at=row["created_at"],
    )


def _row_to_verifier(row: dict[str, Any]) -> Verifier:
    return Verifier(
        verifier_id=row["id"],
        name=row.get("name") or "",
        status=VerifierStatus(row["status"]),
        registered_at=row["created_at"],
    )


class SupabaseVoteStore(VoteStore):
    """Vote store backed by the ``kyc_verification_votes`` table."""

    def __init__(self, client: AsyncClient) -> None:
        self._client = client

    async def insert_vote(self, vote: Vote) -> bool:
        try:
            async with _store_errors("vote insert"):
                await self._client.table(VOTES_TABLE).insert({
                    "document_id": vote.submission_id,
                    "bank_id": vote.verifier_id,
                    "bank_name": vote.verifier_name,
                    "decision": vote.decision.value,
                    "notes": vote.note,
                    "created_at": vote.cast_at.isoformat(),
                }).execute()
        except PostgrestAPIError as exc:
            if exc.code == _FOREIGN_KEY_VIOLATION:
                raise UnknownSubmission(vote.submission_id) from exc
            return False
        return True

    async def list_votes(self, submission_id: str) -> list[Vote]:
        async with _store_errors("vote read"):
            resp = await (
                self._client.table(VOTES_TABLE)
                .select("*")
                .eq("document_id", submission_id)
                .order("created_at")
                .execute()
            )
        return [_row_to_vote(row) for row in resp.data]

    async def get_vote(self, submission_id: str, verifier_id: str) -> Vote | None:
        async with _store_errors("vote read"):
            resp = await (
                self._client.table(VOTES_TABLE)
                .select("*")
                .eq("document_id", submission_id)
                .eq("bank_id", verifier_id)
                .limit(1)
                .execute()
            )
        return _row_to_vote(resp.data[0]) if resp.data else None


class SupabaseSubmissionStore(SubmissionStore):
    """Submission store backed by the ``kyc_document_submissions`` table."""

    def __init__(self, client: AsyncClient) -> None:
        self._client = client

    async def create_submission(self, submission: Submission) -> Submission:
        try:
            async with _store_errors("submission insert"):
                await self._client.table(SUBMISSIONS_TABLE).insert({
                    "id": submission.submission_id,
                    "user_id": submission.user_id,
                    "document_type": submission.document_type,
                    "document_hash": submission.document_hash,
                    "verification_status": submission.status.value,
                    "submitted_at": submission.created_at.isoformat(),
                }).execute()
        except PostgrestAPIError as exc:
            if exc.code != _UNIQUE_VIOLATION:
                raise StoreUnavailable(f"Supabase submission insert failed: {exc.message}") from exc
            raise ValueError(
                f"Submission already exists: {submission.submission_id}"
            ) from exc
        logger.info("Created submission %s", submission.submission_id)
        return submission

    async def get_submission(self, submission_id: str) -> Submission | None:
        async with _store_errors("submission read"):
            resp = await (
                self._client.table(SUBMISSIONS_TABLE)
                .select("*")
                .eq("id", submission_id)
                .limit(1)
                .execute()
            )
        return _row_to_submission(resp.data[0]) if resp.data else None

    async def finalize(
        self,
        submission_id: str,
        status: SubmissionStatus,
        decided_at: datetime,
        rejection_reason: str | None = None,
    ) -> bool:
        async with _store_errors("submission finalize"):
            resp = await (
                self._client.table(SUBMISSIONS_TABLE)
                .update({
                    "verification_status": status.value,
                    "verified_at": decided_at.isoformat(),
                    "rejection_reason": rejection_reason,
                })
                .eq("id", submission_id)
                .eq("verification_status", SubmissionStatus.PENDING.value)
                .execute()
            )
        return bool(resp.data)

    async def list_submissions(
        self,
        status: SubmissionStatus | None = None,
        limit: int = 50,
    ) -> list[Submission]:
        query = self._client.table(SUBMISSIONS_TABLE).select("*")
        if status is not None:
            query = query.eq("verification_status", status.value)
        async with _store_errors("submission list"):
            resp = await query.order("submitted_at").limit(limit).execute()
        return [_row_to_submission(row) for row in resp.data]


class SupabaseVerifierRegistry(VerifierRegistry):
    """Verifier registry backed by the ``bank_registrations`` table."""

    def __init__(self, client: AsyncClient) -> None:
        self._client = client

    async def register(self, verifier: Verifier) -> Verifier:
        async with _store_errors("verifier register"):
            await self._client.table(VERIFIERS_TABLE).upsert({
                "id": verifier.verifier_id,
                "name": verifier.name,
                "status": verifier.status.value,
                "created_at": verifier.registered_at.isoformat(),
            }).execute()
        return verifier

    async def get_verifier(self, verifier_id: str) -> Verifier | None:
        async with _store_errors("verifier read"):
            resp = await (
                self._client.table(VERIFIERS_TABLE)
                .select("*")
                .eq("id", verifier_id)
                .limit(1)
                .execute()
            )
        return _row_to_verifier(resp.data[0]) if resp.data else None

    async def list_verifiers(self) -> list[Verifier]:
        async with _store_errors("verifier list"):
            resp = await (
                self._client.table(VERIFIERS_TABLE)
                .select("*")
                .order("created_at")
                .execute()
            )
        return [_row_to_verifier(row) for row in resp.data]

    async def set_status(self, verifier_id: str, status: VerifierStatus) -> bool:
        async with _store_errors("verifier update"):
            resp = await (
                self._client.table(VERIFIERS_TABLE)
                .update({"status": status.value})
                .eq("id", verifier_id)
                .execute()
            )
        return bool(resp.data)
