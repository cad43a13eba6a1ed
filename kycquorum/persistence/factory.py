"""Open the configured store backend.

Shared by the CLI and the HTTP server so both build the same
collaborators from one StoreConfig.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from kycquorum.consensus.protocol import ConsensusEngine
from kycquorum.persistence.base import SubmissionStore, VerifierRegistry, VoteStore
from kycquorum.schemas.config import Settings, StoreBackend, StoreConfig
from kycquorum.service.events import ConsensusEventEmitter

logger = logging.getLogger(__name__)


@dataclass
class Stores:
    """The three collaborators of the consensus engine."""

    votes: VoteStore
    submissions: SubmissionStore
    verifiers: VerifierRegistry


@asynccontextmanager
async def open_stores(config: StoreConfig) -> AsyncIterator[Stores]:
    """Open the backend named in config and close it on exit."""
    if config.backend == StoreBackend.MEMORY:
        from kycquorum.persistence.memory import (
            MemorySubmissionStore,
            MemoryVerifierRegistry,
            MemoryVoteStore,
        )

        submissions = MemorySubmissionStore()
        yield Stores(
            votes=MemoryVoteStore(submissions),
            submissions=submissions,
            verifiers=MemoryVerifierRegistry(),
        )
        return

    if config.backend == StoreBackend.SUPABASE:
        from kycquorum.persistence.supabase_store import (
            SupabaseSubmissionStore,
            SupabaseVerifierRegistry,
            SupabaseVoteStore,
            create_supabase_client,
        )

        client = await create_supabase_client(config)
        logger.info("Using Supabase store")
        try:
            yield Stores(
                votes=SupabaseVoteStore(client),
                submissions=SupabaseSubmissionStore(client),
                verifiers=SupabaseVerifierRegistry(client),
            )
        finally:
            await client.postgrest.aclose()
        return

    from kycquorum.persistence.database import close_db, init_db
    from kycquorum.persistence.sqlite import (
        SqliteSubmissionStore,
        SqliteVerifierRegistry,
        SqliteVoteStore,
    )

    db = await init_db(config.db_path)
    try:
        yield Stores(
            votes=SqliteVoteStore(db),
            submissions=SqliteSubmissionStore(db),
            verifiers=SqliteVerifierRegistry(db),
        )
    finally:
        await close_db(db)


def build_engine(
    stores: Stores,
    settings: Settings,
    emitter: ConsensusEventEmitter | None = None,
) -> ConsensusEngine:
    """Wire a ConsensusEngine to opened stores.

    The verifier registry is only enforced when the store config
    requires registered verifiers.
    """
    return ConsensusEngine(
        votes=stores.votes,
        submissions=stores.submissions,
        config=settings.consensus,
        verifiers=stores.verifiers if settings.store.require_registered_verifiers else None,
        emitter=emitter,
    )
