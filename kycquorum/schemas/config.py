"""Configuration models for the consensus engine and its stores."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field


class StoreBackend(StrEnum):
    """Which persistence backend the CLI and server use."""

    SQLITE = "sqlite"
    MEMORY = "memory"
    SUPABASE = "supabase"


class ConsensusConfig(BaseModel):
    """Quorum rule parameters.

    Consensus is reached when at least ``min_votes`` votes are in and
    either the approval or the rejection ratio reaches ``threshold``.
    """

    min_votes: int = Field(default=2, ge=1, description="Minimum votes before quorum")
    threshold: float = Field(
        default=0.66, gt=0.0, le=1.0,
        description="Supermajority ratio required for a decision",
    )


class StoreConfig(BaseModel):
    """Persistence backend selection and connection settings."""

    backend: StoreBackend = Field(default=StoreBackend.SQLITE)
    db_path: str = Field(
        default="~/.kycquorum/kyc.db", description="SQLite database path",
    )
    supabase_url_env: str = Field(
        default="SUPABASE_URL", description="Env var holding the Supabase URL",
    )
    supabase_key_env: str = Field(
        default="SUPABASE_SERVICE_ROLE_KEY",
        description="Env var holding the Supabase service-role key",
    )
    require_registered_verifiers: bool = Field(
        default=False,
        description="Only approved verifiers in the registry may vote",
    )


class ServiceConfig(BaseModel):
    """Settings for the long-running HTTP service."""

    event_history: int = Field(
        default=1000, ge=1,
        description="Most recent events kept for WebSocket replay",
    )


class Settings(BaseModel):
    """Top-level settings loaded from defaults.toml."""

    consensus: ConsensusConfig = Field(default_factory=ConsensusConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    service: ServiceConfig = Field(default_factory=ServiceConfig)
