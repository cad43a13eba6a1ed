"""SQLite database layer for consensus persistence.

Manages the SQLite database connection and schema creation. Uses
aiosqlite for async access with WAL mode so that verifier sessions in
separate processes can share one database file.
"""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

# SQL schema for the consensus database
_SCHEMA = """
CREATE TABLE IF NOT EXISTS submissions (
    submission_id    TEXT PRIMARY KEY,
    user_id          TEXT NOT NULL DEFAULT '',
    document_type    TEXT NOT NULL DEFAULT '',
    document_hash    TEXT NOT NULL DEFAULT '',
    status           TEXT NOT NULL DEFAULT 'pending'
                     CHECK (status IN ('pending', 'verified', 'rejected')),
    created_at       TEXT NOT NULL,
    decided_at       TEXT,
    rejection_reason TEXT
);

CREATE TABLE IF NOT EXISTS votes (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    submission_id  TEXT NOT NULL REFERENCES submissions(submission_id),
    verifier_id    TEXT NOT NULL,
    verifier_name  TEXT NOT NULL DEFAULT '',
    decision       TEXT NOT NULL CHECK (decision IN ('approve', 'reject')),
    note           TEXT,
    cast_at        TEXT NOT NULL,
    UNIQUE (submission_id, verifier_id)
);

CREATE TABLE IF NOT EXISTS verifiers (
    verifier_id    TEXT PRIMARY KEY,
    name           TEXT NOT NULL DEFAULT '',
    status         TEXT NOT NULL DEFAULT 'pending',
    registered_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_votes_submission ON votes(submission_id);
CREATE INDEX IF NOT EXISTS idx_submissions_status ON submissions(status, created_at);
"""


async def init_db(db_path: str) -> aiosqlite.Connection:
    """Initialize the database connection and create tables if needed.

    Creates parent directories if they don't exist, enables WAL mode
    and foreign keys, then runs the schema DDL.

    Args:
        db_path: Path to the SQLite database file. Supports ~ expansion.
            ``:memory:`` opens a private in-memory database.

    Returns:
        An open aiosqlite connection ready for use.
    """
    if db_path == ":memory:":
        target = db_path
    else:
        resolved = Path(db_path).expanduser()
        resolved.parent.mkdir(parents=True, exist_ok=True)
        target = str(resolved)

    db = await aiosqlite.connect(target)
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA journal_mode=WAL")
    await db.execute("PRAGMA foreign_keys=ON")
    await db.execute("PRAGMA busy_timeout=5000")
    await db.executescript(_SCHEMA)
    await db.commit()

    logger.info("Consensus database initialized at %s", target)
    return db


async def close_db(db: aiosqlite.Connection) -> None:
    """Close the database connection."""
    await db.close()
