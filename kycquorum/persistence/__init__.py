"""kyc-quorum persistence layer.

Provides the abstract store interfaces, SQLite and in-memory
implementations, and JSON/Markdown export of consensus records.
The Supabase backend lives in supabase_store and is imported lazily.
"""

from kycquorum.persistence.base import SubmissionStore, VerifierRegistry, VoteStore
from kycquorum.persistence.database import close_db, init_db
from kycquorum.persistence.export import export_json, export_markdown
from kycquorum.persistence.memory import (
    MemorySubmissionStore,
    MemoryVerifierRegistry,
    MemoryVoteStore,
)
from kycquorum.persistence.sqlite import (
    SqliteSubmissionStore,
    SqliteVerifierRegistry,
    SqliteVoteStore,
)

__all__ = [
    "MemorySubmissionStore",
    "MemoryVerifierRegistry",
    "MemoryVoteStore",
    "SqliteSubmissionStore",
    "SqliteVerifierRegistry",
    "SqliteVoteStore",
    "SubmissionStore",
    "VerifierRegistry",
    "VoteStore",
    "close_db",
    "export_json",
    "export_markdown",
    "init_db",
]
