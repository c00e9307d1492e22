"""
Record Store - Durable Persistence Contract for Sessions and Memories

WHAT: Backend-independent contract for session and user-memory records
WHERE: agentmem/runtime/memory/record_store.py - below every manager
WHO: SessionManager, UserMemoryStore, RetrievalEngine (never callers directly)
TIME: Write p99 <50ms for embedded SQL, read p99 <25ms

Semantics every backend honours:
- put_* upserts by composite key (id, user_id); identical puts change nothing
- get_* returns None when the record is absent
- list_* returns records in insertion (first put) order
- delete_* of an absent record is a no-op
- writes are durable before returning; no write-behind buffering
- upgrade_schema() applies pending numbered migrations, each atomically,
  and is a no-op on a current schema

Backends:
- SqlRecordStore (sql_store.py): SQLAlchemy, SQLite by default
- ArangoRecordStore (arango_store.py): ArangoDB via python-arango
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol, runtime_checkable

from .config import StoreConfig
from .models import Session, UserMemory

logger = logging.getLogger(__name__)


@runtime_checkable
class RecordStore(Protocol):
    """Abstract interface for session and memory persistence."""

    def upgrade_schema(self) -> List[int]:
        """Apply pending migrations; returns the versions applied (empty if current)."""

    def schema_version(self) -> int:
        """Current schema version (0 for a fresh store)."""

    # ------------------ sessions ------------------
    def put_session(self, session: Session) -> None:
        """Upsert a session by (session_id, user_id)."""

    def get_session(self, session_id: str, user_id: str) -> Optional[Session]:
        """Point read; None when absent."""

    def list_session_ids(self, user_id: str) -> List[str]:
        """Session ids for a user in insertion order."""

    def delete_session(self, session_id: str, user_id: str) -> None:
        """Remove a session; absent ids are ignored."""

    # ------------------ memories ------------------
    def put_memory(self, memory: UserMemory) -> None:
        """Upsert a memory by (memory_id, user_id)."""

    def get_memory(self, memory_id: str, user_id: str) -> Optional[UserMemory]:
        """Point read; None when absent."""

    def list_memories(self, user_id: str) -> List[UserMemory]:
        """All memories of a user in insertion order."""

    def delete_memory(self, memory_id: str, user_id: str) -> None:
        """Remove one memory; absent ids are ignored."""

    def delete_all_memories(self, user_id: str) -> int:
        """Remove every memory of a user; returns the number removed."""

    def close(self) -> None:
        """Release backend resources."""


def resolve_record_store(config: StoreConfig | None = None, *, upgrade: bool = True) -> RecordStore:
    """Build the configured backend and (optionally) bring its schema current."""

    cfg = config or StoreConfig.from_env()
    store: RecordStore
    if cfg.backend == "sql":
        from .sql_store import SqlRecordStore

        store = SqlRecordStore.from_url(cfg.db_url, echo=cfg.echo_sql)
    elif cfg.backend == "arango":
        from .arango_store import ArangoRecordStore

        store = ArangoRecordStore.from_config(cfg)
    else:
        raise ValueError(f"Unsupported record store backend: {cfg.backend!r}")

    if upgrade:
        applied = store.upgrade_schema()
        if applied:
            logger.info(f"Record store schema upgraded through version {applied[-1]}")
    return store


__all__ = ["RecordStore", "resolve_record_store"]
