"""
Arango Record Store - ArangoDB Persistence for Sessions and Memories

WHAT: RecordStore implementation over ArangoDB document collections
WHERE: agentmem/runtime/memory/arango_store.py - networked durable backend
WHO: Deployments that already run ArangoDB for agent memory
TIME: Write latency p99 ≤100ms, read latency p99 ≤250ms

Collections:
- sessions (document): one document per (user_id, session_id)
- user_memories (document): one document per (user_id, memory_id)
- schema_meta (document): single "schema" document holding the version

Documents are keyed by a SHA-1 of the composite key so the same record always
lands on the same ``_key``. Writes use waitForSync. ArangoDB has no
transactional DDL, so every migration step is idempotent and the version is
only bumped after the step completes; a failed step is simply re-run.
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from arango import ArangoClient
from arango.exceptions import ArangoError

from .config import StoreConfig
from .errors import BackendUnavailableError
from .models import Session, UserMemory

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CollectionDefinition:
    name: str
    indexes: List[Dict[str, Any]] = field(default_factory=list)


class ArangoDocumentClient:
    """Minimal document API the record store needs, over a python-arango database."""

    def __init__(self, db: Any, *, http_client: Any = None) -> None:
        self._db = db
        self._client = http_client

    @staticmethod
    def connect(cfg: StoreConfig) -> "ArangoDocumentClient":
        client = ArangoClient(hosts=cfg.arango_hosts)
        kwargs: Dict[str, Any] = {}
        if cfg.arango_username:
            kwargs["username"] = cfg.arango_username
            kwargs["password"] = cfg.arango_password or ""
        return ArangoDocumentClient(client.db(cfg.arango_database, **kwargs), http_client=client)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()

    def ensure_collection(self, definition: CollectionDefinition) -> None:
        if not self._db.has_collection(definition.name):
            self._db.create_collection(definition.name, sync=True)
        col = self._db.collection(definition.name)
        for index in definition.indexes:
            col.add_persistent_index(fields=index["fields"], unique=index.get("unique", False))

    def get_document(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        return self._db.collection(collection).get(key)

    def replace_document(self, collection: str, doc: Dict[str, Any]) -> None:
        self._db.collection(collection).insert(doc, overwrite=True, sync=True, silent=True)

    def delete_document(self, collection: str, key: str) -> None:
        self._db.collection(collection).delete(key, ignore_missing=True, sync=True)

    def find_by_user(self, collection: str, user_id: str) -> List[Dict[str, Any]]:
        aql = f"FOR d IN {collection} FILTER d.user_id == @uid SORT d.seq ASC RETURN d"
        return list(self._db.aql.execute(aql, bind_vars={"uid": user_id}))

    def remove_by_user(self, collection: str, user_id: str) -> int:
        aql = (
            f"FOR d IN {collection} FILTER d.user_id == @uid "
            f"REMOVE d IN {collection} OPTIONS {{ waitForSync: true }} RETURN 1"
        )
        return len(list(self._db.aql.execute(aql, bind_vars={"uid": user_id})))


def composite_key(user_id: str, record_id: str) -> str:
    return hashlib.sha1(f"{user_id}\x1f{record_id}".encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class ArangoMigration:
    version: int
    description: str
    apply: Callable[["ArangoRecordStore"], None]


def _create_collections(store: "ArangoRecordStore") -> None:
    store.client.ensure_collection(CollectionDefinition(name=store.SESSIONS))
    store.client.ensure_collection(CollectionDefinition(name=store.MEMORIES))


def _add_user_indexes(store: "ArangoRecordStore") -> None:
    for name in (store.SESSIONS, store.MEMORIES):
        store.client.ensure_collection(
            CollectionDefinition(name=name, indexes=[{"fields": ["user_id", "seq"], "unique": False}])
        )


ARANGO_MIGRATIONS: tuple[ArangoMigration, ...] = (
    ArangoMigration(1, "create sessions and user_memories collections", _create_collections),
    ArangoMigration(2, "add (user_id, seq) persistent indexes", _add_user_indexes),
)


class ArangoRecordStore:
    """Arango-backed RecordStore."""

    SESSIONS = "sessions"
    MEMORIES = "user_memories"
    SCHEMA = "schema_meta"
    SCHEMA_KEY = "schema"

    def __init__(self, client: Any, *, migrations: tuple[ArangoMigration, ...] = ARANGO_MIGRATIONS) -> None:
        self.client = client
        self._migrations = tuple(sorted(migrations, key=lambda m: m.version))
        self._seq_lock = threading.Lock()
        self._last_seq = 0

    @staticmethod
    def from_config(cfg: StoreConfig) -> "ArangoRecordStore":
        return ArangoRecordStore(client=ArangoDocumentClient.connect(cfg))

    def close(self) -> None:
        self.client.close()

    def _call(self, action: str, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except ArangoError as exc:
            logger.error(f"Arango record store failed to {action}: {exc}")
            raise BackendUnavailableError(f"failed to {action}: {exc}") from exc

    def _next_seq(self) -> int:
        with self._seq_lock:
            self._last_seq = max(self._last_seq + 1, time.time_ns())
            return self._last_seq

    # ------------------ schema ------------------
    def schema_version(self) -> int:
        def read() -> int:
            self.client.ensure_collection(CollectionDefinition(name=self.SCHEMA))
            doc = self.client.get_document(self.SCHEMA, self.SCHEMA_KEY)
            return int(doc["version"]) if doc else 0

        return self._call("read schema version", read)

    def upgrade_schema(self) -> List[int]:
        applied: List[int] = []
        current = self.schema_version()
        for migration in self._migrations:
            if migration.version <= current:
                continue
            self._call(f"apply migration {migration.version}", lambda m=migration: m.apply(self))
            self._call(
                "bump schema version",
                lambda v=migration.version: self.client.replace_document(
                    self.SCHEMA, {"_key": self.SCHEMA_KEY, "version": v}
                ),
            )
            current = migration.version
            logger.info(f"Applied schema migration {migration.version}: {migration.description}")
            applied.append(migration.version)
        return applied

    # ------------------ generic upsert ------------------
    def _upsert(self, collection: str, user_id: str, record_id: str, body: Dict[str, Any]) -> None:
        key = composite_key(user_id, record_id)
        existing = self._call(f"read {collection}/{key}", lambda: self.client.get_document(collection, key))
        if existing is not None:
            current = {k: v for k, v in existing.items() if not k.startswith("_") and k != "seq"}
            if current == body:
                return
            seq = existing["seq"]
        else:
            seq = self._next_seq()
        doc = {"_key": key, "seq": seq, **body}
        self._call(f"write {collection}/{key}", lambda: self.client.replace_document(collection, doc))

    # ------------------ sessions ------------------
    def put_session(self, session: Session) -> None:
        self._upsert(self.SESSIONS, session.user_id, session.session_id, session.to_doc())

    def get_session(self, session_id: str, user_id: str) -> Optional[Session]:
        key = composite_key(user_id, session_id)
        doc = self._call(f"read session {session_id}", lambda: self.client.get_document(self.SESSIONS, key))
        return Session.from_doc(doc) if doc else None

    def list_session_ids(self, user_id: str) -> List[str]:
        docs = self._call(f"list sessions of {user_id}", lambda: self.client.find_by_user(self.SESSIONS, user_id))
        return [d["session_id"] for d in docs]

    def delete_session(self, session_id: str, user_id: str) -> None:
        key = composite_key(user_id, session_id)
        self._call(f"delete session {session_id}", lambda: self.client.delete_document(self.SESSIONS, key))

    # ------------------ memories ------------------
    def put_memory(self, memory: UserMemory) -> None:
        self._upsert(self.MEMORIES, memory.user_id, memory.memory_id, memory.to_doc())

    def get_memory(self, memory_id: str, user_id: str) -> Optional[UserMemory]:
        key = composite_key(user_id, memory_id)
        doc = self._call(f"read memory {memory_id}", lambda: self.client.get_document(self.MEMORIES, key))
        return UserMemory.from_doc(doc) if doc else None

    def list_memories(self, user_id: str) -> List[UserMemory]:
        docs = self._call(f"list memories of {user_id}", lambda: self.client.find_by_user(self.MEMORIES, user_id))
        return [UserMemory.from_doc(d) for d in docs]

    def delete_memory(self, memory_id: str, user_id: str) -> None:
        key = composite_key(user_id, memory_id)
        self._call(f"delete memory {memory_id}", lambda: self.client.delete_document(self.MEMORIES, key))

    def delete_all_memories(self, user_id: str) -> int:
        removed = self._call(
            f"delete memories of {user_id}", lambda: self.client.remove_by_user(self.MEMORIES, user_id)
        )
        if removed:
            logger.info(f"Deleted {removed} memories for user {user_id}")
        return int(removed)


__all__ = [
    "ArangoRecordStore",
    "ArangoDocumentClient",
    "ArangoMigration",
    "ARANGO_MIGRATIONS",
    "CollectionDefinition",
    "composite_key",
]
