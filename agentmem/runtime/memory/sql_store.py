"""
SQL Record Store - SQLAlchemy Persistence for Sessions and Memories

WHAT: RecordStore implementation over any SQLAlchemy engine (SQLite default)
WHERE: agentmem/runtime/memory/sql_store.py - durable backend
WHO: Single-host deployments and tests (sqlite://), PostgreSQL in production
TIME: Upsert p99 <20ms on local SQLite, list p99 <10ms for 1k records

Tables:
- agentmem_sessions: one JSON document per (user_id, session_id)
- agentmem_memories: one JSON document per (user_id, memory_id)
- agentmem_schema_version: single-row schema version

Every write runs in its own transaction (engine.begin()), so a record is
either fully written or not at all. The ``seq`` column is assigned on first
insert and kept across upserts; it defines insertion order for list calls.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass
from typing import Any, Callable, ContextManager, Iterator, List, Optional

import sqlalchemy as sa
from sqlalchemy import event
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from .errors import BackendUnavailableError
from .models import Session, UserMemory

logger = logging.getLogger(__name__)

metadata = sa.MetaData()

schema_version_table = sa.Table(
    "agentmem_schema_version",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("version", sa.Integer, nullable=False),
)

sessions_table = sa.Table(
    "agentmem_sessions",
    metadata,
    sa.Column("seq", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column("user_id", sa.String(255), nullable=False),
    sa.Column("session_id", sa.String(255), nullable=False),
    sa.Column("doc", sa.JSON, nullable=False),
    sa.Column("updated_at", sa.String(40), nullable=False),
    sa.UniqueConstraint("user_id", "session_id", name="uq_agentmem_sessions_user_session"),
)

memories_table = sa.Table(
    "agentmem_memories",
    metadata,
    sa.Column("seq", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column("user_id", sa.String(255), nullable=False),
    sa.Column("memory_id", sa.String(255), nullable=False),
    sa.Column("doc", sa.JSON, nullable=False),
    sa.Column("updated_at", sa.String(40), nullable=False),
    sa.UniqueConstraint("user_id", "memory_id", name="uq_agentmem_memories_user_memory"),
)


@dataclass(frozen=True)
class Migration:
    version: int
    description: str
    apply: Callable[[Connection], None]


def _create_core_tables(conn: Connection) -> None:
    sessions_table.create(conn, checkfirst=True)
    memories_table.create(conn, checkfirst=True)


def _create_listing_indexes(conn: Connection) -> None:
    conn.execute(
        sa.text("CREATE INDEX IF NOT EXISTS ix_agentmem_sessions_user_seq ON agentmem_sessions (user_id, seq)")
    )
    conn.execute(
        sa.text(
            "CREATE INDEX IF NOT EXISTS ix_agentmem_memories_user_updated "
            "ON agentmem_memories (user_id, updated_at)"
        )
    )


def _enable_sqlite_transactional_ddl(engine: Engine) -> None:
    # pysqlite only opens transactions before DML; emit BEGIN ourselves so DDL rolls back too
    @event.listens_for(engine, "connect")
    def _autocommit_driver(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):  # type: ignore[no-untyped-def]
        conn.exec_driver_sql("BEGIN")


MIGRATIONS: tuple[Migration, ...] = (
    Migration(1, "create sessions and memories tables", _create_core_tables),
    Migration(2, "add per-user listing indexes", _create_listing_indexes),
)


class SqlRecordStore:
    """RecordStore backed by a SQLAlchemy engine."""

    def __init__(self, engine: Engine, *, migrations: tuple[Migration, ...] = MIGRATIONS) -> None:
        self.engine = engine
        self._migrations = tuple(sorted(migrations, key=lambda m: m.version))
        # SQLite allows a single writer; a StaticPool also shares one connection
        self._serial: Optional[threading.RLock] = (
            threading.RLock() if engine.dialect.name == "sqlite" else None
        )

    @staticmethod
    def from_url(url: str, *, echo: bool = False) -> "SqlRecordStore":
        kwargs: dict[str, Any] = {"echo": echo}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool
        engine = sa.create_engine(url, **kwargs)
        if engine.dialect.name == "sqlite":
            _enable_sqlite_transactional_ddl(engine)
        return SqlRecordStore(engine)

    def close(self) -> None:
        self.engine.dispose()

    # ------------------ plumbing ------------------
    def _exclusive(self) -> ContextManager[Any]:
        return self._serial if self._serial is not None else nullcontext()

    @contextmanager
    def _tx(self, action: str) -> Iterator[Connection]:
        with self._exclusive():
            try:
                with self.engine.begin() as conn:
                    yield conn
            except SQLAlchemyError as exc:
                logger.error(f"SQL record store failed to {action}: {exc}")
                raise BackendUnavailableError(f"failed to {action}: {exc}") from exc

    # ------------------ schema ------------------
    def schema_version(self) -> int:
        with self._tx("read schema version") as conn:
            return self._read_version(conn)

    @staticmethod
    def _read_version(conn: Connection) -> int:
        if not sa.inspect(conn).has_table(schema_version_table.name):
            return 0
        row = conn.execute(
            sa.select(schema_version_table.c.version).where(schema_version_table.c.id == 1)
        ).first()
        return int(row[0]) if row else 0

    def upgrade_schema(self) -> List[int]:
        applied: List[int] = []
        for migration in self._migrations:
            # One transaction per step: DDL and version bump commit together
            with self._tx(f"apply migration {migration.version}") as conn:
                schema_version_table.create(conn, checkfirst=True)
                current = self._read_version(conn)
                if migration.version <= current:
                    continue
                migration.apply(conn)
                if current == 0:
                    conn.execute(sa.insert(schema_version_table).values(id=1, version=migration.version))
                else:
                    conn.execute(
                        sa.update(schema_version_table)
                        .where(schema_version_table.c.id == 1)
                        .values(version=migration.version)
                    )
            logger.info(f"Applied schema migration {migration.version}: {migration.description}")
            applied.append(migration.version)
        return applied

    # ------------------ generic upsert ------------------
    @staticmethod
    def _upsert(conn: Connection, table: sa.Table, id_col: str, user_id: str, record_id: str, doc: dict, updated_at: str) -> None:
        key_filter = sa.and_(table.c.user_id == user_id, table.c[id_col] == record_id)
        existing = conn.execute(sa.select(table.c.seq, table.c.doc).where(key_filter)).first()
        if existing is None:
            conn.execute(
                sa.insert(table).values(
                    user_id=user_id, **{id_col: record_id}, doc=doc, updated_at=updated_at
                )
            )
        elif existing.doc != doc:
            conn.execute(sa.update(table).where(key_filter).values(doc=doc, updated_at=updated_at))

    # ------------------ sessions ------------------
    def put_session(self, session: Session) -> None:
        doc = session.to_doc()
        with self._tx(f"write session {session.session_id}") as conn:
            self._upsert(
                conn, sessions_table, "session_id", session.user_id, session.session_id, doc,
                session.updated_at.isoformat(),
            )

    def get_session(self, session_id: str, user_id: str) -> Optional[Session]:
        with self._tx(f"read session {session_id}") as conn:
            row = conn.execute(
                sa.select(sessions_table.c.doc).where(
                    sessions_table.c.user_id == user_id,
                    sessions_table.c.session_id == session_id,
                )
            ).first()
        return Session.from_doc(row.doc) if row else None

    def list_session_ids(self, user_id: str) -> List[str]:
        with self._tx(f"list sessions of {user_id}") as conn:
            rows = conn.execute(
                sa.select(sessions_table.c.session_id)
                .where(sessions_table.c.user_id == user_id)
                .order_by(sessions_table.c.seq)
            ).all()
        return [r.session_id for r in rows]

    def delete_session(self, session_id: str, user_id: str) -> None:
        with self._tx(f"delete session {session_id}") as conn:
            conn.execute(
                sa.delete(sessions_table).where(
                    sessions_table.c.user_id == user_id,
                    sessions_table.c.session_id == session_id,
                )
            )

    # ------------------ memories ------------------
    def put_memory(self, memory: UserMemory) -> None:
        with self._tx(f"write memory {memory.memory_id}") as conn:
            self._upsert(
                conn, memories_table, "memory_id", memory.user_id, memory.memory_id, memory.to_doc(),
                memory.updated_at.isoformat(),
            )

    def get_memory(self, memory_id: str, user_id: str) -> Optional[UserMemory]:
        with self._tx(f"read memory {memory_id}") as conn:
            row = conn.execute(
                sa.select(memories_table.c.doc).where(
                    memories_table.c.user_id == user_id,
                    memories_table.c.memory_id == memory_id,
                )
            ).first()
        return UserMemory.from_doc(row.doc) if row else None

    def list_memories(self, user_id: str) -> List[UserMemory]:
        with self._tx(f"list memories of {user_id}") as conn:
            rows = conn.execute(
                sa.select(memories_table.c.doc)
                .where(memories_table.c.user_id == user_id)
                .order_by(memories_table.c.seq)
            ).all()
        return [UserMemory.from_doc(r.doc) for r in rows]

    def delete_memory(self, memory_id: str, user_id: str) -> None:
        with self._tx(f"delete memory {memory_id}") as conn:
            conn.execute(
                sa.delete(memories_table).where(
                    memories_table.c.user_id == user_id,
                    memories_table.c.memory_id == memory_id,
                )
            )

    def delete_all_memories(self, user_id: str) -> int:
        with self._tx(f"delete memories of {user_id}") as conn:
            result = conn.execute(sa.delete(memories_table).where(memories_table.c.user_id == user_id))
        removed = int(result.rowcount or 0)
        if removed:
            logger.info(f"Deleted {removed} memories for user {user_id}")
        return removed


__all__ = ["SqlRecordStore", "Migration", "MIGRATIONS", "metadata"]
