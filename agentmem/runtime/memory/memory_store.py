"""
Memory Store - User-Scoped CRUD over UserMemory Records

WHAT: Validated create/read/replace/delete of durable user memories
WHERE: agentmem/runtime/memory/memory_store.py - above the Record Store
WHO: MemoryManager (reconciliation), RetrievalEngine, and direct callers
TIME: Write p99 <50ms, list p99 <25ms for a few hundred memories

Adds to the Record Store contract:
- content must be non-empty (InvalidArgumentError otherwise)
- topics normalized to a lowercase, deduplicated set on every write
- replace() is a strict update: NotFoundError when the memory is absent,
  memory_id and created_at preserved, updated_at moved forward
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from pydantic import ValidationError

from .errors import InvalidArgumentError, NotFoundError, require_id
from .models import UserMemory
from .record_store import RecordStore

logger = logging.getLogger(__name__)


class UserMemoryStore:
    """CRUD over UserMemory records, scoped by user."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    @property
    def record_store(self) -> RecordStore:
        return self._store

    def add(
        self,
        user_id: str,
        content: str,
        topics: Iterable[str] = (),
        *,
        session_id: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> UserMemory:
        """
        Create a new memory for a user.

        Args:
            user_id: Owner of the memory
            content: Free-text fact or insight (non-empty)
            topics: Topic tags, normalized on write
            session_id: Optional provenance pointer (not an ownership edge)
            metadata: Extra context stored alongside the memory

        Returns:
            The stored UserMemory with its generated memory_id
        """
        require_id(user_id, "user_id")
        memory = self._build(
            user_id=user_id,
            content=content,
            topics=list(topics or []),
            session_id=session_id,
            metadata=dict(metadata or {}),
        )
        self._store.put_memory(memory)
        logger.info(f"Stored memory {memory.memory_id} for user {user_id} with {len(memory.topics)} topics")
        return memory

    def put(self, memory: UserMemory) -> UserMemory:
        """Raw upsert of an already-built memory."""

        require_id(memory.memory_id, "memory_id")
        self._store.put_memory(memory)
        return memory

    def get(self, memory_id: str, user_id: str) -> Optional[UserMemory]:
        require_id(memory_id, "memory_id")
        require_id(user_id, "user_id")
        return self._store.get_memory(memory_id, user_id)

    def list(self, user_id: str) -> List[UserMemory]:
        require_id(user_id, "user_id")
        return self._store.list_memories(user_id)

    def replace(
        self,
        memory_id: str,
        user_id: str,
        new_content: str,
        new_topics: Optional[Iterable[str]] = None,
    ) -> UserMemory:
        """Strict update of content (and topics when given); the id never changes."""

        existing = self.get(memory_id, user_id)
        if existing is None:
            raise NotFoundError("memory", memory_id, user_id)
        try:
            updated = existing.with_content(new_content, None if new_topics is None else list(new_topics))
        except ValidationError as exc:
            raise InvalidArgumentError(f"invalid memory update for {memory_id}: {exc}") from exc
        self._store.put_memory(updated)
        logger.info(f"Replaced memory {memory_id} for user {user_id}")
        return updated

    def delete(self, memory_id: str, user_id: str) -> None:
        require_id(memory_id, "memory_id")
        require_id(user_id, "user_id")
        self._store.delete_memory(memory_id, user_id)

    def delete_all(self, user_id: str) -> int:
        require_id(user_id, "user_id")
        return self._store.delete_all_memories(user_id)

    @staticmethod
    def _build(**fields: object) -> UserMemory:
        try:
            return UserMemory(**fields)  # type: ignore[arg-type]
        except ValidationError as exc:
            raise InvalidArgumentError(f"invalid memory: {exc}") from exc


__all__ = ["UserMemoryStore"]
