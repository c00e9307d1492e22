"""
Retrieval Engine - Select User Memories for a Prompt

WHAT: Recency, chronological and provider-selected retrieval over a user's memories
WHERE: agentmem/runtime/memory/retrieval.py - read path above UserMemoryStore
WHO: Orchestrator building prompt context, agents answering "what do you know about me"
TIME: last_n/first_n <25ms; agentic 1-5s (one provider call)

Strategies:
- last_n: newest first by updated_at (ties broken by memory_id ascending)
- first_n: oldest first by created_at (ties broken by memory_id ascending)
- agentic: the reasoning provider ranks the memory set against a query and
  returns ids; unknown ids are dropped and duplicates removed

Retrieval never writes. Agentic results are not cached.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError

from .errors import InvalidArgumentError, ProviderFailureError, require_id, require_positive
from .memory_store import UserMemoryStore
from .model_engine import ProviderCaller
from .models import UserMemory
from .operations import load_json_payload
from .prompting import compose_retrieval_prompt
from .telemetry import NoOpTelemetryClient, TelemetryClient

logger = logging.getLogger(__name__)


class RetrievalStrategy(str, Enum):
    LAST_N = "last_n"
    FIRST_N = "first_n"
    AGENTIC = "agentic"


class MemorySelection(BaseModel):
    memory_ids: List[str] = Field(default_factory=list)


def _by_id(memories: List[UserMemory]) -> List[UserMemory]:
    return sorted(memories, key=lambda m: m.memory_id)


class RetrievalEngine:
    """Read-only selection of memories under a named strategy."""

    def __init__(
        self,
        memory_store: UserMemoryStore,
        *,
        caller: ProviderCaller | None = None,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self.store = memory_store
        self.caller = caller
        self._telemetry = telemetry or NoOpTelemetryClient()

    def last_n(self, user_id: str, limit: int) -> List[UserMemory]:
        """Most recently updated memories first."""

        require_positive(limit, "limit")
        memories = _by_id(self.store.list(user_id))
        memories.sort(key=lambda m: m.updated_at, reverse=True)
        return memories[:limit]

    def first_n(self, user_id: str, limit: int) -> List[UserMemory]:
        """Oldest memories first, by creation time."""

        require_positive(limit, "limit")
        memories = _by_id(self.store.list(user_id))
        memories.sort(key=lambda m: m.created_at)
        return memories[:limit]

    def agentic(self, user_id: str, query_text: str, *, limit: Optional[int] = None) -> List[UserMemory]:
        """
        Let the reasoning provider pick the memories relevant to ``query_text``.

        Args:
            user_id: Owner of the memory set
            query_text: Non-empty natural-language query
            limit: Optional cap on the number of memories returned

        Returns:
            Selected memories in the order the provider ranked them

        Raises:
            InvalidArgumentError: empty query or non-positive limit
            ProviderFailureError: no provider configured, timeout, or unparsable output
        """
        require_id(user_id, "user_id")
        if not isinstance(query_text, str) or not query_text.strip():
            raise InvalidArgumentError("query_text must be a non-empty string")
        if limit is not None:
            require_positive(limit, "limit")

        memories = self.store.list(user_id)
        if not memories:
            return []
        if self.caller is None:
            raise ProviderFailureError("agentic retrieval requested but no reasoning provider is configured")

        with self._telemetry.span(
            "memory.retrieve_agentic",
            attributes={"candidates": len(memories), "limit": limit},
        ) as span:
            raw = self.caller.complete(
                compose_retrieval_prompt(memories, query_text, limit),
                schema=MemorySelection.model_json_schema(),
                purpose="agentic_retrieval",
            )
            selected_ids = self._parse_selection(raw)

            index = {m.memory_id: m for m in memories}
            selected: List[UserMemory] = []
            seen: set[str] = set()
            for memory_id in selected_ids:
                if memory_id in seen or memory_id not in index:
                    continue
                seen.add(memory_id)
                selected.append(index[memory_id])
            if limit is not None:
                selected = selected[:limit]

            dropped = len(selected_ids) - len(seen)
            if dropped:
                logger.debug(f"Agentic retrieval ignored {dropped} unknown or repeated ids for user {user_id}")
            span.set_attribute("selected", len(selected))
        return selected

    def search(
        self,
        user_id: str,
        strategy: RetrievalStrategy | str = RetrievalStrategy.LAST_N,
        *,
        limit: Optional[int] = None,
        query_text: Optional[str] = None,
    ) -> List[UserMemory]:
        """Dispatch to the named strategy; ``limit`` is required for last_n/first_n."""

        try:
            resolved = RetrievalStrategy(strategy)
        except ValueError as exc:
            raise InvalidArgumentError(f"unknown retrieval strategy: {strategy!r}") from exc
        if resolved is RetrievalStrategy.AGENTIC:
            return self.agentic(user_id, query_text or "", limit=limit)
        if limit is None:
            raise InvalidArgumentError(f"{resolved.value} retrieval requires a limit")
        if resolved is RetrievalStrategy.FIRST_N:
            return self.first_n(user_id, limit)
        return self.last_n(user_id, limit)

    @staticmethod
    def _parse_selection(raw: str) -> List[str]:
        payload = load_json_payload(raw, what="memory selection")
        if isinstance(payload, list):
            payload = {"memory_ids": payload}
        try:
            return MemorySelection.model_validate(payload).memory_ids
        except ValidationError as exc:
            raise ProviderFailureError(f"Provider returned an invalid memory selection: {exc}") from exc


__all__ = ["RetrievalEngine", "RetrievalStrategy", "MemorySelection"]
