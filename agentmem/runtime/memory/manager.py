"""
Memory Manager - Reconcile Conversations into User Memories

WHAT: Decides which memories to create, update or delete from conversation content
WHERE: agentmem/runtime/memory/manager.py - above UserMemoryStore
WHO: Orchestrator after each turn; callers routing explicit memory commands
TIME: Deterministic (heuristic) <10ms; agentic 1-5s (one provider call)

Two modes behind one contract, ``reconcile(user_id, transcript)``:

1. Deterministic: an extractor proposes candidate facts; each candidate is
   created unless an existing memory is semantically equivalent. Never
   updates or deletes.
2. Agentic: the reasoning provider sees the full memory set plus the new
   turn and returns a versioned operation list, which is applied in order.

The whole read-decide-apply cycle for a user runs under a per-user lock, so
two reconciliations for the same user never interleave. The provider output
is parsed in full before the first write; a timeout or unparsable output
leaves the store untouched. Individual operations that fail (e.g. update of
a memory deleted meanwhile) are skipped and reported in the result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import numpy as np
from pydantic import ValidationError

from .errors import (
    BackendUnavailableError,
    InvalidArgumentError,
    NotFoundError,
    PartialApplicationError,
    ProviderFailureError,
    require_id,
)
from .extraction import FactCandidate, FactExtractor, HeuristicFactExtractor, normalize_text
from .locks import KeyedLock, user_key
from .model_engine import Embedder, ProviderCaller, call_with_timeout
from .models import Message, UserMemory
from .memory_store import UserMemoryStore
from .operations import (
    CreateMemory,
    DeleteAllMemories,
    DeleteMemory,
    MemoryOperation,
    UpdateMemory,
    operation_list_schema,
    parse_operation,
    parse_operation_list,
)
from .prompting import compose_agentic_memory_prompt
from .telemetry import NoOpTelemetryClient, TelemetryClient

logger = logging.getLogger(__name__)

Transcript = Union[str, Message, Mapping[str, Any], Sequence[Union[Message, Mapping[str, Any]]]]


class ReconcileMode(str, Enum):
    DETERMINISTIC = "deterministic"
    AGENTIC = "agentic"


@dataclass(slots=True)
class AppliedOperation:
    operation: MemoryOperation
    memory_id: Optional[str] = None
    removed: int = 0


@dataclass(slots=True)
class FailedOperation:
    operation: Union[MemoryOperation, Dict[str, Any]]
    reason: str
    error_type: str


@dataclass(slots=True)
class ReconcileResult:
    """Outcome of one reconcile/apply batch."""

    mode: ReconcileMode
    applied: List[AppliedOperation] = field(default_factory=list)
    failed: List[FailedOperation] = field(default_factory=list)
    duplicates_skipped: int = 0

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def partial(self) -> bool:
        return bool(self.failed) and bool(self.applied)

    @property
    def created_ids(self) -> List[str]:
        return [a.memory_id for a in self.applied if isinstance(a.operation, CreateMemory) and a.memory_id]

    def raise_for_failures(self) -> "ReconcileResult":
        if self.failed:
            raise PartialApplicationError(self)
        return self


def coerce_transcript(transcript: Transcript) -> List[Message]:
    if isinstance(transcript, str):
        return [Message(role="user", content=transcript)]
    if isinstance(transcript, (Message, Mapping)):
        return [Message.coerce(transcript)]
    return [Message.coerce(m) for m in transcript]


class MemoryManager:
    """
    Applies create/update/delete decisions to a user's memory set.

    Stateless apart from injected collaborators; safe to share across users
    and sessions.
    """

    def __init__(
        self,
        memory_store: UserMemoryStore,
        *,
        caller: ProviderCaller | None = None,
        extractor: FactExtractor | None = None,
        embedder: Embedder | None = None,
        similarity_threshold: float = 0.9,
        embed_timeout_s: Optional[float] = 30.0,
        default_mode: ReconcileMode = ReconcileMode.DETERMINISTIC,
        locks: KeyedLock | None = None,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self.store = memory_store
        self.caller = caller
        self.extractor = extractor or HeuristicFactExtractor()
        self.embedder = embedder
        self.similarity_threshold = similarity_threshold
        self.embed_timeout_s = embed_timeout_s
        self.default_mode = default_mode
        self._locks = locks or KeyedLock()
        self._telemetry = telemetry or NoOpTelemetryClient()

    # ------------------ public API ------------------
    def reconcile(
        self,
        user_id: str,
        transcript: Transcript,
        *,
        mode: ReconcileMode | str | None = None,
        session_id: Optional[str] = None,
    ) -> ReconcileResult:
        """
        Derive and apply memory operations from conversation content.

        Args:
            user_id: Owner of the memory set
            transcript: Messages, a single message, or plain user text
            mode: deterministic | agentic (defaults to the manager's mode)
            session_id: Provenance recorded on created memories

        Returns:
            ReconcileResult listing applied and failed operations

        Raises:
            ProviderFailureError: provider failed, timed out, or returned garbage
                (nothing has been written in that case)
        """
        require_id(user_id, "user_id")
        resolved = self._resolve_mode(mode)
        messages = coerce_transcript(transcript)

        with self._telemetry.span(
            "memory.reconcile",
            attributes={"mode": resolved.value, "message_count": len(messages)},
        ) as span:
            with self._locks.hold(user_key(user_id)):
                if resolved is ReconcileMode.AGENTIC:
                    result = self._reconcile_agentic(user_id, messages, session_id)
                else:
                    result = self._reconcile_deterministic(user_id, messages, session_id)
            span.set_attribute("applied", len(result.applied))
            span.set_attribute("failed", len(result.failed))

        logger.info(
            f"Reconciled memories for user {user_id} ({resolved.value}): "
            f"{len(result.applied)} applied, {len(result.failed)} failed"
        )
        return result

    def apply_operations(
        self,
        user_id: str,
        operations: Iterable[Union[MemoryOperation, Dict[str, Any]]],
        *,
        session_id: Optional[str] = None,
    ) -> ReconcileResult:
        """Apply an already-decided operation list under the user's lock."""

        require_id(user_id, "user_id")
        with self._locks.hold(user_key(user_id)):
            return self._apply(user_id, list(operations), session_id, ReconcileMode.AGENTIC)

    def _resolve_mode(self, mode: ReconcileMode | str | None) -> ReconcileMode:
        if mode is None:
            return self.default_mode
        try:
            return ReconcileMode(mode)
        except ValueError as exc:
            raise InvalidArgumentError(f"unknown reconcile mode: {mode!r}") from exc

    # ------------------ agentic ------------------
    def _reconcile_agentic(self, user_id: str, messages: List[Message], session_id: Optional[str]) -> ReconcileResult:
        if self.caller is None:
            raise ProviderFailureError("agentic reconcile requested but no reasoning provider is configured")
        existing = self.store.list(user_id)
        raw = self.caller.complete(
            compose_agentic_memory_prompt(existing, messages),
            schema=operation_list_schema(),
            purpose="agentic_memory",
        )
        op_list = parse_operation_list(raw)
        return self._apply(user_id, list(op_list.operations), session_id, ReconcileMode.AGENTIC)

    # ------------------ deterministic ------------------
    def _reconcile_deterministic(
        self, user_id: str, messages: List[Message], session_id: Optional[str]
    ) -> ReconcileResult:
        candidates = self.extractor.extract(messages)
        result = ReconcileResult(mode=ReconcileMode.DETERMINISTIC)
        if not candidates:
            return result

        known = [m.content for m in self.store.list(user_id)]
        fresh: List[FactCandidate] = []
        for candidate in candidates:
            if self._has_equivalent(candidate.content, known):
                result.duplicates_skipped += 1
                continue
            fresh.append(candidate)
            known.append(candidate.content)

        ops: List[MemoryOperation] = [CreateMemory(content=c.content, topics=c.topics) for c in fresh]
        applied = self._apply(user_id, ops, session_id, ReconcileMode.DETERMINISTIC)
        applied.duplicates_skipped = result.duplicates_skipped
        return applied

    def _has_equivalent(self, content: str, known: Sequence[str]) -> bool:
        if not known:
            return False
        if self.embedder is None:
            target = normalize_text(content)
            return any(normalize_text(k) == target for k in known)
        return self._max_similarity(content, known) >= self.similarity_threshold

    def _max_similarity(self, content: str, known: Sequence[str]) -> float:
        texts = [content, *known]
        try:
            vectors = call_with_timeout(
                lambda: self.embedder.embed_documents(texts),  # type: ignore[union-attr]
                self.embed_timeout_s,
                label="embedding call",
            )
        except ProviderFailureError:
            raise
        except Exception as exc:
            raise ProviderFailureError(f"embedding call failed: {exc}") from exc

        matrix = np.asarray(vectors, dtype=np.float32)
        if matrix.ndim != 2 or matrix.shape[0] != len(texts):
            raise ProviderFailureError(f"embedder returned shape {matrix.shape}, expected ({len(texts)}, d)")
        norms = np.linalg.norm(matrix, axis=1)
        norms[norms == 0] = 1.0
        unit = matrix / norms[:, None]
        sims = unit[1:] @ unit[0]
        return float(sims.max())

    # ------------------ application ------------------
    def _apply(
        self,
        user_id: str,
        operations: List[Union[MemoryOperation, Dict[str, Any]]],
        session_id: Optional[str],
        mode: ReconcileMode,
    ) -> ReconcileResult:
        result = ReconcileResult(mode=mode)
        for raw_op in operations:
            try:
                op = parse_operation(raw_op) if isinstance(raw_op, dict) else raw_op
            except ValidationError as exc:
                result.failed.append(FailedOperation(raw_op, f"invalid operation: {exc}", "InvalidArgumentError"))
                logger.warning(f"Skipping invalid memory operation for user {user_id}: {raw_op!r}")
                continue
            try:
                result.applied.append(self._apply_one(user_id, op, session_id))
            except (NotFoundError, InvalidArgumentError, BackendUnavailableError) as exc:
                result.failed.append(FailedOperation(op, str(exc), type(exc).__name__))
                logger.warning(f"Skipping memory operation {op.op} for user {user_id}: {exc}")
        return result

    def _apply_one(self, user_id: str, op: MemoryOperation, session_id: Optional[str]) -> AppliedOperation:
        if isinstance(op, CreateMemory):
            memory: UserMemory = self.store.add(user_id, op.content, op.topics, session_id=session_id)
            return AppliedOperation(op, memory_id=memory.memory_id)
        if isinstance(op, UpdateMemory):
            memory = self.store.replace(op.memory_id, user_id, op.content, op.topics)
            return AppliedOperation(op, memory_id=memory.memory_id)
        if isinstance(op, DeleteMemory):
            self.store.delete(op.memory_id, user_id)
            return AppliedOperation(op, memory_id=op.memory_id)
        if isinstance(op, DeleteAllMemories):
            removed = self.store.delete_all(user_id)
            return AppliedOperation(op, removed=removed)
        raise InvalidArgumentError(f"unsupported memory operation: {op!r}")


__all__ = [
    "MemoryManager",
    "ReconcileMode",
    "ReconcileResult",
    "AppliedOperation",
    "FailedOperation",
    "coerce_transcript",
]
