"""
Memory Orchestrator - Central Coordination Point

WHAT: Facade tying sessions, user memories, retrieval and summaries together
WHERE: agentmem/runtime/memory/orchestrator.py - top of the memory stack
WHO: Entry point for agent loops recording turns and building prompt context
TIME: record_turn <100ms deterministic; +1 provider call per enabled agentic step

Capabilities are an explicit CapabilityConfig value handed to the
orchestrator, not flags flipped on a shared agent object. The orchestrator
holds no per-user or per-session state; everything is read from and
written to the injected Record Store.

Turn flow:
1. Append the turn's messages to the session (per-session lock)
2. Reconcile turns carrying a user message into memories (per-user lock):
   agentic mode sees the whole turn, deterministic mode only the user messages
3. Refresh the session summary once enough new messages accumulated
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .config import CapabilityConfig, StoreConfig
from .errors import InvalidArgumentError
from .extraction import FactExtractor
from .locks import KeyedLock
from .manager import MemoryManager, ReconcileMode, ReconcileResult
from .memory_store import UserMemoryStore
from .model_engine import Embedder, ProviderCaller, ReasoningProvider
from .models import Message, SessionSummary, UserMemory
from .prompting import format_memories
from .record_store import RecordStore, resolve_record_store
from .retrieval import RetrievalEngine
from .session import MessageLike, SessionManager
from .summary import SessionSummaryManager
from .telemetry import NoOpTelemetryClient, TelemetryClient

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TurnOutcome:
    message_count: int
    reconcile: Optional[ReconcileResult] = None
    summary: Optional[SessionSummary] = None


@dataclass(slots=True)
class PromptContext:
    """Everything an agent injects into its next prompt."""

    history: tuple[Message, ...] = ()
    summary: Optional[SessionSummary] = None
    memories: List[UserMemory] = field(default_factory=list)

    def memory_block(self) -> str:
        return format_memories(self.memories) if self.memories else ""


class MemoryOrchestrator:
    """Facade that coordinates session history, memory reconciliation and summaries."""

    def __init__(
        self,
        store: RecordStore,
        *,
        capabilities: CapabilityConfig | None = None,
        provider: ReasoningProvider | None = None,
        embedder: Embedder | None = None,
        extractor: FactExtractor | None = None,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        caps = capabilities or CapabilityConfig()
        if caps.enable_agentic_memory and provider is None:
            raise InvalidArgumentError("enable_agentic_memory requires a reasoning provider")
        if caps.enable_session_summaries and provider is None:
            raise InvalidArgumentError("enable_session_summaries requires a reasoning provider")

        self._capabilities = caps
        self._store = store
        self._telemetry = telemetry or NoOpTelemetryClient()
        locks = KeyedLock()
        caller = (
            ProviderCaller(provider, timeout_s=caps.provider_timeout_s, telemetry=self._telemetry)
            if provider is not None
            else None
        )
        self._sessions = SessionManager(store, locks=locks)
        self._memories = UserMemoryStore(store)
        self._manager = MemoryManager(
            self._memories,
            caller=caller,
            extractor=extractor,
            embedder=embedder,
            similarity_threshold=caps.similarity_threshold,
            embed_timeout_s=caps.provider_timeout_s,
            locks=locks,
            telemetry=self._telemetry,
        )
        self._retrieval = RetrievalEngine(self._memories, caller=caller, telemetry=self._telemetry)
        self._summaries = (
            SessionSummaryManager(self._sessions, caller, telemetry=self._telemetry) if caller is not None else None
        )

    @classmethod
    def from_config(
        cls,
        store_config: StoreConfig | None = None,
        capabilities: CapabilityConfig | None = None,
        **kwargs,
    ) -> "MemoryOrchestrator":
        """Resolve the configured backend, upgrade its schema, and wrap it."""

        return cls(resolve_record_store(store_config), capabilities=capabilities, **kwargs)

    @property
    def capabilities(self) -> CapabilityConfig:
        return self._capabilities

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    @property
    def memories(self) -> UserMemoryStore:
        return self._memories

    @property
    def memory_manager(self) -> MemoryManager:
        return self._manager

    @property
    def retrieval(self) -> RetrievalEngine:
        return self._retrieval

    @property
    def summaries(self) -> Optional[SessionSummaryManager]:
        return self._summaries

    def record_turn(self, session_id: str, user_id: str, messages: Iterable[MessageLike]) -> TurnOutcome:
        batch = [Message.coerce(m) for m in messages]
        count = self._sessions.append_messages(session_id, user_id, batch)
        outcome = TurnOutcome(message_count=count)

        caps = self._capabilities
        user_messages = [m for m in batch if m.role == "user"]
        if user_messages and (caps.enable_agentic_memory or caps.enable_user_memories):
            mode = ReconcileMode.AGENTIC if caps.enable_agentic_memory else ReconcileMode.DETERMINISTIC
            transcript = batch if mode is ReconcileMode.AGENTIC else user_messages
            outcome.reconcile = self._manager.reconcile(user_id, transcript, mode=mode, session_id=session_id)

        if caps.enable_session_summaries and self._summaries is not None:
            outcome.summary = self._summaries.maybe_refresh(session_id, user_id, caps.summary_every_n_messages)

        logger.debug(
            f"Recorded turn for session {session_id}: {len(batch)} messages, "
            f"reconciled={outcome.reconcile is not None}, summarized={outcome.summary is not None}"
        )
        return outcome

    def context_for_prompt(self, session_id: str, user_id: str) -> PromptContext:
        caps = self._capabilities
        history: tuple[Message, ...] = ()
        if caps.add_history_to_messages:
            history = self._sessions.history_for_prompt(
                session_id,
                user_id,
                max_messages=caps.num_history_messages,
                token_budget=caps.history_token_budget,
            )
        summary = self._summaries.get_summary(session_id, user_id) if self._summaries is not None else None
        memories: List[UserMemory] = []
        if caps.enable_user_memories or caps.enable_agentic_memory:
            memories = self._retrieval.last_n(user_id, caps.memories_in_context)
        return PromptContext(history=history, summary=summary, memories=memories)

    def close(self) -> None:
        self._store.close()


__all__ = ["MemoryOrchestrator", "TurnOutcome", "PromptContext"]
