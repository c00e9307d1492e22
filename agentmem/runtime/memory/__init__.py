"""
Agent Memory System - Sessions, User Memories & Retrieval

WHAT: Local library for session history and long-term user memory (no network services)
WHERE: agentmem/runtime/memory/ - runtime memory subsystem
WHO: Agents persisting conversations and remembering facts about users
TIME: Session append p99 <50ms, memory list p99 <25ms

Record types:
- sessions: ordered messages, opaque state and an optional summary
- user memories: durable, user-scoped facts tagged with topics

Operations (local library):
- SessionManager: append_messages, get_messages, set_state, get_state
- UserMemoryStore: add, get, list, replace, delete, delete_all
- MemoryManager.reconcile(user_id, transcript): deterministic or agentic
- RetrievalEngine: last_n, first_n, agentic
- SessionSummaryManager: summarize, maybe_refresh
- MemoryOrchestrator: record_turn, context_for_prompt

Backends (resolve_record_store):
- SqlRecordStore: SQLAlchemy Core, SQLite by default
- ArangoRecordStore: ArangoDB via python-arango
"""

from .config import CapabilityConfig, StoreConfig  # noqa: F401
from .errors import (  # noqa: F401
    BackendUnavailableError,
    InvalidArgumentError,
    MemoryEngineError,
    NotFoundError,
    PartialApplicationError,
    ProviderFailureError,
    ProviderTimeoutError,
)
from .extraction import FactCandidate, HeuristicFactExtractor, ProviderFactExtractor  # noqa: F401
from .manager import MemoryManager, ReconcileMode, ReconcileResult  # noqa: F401
from .memory_store import UserMemoryStore  # noqa: F401
from .model_engine import (  # noqa: F401
    Embedder,
    LocalModelConfig,
    MissingDependencyError,
    ModelNotLoadedError,
    ProviderCaller,
    ReasoningProvider,
    TransformersReasoningProvider,
)
from .models import Message, Session, SessionSummary, ToolCall, UserMemory  # noqa: F401
from .operations import (  # noqa: F401
    CreateMemory,
    DeleteAllMemories,
    DeleteMemory,
    OperationList,
    UpdateMemory,
    parse_operation_list,
)
from .orchestrator import MemoryOrchestrator, PromptContext, TurnOutcome  # noqa: F401
from .record_store import RecordStore, resolve_record_store  # noqa: F401
from .retrieval import RetrievalEngine, RetrievalStrategy  # noqa: F401
from .session import SessionManager  # noqa: F401
from .summary import SessionSummaryManager  # noqa: F401
from .telemetry import (  # noqa: F401
    LoggingTelemetryClient,
    NoOpTelemetryClient,
    RecordingTelemetryClient,
    TelemetryClient,
    TelemetrySpan,
)

__all__ = [
    "CapabilityConfig",
    "StoreConfig",
    "MemoryEngineError",
    "NotFoundError",
    "InvalidArgumentError",
    "BackendUnavailableError",
    "ProviderFailureError",
    "ProviderTimeoutError",
    "PartialApplicationError",
    "FactCandidate",
    "HeuristicFactExtractor",
    "ProviderFactExtractor",
    "MemoryManager",
    "ReconcileMode",
    "ReconcileResult",
    "UserMemoryStore",
    "Embedder",
    "ReasoningProvider",
    "ProviderCaller",
    "LocalModelConfig",
    "TransformersReasoningProvider",
    "ModelNotLoadedError",
    "MissingDependencyError",
    "Message",
    "ToolCall",
    "Session",
    "SessionSummary",
    "UserMemory",
    "CreateMemory",
    "UpdateMemory",
    "DeleteMemory",
    "DeleteAllMemories",
    "OperationList",
    "parse_operation_list",
    "MemoryOrchestrator",
    "PromptContext",
    "TurnOutcome",
    "RecordStore",
    "resolve_record_store",
    "RetrievalEngine",
    "RetrievalStrategy",
    "SessionManager",
    "SessionSummaryManager",
    "TelemetryClient",
    "TelemetrySpan",
    "NoOpTelemetryClient",
    "LoggingTelemetryClient",
    "RecordingTelemetryClient",
]
