"""
Memory Models - Type-safe data structures for sessions and user memories

WHAT: Pydantic models for messages, sessions, summaries and user memories
WHERE: agentmem/runtime/memory/models.py - data layer
WHO: Record stores, managers and retrieval creating/validating records
TIME: Model validation <1ms

All models include:
- Timestamp handling (timezone-aware UTC, ISO 8601 on the wire)
- Document conversion helpers (to_doc / from_doc) used by every backend
- Metadata dictionaries for extensibility

Notes:
- Messages are frozen; a session only ever grows its message list
- Topic tags are normalized (lowercase, deduplicated) on every write
- A memory update keeps memory_id and created_at, and moves updated_at forward
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import InvalidArgumentError

Role = Literal["user", "assistant", "tool", "system"]
MessageContent = Union[str, Dict[str, Any], List[Any]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def later_than(previous: datetime) -> datetime:
    """Current UTC time, nudged forward so it is strictly after ``previous``."""

    now = utcnow()
    if now <= previous:
        now = previous + timedelta(microseconds=1)
    return now


def generate_memory_id() -> str:
    return f"mem_{uuid.uuid4().hex}"


def normalize_topics(topics: Iterable[str] | None) -> List[str]:
    """Lowercase, strip and deduplicate topic tags; returns them sorted."""

    if not topics:
        return []
    if isinstance(topics, str):
        topics = [topics]
    cleaned = {str(t).strip().lower() for t in topics}
    cleaned.discard("")
    return sorted(cleaned)


def _parse_ts(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


class ToolCall(BaseModel):
    """Tool invocation recorded on a message."""

    model_config = ConfigDict(frozen=True)

    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[Any] = None


class Message(BaseModel):
    """A single conversational event; immutable once appended."""

    model_config = ConfigDict(frozen=True)

    message_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    role: Role
    content: MessageContent
    tool_call: Optional[ToolCall] = None
    created_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def coerce(cls, value: "Message | Dict[str, Any]") -> "Message":
        if isinstance(value, Message):
            return value
        try:
            return cls.model_validate(value)
        except ValidationError as exc:
            raise InvalidArgumentError(f"invalid message: {exc}") from exc

    def text(self) -> str:
        """Plain-text view of the content, used when building prompts."""

        if isinstance(self.content, str):
            return self.content
        if isinstance(self.content, dict) and isinstance(self.content.get("text"), str):
            return self.content["text"]
        return str(self.content)


class SessionSummary(BaseModel):
    """Condensed representation of a full session transcript."""

    session_id: str
    user_id: str
    summary: str = Field(min_length=1)
    topics: List[str] = Field(default_factory=list)
    message_count: int = 0
    generated_at: datetime = Field(default_factory=utcnow)

    @field_validator("topics", mode="before")
    @classmethod
    def _normalize_topics(cls, value: Any) -> List[str]:
        return normalize_topics(value)


class Session(BaseModel):
    """Conversation session: ordered messages, opaque state, optional summary."""

    session_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    messages: List[Message] = Field(default_factory=list)
    state: Dict[str, Any] = Field(default_factory=dict)
    summary: Optional[SessionSummary] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @staticmethod
    def new(session_id: str | None = None, *, user_id: str) -> "Session":
        return Session(session_id=session_id or str(uuid.uuid4()), user_id=user_id)

    def to_doc(self) -> Dict[str, Any]:
        """Convert to the JSON document stored by every backend."""
        return self.model_dump(mode="json")

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Session":
        """Create instance from a stored document (backend keys are ignored)."""
        payload = {k: v for k, v in doc.items() if not k.startswith("_") and k != "seq"}
        return cls.model_validate(payload)


class UserMemory(BaseModel):
    """
    Durable, user-scoped fact or insight independent of any single session.

    Examples:
    - "User's name is John Doe"
    - "Likes to hike on weekends"
    - "Prefers answers with code samples"
    """

    memory_id: str = Field(default_factory=generate_memory_id)
    user_id: str = Field(min_length=1)
    content: str
    topics: List[str] = Field(default_factory=list)
    session_id: Optional[str] = None  # provenance only, not ownership
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("memory content must be non-empty")
        return value.strip()

    @field_validator("topics", mode="before")
    @classmethod
    def _normalize_topics(cls, value: Any) -> List[str]:
        return normalize_topics(value)

    def with_content(self, content: str, topics: Iterable[str] | None = None) -> "UserMemory":
        """Return an updated copy; id and created_at are preserved."""

        return UserMemory(
            memory_id=self.memory_id,
            user_id=self.user_id,
            content=content,
            topics=self.topics if topics is None else topics,
            session_id=self.session_id,
            created_at=self.created_at,
            updated_at=later_than(self.updated_at),
            metadata=dict(self.metadata),
        )

    def to_doc(self) -> Dict[str, Any]:
        return {
            "memory_id": self.memory_id,
            "user_id": self.user_id,
            "content": self.content,
            "topics": self.topics,
            "session_id": self.session_id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "metadata": self.metadata,
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "UserMemory":
        return cls(
            memory_id=doc["memory_id"],
            user_id=doc["user_id"],
            content=doc["content"],
            topics=doc.get("topics", []),
            session_id=doc.get("session_id"),
            created_at=_parse_ts(doc["created_at"]),
            updated_at=_parse_ts(doc["updated_at"]),
            metadata=doc.get("metadata", {}),
        )


__all__ = [
    "Role",
    "ToolCall",
    "Message",
    "Session",
    "SessionSummary",
    "UserMemory",
    "generate_memory_id",
    "normalize_topics",
    "later_than",
    "utcnow",
]
