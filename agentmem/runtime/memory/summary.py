"""
Session Summaries - Condensed Transcripts Stored on the Session

WHAT: Regenerates and persists a SessionSummary from a session's transcript
WHERE: agentmem/runtime/memory/summary.py - beside SessionManager
WHO: Orchestrator after a turn; callers needing a compact session digest
TIME: 1-5s (one provider call), persistence <50ms

A summary is always a full regeneration from the current transcript, never
an incremental patch, and it overwrites the previous one. The provider call
runs outside the session lock; only the final write takes it.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from .errors import InvalidArgumentError, NotFoundError, ProviderFailureError, require_positive
from .model_engine import ProviderCaller
from .models import Session, SessionSummary
from .operations import strip_code_fence
from .prompting import compose_summary_prompt
from .session import SessionManager
from .telemetry import NoOpTelemetryClient, TelemetryClient

logger = logging.getLogger(__name__)

SUMMARY_SCHEMA = {
    "type": "object",
    "properties": {
        "summary": {"type": "string"},
        "topics": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["summary"],
}


class SessionSummaryManager:
    def __init__(
        self,
        session_manager: SessionManager,
        caller: ProviderCaller,
        *,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self.sessions = session_manager
        self.caller = caller
        self._telemetry = telemetry or NoOpTelemetryClient()

    def summarize(self, session_id: str, user_id: str) -> SessionSummary:
        """Regenerate the summary from the full transcript and store it on the session."""

        session = self.sessions.get_session(session_id, user_id)
        if session is None:
            raise NotFoundError("session", session_id, user_id)
        if not session.messages:
            raise InvalidArgumentError(f"session {session_id} has no messages to summarize")

        with self._telemetry.span("memory.summarize", attributes={"message_count": len(session.messages)}):
            raw = self.caller.complete(
                compose_summary_prompt(session.messages),
                schema=SUMMARY_SCHEMA,
                purpose="session_summary",
            )
            summary = self._parse(raw, session)

        self.sessions.update(session_id, user_id, lambda s: s.model_copy(update={"summary": summary}))
        logger.info(f"Summarized session {session_id} ({summary.message_count} messages)")
        return summary

    def get_summary(self, session_id: str, user_id: str) -> Optional[SessionSummary]:
        session = self.sessions.get_session(session_id, user_id)
        return None if session is None else session.summary

    def maybe_refresh(self, session_id: str, user_id: str, every_n: int) -> Optional[SessionSummary]:
        """Regenerate once ``every_n`` messages have arrived since the last summary."""

        require_positive(every_n, "every_n")
        session = self.sessions.get_session(session_id, user_id)
        if session is None or not session.messages:
            return None
        summarized = session.summary.message_count if session.summary else 0
        if len(session.messages) - summarized < every_n:
            return None
        return self.summarize(session_id, user_id)

    @staticmethod
    def _parse(raw: str, session: Session) -> SessionSummary:
        text = strip_code_fence(raw)
        payload: Any
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            payload = {"summary": text}
        if isinstance(payload, str):
            payload = {"summary": payload}
        if not isinstance(payload, dict):
            raise ProviderFailureError(f"Provider returned an invalid summary: {type(payload).__name__}")

        content = str(payload.get("summary") or "").strip()
        if not content:
            raise ProviderFailureError("Provider returned an empty summary")
        topics = payload.get("topics") or []
        if not isinstance(topics, list):
            topics = [topics]
        return SessionSummary(
            session_id=session.session_id,
            user_id=session.user_id,
            summary=content,
            topics=[str(t) for t in topics],
            message_count=len(session.messages),
        )


__all__ = ["SessionSummaryManager", "SUMMARY_SCHEMA"]
