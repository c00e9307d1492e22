"""
History Window - Rolling Chat History for Prompt Injection

WHAT: Bounded view over a session's messages for inclusion in a prompt
WHERE: agentmem/runtime/memory/history.py - used by SessionManager
WHO: Orchestrator building context when add_history_to_messages is enabled
TIME: O(n) in the window size

Implements FIFO semantics: the oldest messages fall out first when either
the message cap or the token budget is exceeded. Token counts are estimated
at ~4 characters per token.
"""

from __future__ import annotations

from collections import deque
from typing import Deque, Iterable

from .models import Message


def estimate_tokens(message: Message) -> int:
    return max(1, len(message.text()) // 4)


class HistoryWindow:
    """Maintains the rolling conversation context and budget."""

    def __init__(self, *, max_messages: int = 20, token_budget: int | None = None) -> None:
        if max_messages <= 0:
            raise ValueError("max_messages must be positive")
        self._messages: Deque[Message] = deque()
        self._max_messages = max_messages
        self._token_budget = token_budget

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def add(self, message: Message) -> None:
        """Append a message and enforce retention policies."""

        self._messages.append(message)
        self._enforce_limits()

    def extend(self, messages: Iterable[Message]) -> None:
        for message in messages:
            self.add(message)

    def _enforce_limits(self) -> None:
        while len(self._messages) > self._max_messages:
            self._messages.popleft()

        if self._token_budget is None:
            return

        total = sum(estimate_tokens(m) for m in self._messages)
        while self._messages and total > self._token_budget:
            expired = self._messages.popleft()
            total -= estimate_tokens(expired)


def format_transcript(messages: Iterable[Message]) -> str:
    """Render messages as ``[ROLE] text`` lines for prompts."""

    lines = []
    for message in messages:
        line = f"[{message.role.upper()}] {message.text()}"
        if message.tool_call is not None:
            line += f" (tool={message.tool_call.name})"
        lines.append(line)
    return "\n".join(lines)


__all__ = ["HistoryWindow", "estimate_tokens", "format_transcript"]
