"""
Prompt Engineering - Memory Management, Retrieval and Summary Prompts

WHAT: Prompt templates and composition utilities for provider calls
WHERE: agentmem/runtime/memory/prompting.py - prompt generation layer
WHO: MemoryManager, ProviderFactExtractor, RetrievalEngine, SessionSummaryManager
TIME: Prompt assembly <1ms

Every prompt asks for JSON only; the callers parse it with pydantic and
raise ProviderFailureError when it does not match.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from .history import format_transcript
from .models import Message, UserMemory
from .templates import render_tool_guide

AGENTIC_MEMORY_PROMPT = (
    "You maintain long-term memories about a user.\n"
    "Decide which memory operations to apply given the existing memories and the new conversation.\n"
    "If nothing is worth remembering, return an empty operation list.\n"
    "Follow explicit instructions such as 'forget my name' or 'clear everything'.\n\n"
    "Available operations:\n{tools}\n\n"
    "<existing_memories>\n{memories}\n</existing_memories>\n\n"
    "<conversation>\n{conversation}\n</conversation>\n\n"
    'Return JSON: {{"version": "1", "operations": [...]}}'
)

FACT_EXTRACTION_PROMPT = (
    "Extract durable facts about the user from the conversation below: identity, "
    "preferences, hobbies, goals, relationships. Ignore small talk and the assistant's own statements.\n"
    "Write each fact as a short third-person statement with 1-3 lowercase topic tags.\n\n"
    "<conversation>\n{conversation}\n</conversation>\n\n"
    'Return JSON: {{"facts": [{{"content": "...", "topics": ["..."]}}]}}'
)

AGENTIC_RETRIEVAL_PROMPT = (
    "Select the memories relevant to the query, most relevant first.\n"
    "Only use memory ids from the list. {limit_clause}\n\n"
    "<memories>\n{memories}\n</memories>\n\n"
    "<query>\n{query}\n</query>\n\n"
    'Return JSON: {{"memory_ids": ["..."]}}'
)

SUMMARY_PROMPT = (
    "Summarize the conversation between a user and an assistant.\n"
    "Capture the user's goals, decisions made and open questions. Keep it under 120 words.\n\n"
    "<conversation>\n{conversation}\n</conversation>\n\n"
    'Return JSON: {{"summary": "...", "topics": ["..."]}}'
)


def format_memories(memories: Iterable[UserMemory]) -> str:
    lines = []
    for memory in memories:
        topics = ", ".join(memory.topics) or "-"
        lines.append(f"- id={memory.memory_id} | topics={topics} | {memory.content}")
    return "\n".join(lines) or "(none)"


def compose_agentic_memory_prompt(memories: Sequence[UserMemory], messages: Sequence[Message]) -> str:
    return AGENTIC_MEMORY_PROMPT.format(
        tools=render_tool_guide(),
        memories=format_memories(memories),
        conversation=format_transcript(messages),
    )


def compose_fact_extraction_prompt(messages: Sequence[Message]) -> str:
    return FACT_EXTRACTION_PROMPT.format(conversation=format_transcript(messages))


def compose_retrieval_prompt(memories: Sequence[UserMemory], query: str, limit: int | None = None) -> str:
    limit_clause = f"Return at most {limit} ids." if limit else ""
    return AGENTIC_RETRIEVAL_PROMPT.format(
        limit_clause=limit_clause,
        memories=format_memories(memories),
        query=query.strip(),
    )


def compose_summary_prompt(messages: Sequence[Message]) -> str:
    return SUMMARY_PROMPT.format(conversation=format_transcript(messages))


__all__ = [
    "AGENTIC_MEMORY_PROMPT",
    "FACT_EXTRACTION_PROMPT",
    "AGENTIC_RETRIEVAL_PROMPT",
    "SUMMARY_PROMPT",
    "format_memories",
    "compose_agentic_memory_prompt",
    "compose_fact_extraction_prompt",
    "compose_retrieval_prompt",
    "compose_summary_prompt",
]
