"""
Fact Extraction - Candidate Memories from a Transcript

WHAT: Turns user messages into candidate facts (content + topics)
WHERE: agentmem/runtime/memory/extraction.py - first half of deterministic reconcile
WHO: MemoryManager in deterministic mode

Two extractors share one contract:
- HeuristicFactExtractor: rule-based, no provider; keeps first-person
  factual sentences from user messages and tags them from a keyword table
- ProviderFactExtractor: asks the reasoning provider for a JSON fact list

Extractors only propose facts. Deciding whether a fact is new is the
MemoryManager's job.
"""

from __future__ import annotations

import re
from typing import Dict, List, Protocol, Sequence

from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ProviderFailureError
from .models import Message, normalize_topics
from .model_engine import ProviderCaller
from .operations import load_json_payload
from .prompting import compose_fact_extraction_prompt

DEFAULT_TOPIC = "general"

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+|\n+")

_FACT_PATTERNS = re.compile(
    r"\b("
    r"my \w+(?: \w+)? (?:is|are|was|were)"
    r"|i am|i'm"
    r"|i (?:really |also |usually )?(?:like|love|enjoy|prefer|hate|dislike|adore)"
    r"|i (?:live|work|study|grew up|was born)"
    r"|i have|i've got|i own"
    r")\b",
    re.IGNORECASE,
)

TOPIC_PATTERNS: Dict[str, re.Pattern[str]] = {
    "hobbies": re.compile(
        r"\b(hik\w*|climb\w*|swim\w*|running|jogging|cycl\w*|reading|paint\w*|guitar|piano|chess|"
        r"gaming|video games|travel\w*|photograph\w*|garden\w*|fishing|skiing|surf\w*|yoga|dancing)\b"
    ),
    "personal_info": re.compile(r"\b(my name|name is|years old|birthday|was born|i am \d+)\b"),
    "location": re.compile(r"\b(i live|living in|moved to|grew up|my city|my country|my hometown)\b"),
    "work": re.compile(r"\b(i work|my job|job is|engineer|developer|my company|my boss|career|colleague\w*)\b"),
    "preferences": re.compile(r"\b(prefer\w*|favou?rite|like|love|enjoy|hate|dislike|adore)\b"),
    "food": re.compile(r"\b(food|eat\w*|vegetarian|vegan|coffee|tea|pizza|sushi|cook\w*)\b"),
    "family": re.compile(
        r"\b(wife|husband|partner|son|daughter|kids?|children|mother|father|mom|dad|sister|brother|family)\b"
    ),
    "health": re.compile(r"\b(allerg\w*|diet|health\w*|injur\w*|medication)\b"),
    "education": re.compile(r"\b(i study|student|university|college|school|degree|course)\b"),
    "pets": re.compile(r"\b(dog|cat|pet|puppy|kitten)s?\b"),
}


class FactCandidate(BaseModel):
    content: str = Field(min_length=1)
    topics: List[str] = Field(default_factory=list)

    @field_validator("topics", mode="before")
    @classmethod
    def _normalize(cls, value: object) -> List[str]:
        return normalize_topics(value)  # type: ignore[arg-type]


class FactList(BaseModel):
    facts: List[FactCandidate] = Field(default_factory=list)


class FactExtractor(Protocol):
    def extract(self, messages: Sequence[Message]) -> List[FactCandidate]:
        ...


def normalize_text(text: str) -> str:
    """Casefold and drop punctuation/extra whitespace for equivalence checks."""

    return " ".join(re.sub(r"[^\w\s]", " ", text.casefold()).split())


def infer_topics(text: str) -> List[str]:
    lowered = text.lower()
    topics = [name for name, pattern in TOPIC_PATTERNS.items() if pattern.search(lowered)]
    return normalize_topics(topics) or [DEFAULT_TOPIC]


class HeuristicFactExtractor:
    """Rule-based extractor for first-person factual statements."""

    def __init__(self, *, roles: Sequence[str] = ("user",), min_chars: int = 8) -> None:
        self.roles = tuple(roles)
        self.min_chars = min_chars

    def extract(self, messages: Sequence[Message]) -> List[FactCandidate]:
        facts: List[FactCandidate] = []
        seen: set[str] = set()
        for message in messages:
            if message.role not in self.roles:
                continue
            for sentence in _SENTENCE_SPLIT.split(message.text()):
                sentence = sentence.strip()
                if len(sentence) < self.min_chars or sentence.endswith("?"):
                    continue
                if not _FACT_PATTERNS.search(sentence):
                    continue
                key = normalize_text(sentence)
                if key in seen:
                    continue
                seen.add(key)
                content = sentence if sentence[-1] in ".!" else f"{sentence}."
                facts.append(FactCandidate(content=content, topics=infer_topics(sentence)))
        return facts


class ProviderFactExtractor:
    """Delegates fact extraction to the reasoning provider."""

    def __init__(self, caller: ProviderCaller) -> None:
        self._caller = caller

    def extract(self, messages: Sequence[Message]) -> List[FactCandidate]:
        if not messages:
            return []
        raw = self._caller.complete(
            compose_fact_extraction_prompt(messages),
            schema=FactList.model_json_schema(),
            purpose="fact_extraction",
        )
        payload = load_json_payload(raw, what="fact list")
        if isinstance(payload, list):
            payload = {"facts": payload}
        try:
            return FactList.model_validate(payload).facts
        except ValidationError as exc:
            raise ProviderFailureError(f"Provider returned an invalid fact list: {exc}") from exc


__all__ = [
    "FactCandidate",
    "FactList",
    "FactExtractor",
    "HeuristicFactExtractor",
    "ProviderFactExtractor",
    "infer_topics",
    "normalize_text",
]
