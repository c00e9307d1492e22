import json
import time

import pytest

from agentmem.runtime.memory.errors import (
    BackendUnavailableError,
    InvalidArgumentError,
    PartialApplicationError,
    ProviderFailureError,
    ProviderTimeoutError,
)
from agentmem.runtime.memory.extraction import ProviderFactExtractor
from agentmem.runtime.memory.manager import MemoryManager, ReconcileMode
from agentmem.runtime.memory.memory_store import UserMemoryStore
from agentmem.runtime.memory.model_engine import ProviderCaller
from agentmem.runtime.memory.retrieval import RetrievalEngine
from agentmem.runtime.memory.session import SessionManager
from agentmem.runtime.memory.telemetry import RecordingTelemetryClient


class ScriptedProvider:
    def __init__(self, *responses: str) -> None:
        self.responses = list(responses)
        self.prompts: list[str] = []
        self.schemas: list[dict | None] = []

    def complete(self, prompt: str, *, schema=None) -> str:
        self.prompts.append(prompt)
        self.schemas.append(schema)
        return self.responses.pop(0)


class SlowProvider:
    def __init__(self, delay: float, response: str) -> None:
        self.delay = delay
        self.response = response

    def complete(self, prompt: str, *, schema=None) -> str:
        time.sleep(self.delay)
        return self.response


class FlakyRecordStore:
    """Delegates to a real store but fails the Nth memory write."""

    def __init__(self, inner, fail_on: int) -> None:
        self._inner = inner
        self._fail_on = fail_on
        self.writes = 0

    def put_memory(self, memory) -> None:
        self.writes += 1
        if self.writes == self._fail_on:
            raise BackendUnavailableError("disk full")
        self._inner.put_memory(memory)

    def __getattr__(self, name):
        return getattr(self._inner, name)


class KeywordEmbedder:
    def embed_documents(self, texts):
        return [[1.0, 0.0] if "hik" in t.lower() else [0.0, 1.0] for t in texts]


def ops(*operations: dict) -> str:
    return json.dumps({"version": "1", "operations": list(operations)})


def test_deterministic_reconcile_hiking_scenario(store):
    sessions = SessionManager(store)
    memories = UserMemoryStore(store)
    manager = MemoryManager(memories)
    sessions.append_messages(
        "s1",
        "u1",
        [
            {"role": "user", "content": "My name is John Doe and I like to hike."},
            {"role": "assistant", "content": "Great!"},
        ],
    )

    result = manager.reconcile("u1", sessions.get_messages("s1", "u1"), session_id="s1")

    stored = memories.list("u1")
    assert len(stored) == 1
    assert "hobbies" in stored[0].topics
    assert stored[0].session_id == "s1"
    assert result.created_ids == [stored[0].memory_id]
    assert RetrievalEngine(memories).last_n("u1", 1) == stored


def test_deterministic_reconcile_skips_equivalent_text(store):
    memories = UserMemoryStore(store)
    manager = MemoryManager(memories)
    memories.add("u1", "I like to hike.")

    result = manager.reconcile("u1", "i like to hike")

    assert result.applied == []
    assert result.duplicates_skipped == 1
    assert len(memories.list("u1")) == 1


def test_deterministic_reconcile_uses_embeddings_when_available(store):
    memories = UserMemoryStore(store)
    manager = MemoryManager(memories, embedder=KeywordEmbedder(), similarity_threshold=0.9)
    memories.add("u1", "User enjoys hiking.")

    result = manager.reconcile("u1", "I like to hike. I have a cat named Tom.")

    assert result.duplicates_skipped == 1
    assert [m.content for m in memories.list("u1")] == ["User enjoys hiking.", "I have a cat named Tom."]


def test_deterministic_reconcile_ignores_small_talk(store):
    memories = UserMemoryStore(store)
    result = MemoryManager(memories).reconcile("u1", [{"role": "user", "content": "What time is it?"}])
    assert result.applied == [] and result.ok
    assert memories.list("u1") == []


def test_provider_fact_extractor(store):
    memories = UserMemoryStore(store)
    provider = ScriptedProvider(
        '```json\n{"facts": [{"content": "User likes jazz.", "topics": ["Music"]}]}\n```'
    )
    manager = MemoryManager(memories, extractor=ProviderFactExtractor(ProviderCaller(provider)))

    manager.reconcile("u1", "I like jazz a lot")

    stored = memories.list("u1")
    assert [(m.content, m.topics) for m in stored] == [("User likes jazz.", ["music"])]


def test_agentic_reconcile_applies_in_order_and_records_failures(store):
    memories = UserMemoryStore(store)
    existing = memories.add("u1", "User's name is John.", ["personal_info"])
    provider = ScriptedProvider(
        ops(
            {"op": "update", "memory_id": existing.memory_id, "content": "User's name is Jane."},
            {"op": "create", "content": "User likes tea.", "topics": ["food"]},
            {"op": "delete", "memory_id": "mem_missing"},
            {"op": "update", "memory_id": "mem_missing", "content": "Ghost"},
        )
    )
    manager = MemoryManager(memories, caller=ProviderCaller(provider))

    result = manager.reconcile("u1", "Actually my name is Jane. I like tea.", mode="agentic")

    assert existing.memory_id in provider.prompts[0]
    assert provider.schemas[0] is not None
    assert len(result.applied) == 3
    assert [f.error_type for f in result.failed] == ["NotFoundError"]
    assert result.partial
    with pytest.raises(PartialApplicationError) as excinfo:
        result.raise_for_failures()
    assert excinfo.value.result is result

    updated = memories.get(existing.memory_id, "u1")
    assert updated.content == "User's name is Jane."
    assert updated.created_at == existing.created_at
    assert sorted(m.content for m in memories.list("u1")) == ["User likes tea.", "User's name is Jane."]


def test_agentic_delete_all(store):
    memories = UserMemoryStore(store)
    memories.add("u1", "One")
    memories.add("u1", "Two")
    manager = MemoryManager(
        memories,
        caller=ProviderCaller(ScriptedProvider(ops({"op": "delete_all"}))),
        default_mode=ReconcileMode.AGENTIC,
    )

    result = manager.reconcile("u1", "Please forget everything about me.")

    assert result.applied[0].removed == 2
    assert memories.list("u1") == []


def test_unparsable_provider_output_writes_nothing(store):
    memories = UserMemoryStore(store)
    memories.add("u1", "Keep me")
    manager = MemoryManager(memories, caller=ProviderCaller(ScriptedProvider("sure, I'll remember that")))

    with pytest.raises(ProviderFailureError):
        manager.reconcile("u1", "I like tea.", mode="agentic")
    assert [m.content for m in memories.list("u1")] == ["Keep me"]


def test_schema_mismatch_writes_nothing(store):
    memories = UserMemoryStore(store)
    bad = json.dumps({"version": "1", "operations": [{"op": "create", "content": "ok"}, {"op": "explode"}]})
    manager = MemoryManager(memories, caller=ProviderCaller(ScriptedProvider(bad)))

    with pytest.raises(ProviderFailureError):
        manager.reconcile("u1", "hello", mode="agentic")
    assert memories.list("u1") == []


def test_provider_timeout_leaves_store_untouched(store):
    memories = UserMemoryStore(store)
    memories.add("u1", "Keep me")
    slow = SlowProvider(0.3, ops({"op": "delete_all"}))
    manager = MemoryManager(memories, caller=ProviderCaller(slow, timeout_s=0.05))

    with pytest.raises(ProviderTimeoutError):
        manager.reconcile("u1", "forget everything", mode="agentic")

    time.sleep(0.4)
    assert [m.content for m in memories.list("u1")] == ["Keep me"]


def test_agentic_without_provider_fails_fast(store):
    manager = MemoryManager(UserMemoryStore(store))
    with pytest.raises(ProviderFailureError):
        manager.reconcile("u1", "hello", mode=ReconcileMode.AGENTIC)


def test_apply_operations_accepts_mappings(store):
    memories = UserMemoryStore(store)
    manager = MemoryManager(memories)

    result = manager.apply_operations(
        "u1",
        [
            {"op": "create", "content": "Has a bike.", "topics": ["Hobbies"]},
            {"op": "explode"},
            {"op": "create", "content": "   "},
        ],
    )

    assert len(result.applied) == 1
    assert [f.error_type for f in result.failed] == ["InvalidArgumentError", "InvalidArgumentError"]
    assert [m.topics for m in memories.list("u1")] == [["hobbies"]]


def test_reconcile_emits_spans(store):
    telemetry = RecordingTelemetryClient()
    memories = UserMemoryStore(store)
    caller = ProviderCaller(ScriptedProvider(ops({"op": "create", "content": "Likes chess."})), telemetry=telemetry)
    manager = MemoryManager(memories, caller=caller, telemetry=telemetry)

    manager.reconcile("u1", "I like chess.", mode="agentic")

    assert telemetry.names() == ["memory.provider_complete", "memory.reconcile"]
    provider_attrs = telemetry.spans[0][1]
    reconcile_attrs = telemetry.spans[1][1]
    assert provider_attrs["purpose"] == "agentic_memory"
    assert reconcile_attrs["mode"] == "agentic"
    assert reconcile_attrs["applied"] == 1
    assert reconcile_attrs["success"] is True


def test_unknown_mode_rejected(store):
    with pytest.raises(InvalidArgumentError):
        MemoryManager(UserMemoryStore(store)).reconcile("u1", "hello", mode="psychic")


def test_backend_failure_skips_operation_and_continues(store):
    manager = MemoryManager(UserMemoryStore(FlakyRecordStore(store, fail_on=2)))

    result = manager.apply_operations(
        "u1",
        [{"op": "create", "content": c} for c in ("A", "B", "C")],
    )

    assert len(result.applied) == 2
    assert [f.error_type for f in result.failed] == ["BackendUnavailableError"]
    assert result.failed[0].operation.content == "B"
    assert result.partial
    assert sorted(m.content for m in UserMemoryStore(store).list("u1")) == ["A", "C"]
    with pytest.raises(PartialApplicationError):
        result.raise_for_failures()
