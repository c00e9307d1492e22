import json
from datetime import datetime, timedelta, timezone

import pytest

from agentmem.runtime.memory.errors import InvalidArgumentError, ProviderFailureError
from agentmem.runtime.memory.memory_store import UserMemoryStore
from agentmem.runtime.memory.model_engine import ProviderCaller
from agentmem.runtime.memory.models import UserMemory
from agentmem.runtime.memory.retrieval import RetrievalEngine, RetrievalStrategy
from agentmem.runtime.memory.telemetry import RecordingTelemetryClient

BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


class ScriptedProvider:
    def __init__(self, *responses: str) -> None:
        self.responses = list(responses)
        self.prompts: list[str] = []

    def complete(self, prompt: str, *, schema=None) -> str:
        self.prompts.append(prompt)
        return self.responses.pop(0)


def put(memories: UserMemoryStore, memory_id: str, created: int, updated: int) -> UserMemory:
    return memories.put(
        UserMemory(
            memory_id=memory_id,
            user_id="u1",
            content=f"fact {memory_id}",
            created_at=BASE + timedelta(minutes=created),
            updated_at=BASE + timedelta(minutes=updated),
        )
    )


def ids(memories) -> list[str]:
    return [m.memory_id for m in memories]


def test_delete_all_then_first_n_is_empty(store):
    memories = UserMemoryStore(store)
    memories.add("u2", "Likes tea")
    memories.add("u2", "Has a dog")
    memories.delete_all("u2")

    assert RetrievalEngine(memories).first_n("u2", 10) == []


def test_last_n_orders_by_update_time(store):
    memories = UserMemoryStore(store)
    put(memories, "mem_a", created=0, updated=30)
    put(memories, "mem_b", created=10, updated=10)
    put(memories, "mem_c", created=20, updated=20)
    engine = RetrievalEngine(memories)

    assert ids(engine.last_n("u1", 2)) == ["mem_a", "mem_c"]
    assert ids(engine.first_n("u1", 2)) == ["mem_a", "mem_b"]
    assert ids(engine.last_n("u1", 10)) == ["mem_a", "mem_c", "mem_b"]


def test_ties_break_on_memory_id(store):
    memories = UserMemoryStore(store)
    put(memories, "mem_z", created=0, updated=0)
    put(memories, "mem_y", created=0, updated=0)
    engine = RetrievalEngine(memories)

    assert ids(engine.last_n("u1", 2)) == ["mem_y", "mem_z"]
    assert ids(engine.first_n("u1", 2)) == ["mem_y", "mem_z"]


def test_non_positive_limit_rejected(store):
    engine = RetrievalEngine(UserMemoryStore(store))
    with pytest.raises(InvalidArgumentError):
        engine.last_n("u1", 0)
    with pytest.raises(InvalidArgumentError):
        engine.first_n("u1", -3)


def test_agentic_keeps_provider_order_and_drops_unknown(store):
    memories = UserMemoryStore(store)
    put(memories, "mem_a", created=0, updated=0)
    put(memories, "mem_b", created=1, updated=1)
    provider = ScriptedProvider(
        json.dumps({"memory_ids": ["mem_b", "mem_unknown", "mem_a", "mem_b"]}),
        json.dumps(["mem_b", "mem_a"]),
    )
    telemetry = RecordingTelemetryClient()
    engine = RetrievalEngine(memories, caller=ProviderCaller(provider), telemetry=telemetry)

    assert ids(engine.agentic("u1", "what do I like?")) == ["mem_b", "mem_a"]
    assert ids(engine.agentic("u1", "what do I like?", limit=1)) == ["mem_b"]
    assert "fact mem_a" in provider.prompts[0]
    assert telemetry.names() == ["memory.retrieve_agentic", "memory.retrieve_agentic"]


def test_agentic_with_no_memories_skips_provider(store):
    provider = ScriptedProvider()
    engine = RetrievalEngine(UserMemoryStore(store), caller=ProviderCaller(provider))
    assert engine.agentic("u1", "anything") == []
    assert provider.prompts == []


def test_agentic_rejects_empty_query(store):
    engine = RetrievalEngine(UserMemoryStore(store), caller=ProviderCaller(ScriptedProvider()))
    with pytest.raises(InvalidArgumentError):
        engine.agentic("u1", "   ")


def test_agentic_unparsable_output(store):
    memories = UserMemoryStore(store)
    put(memories, "mem_a", created=0, updated=0)
    engine = RetrievalEngine(memories, caller=ProviderCaller(ScriptedProvider("mem_a please")))
    with pytest.raises(ProviderFailureError):
        engine.agentic("u1", "who am I")


def test_search_dispatches_by_strategy(store):
    memories = UserMemoryStore(store)
    put(memories, "mem_a", created=0, updated=5)
    put(memories, "mem_b", created=1, updated=1)
    provider = ScriptedProvider(json.dumps({"memory_ids": ["mem_b"]}))
    engine = RetrievalEngine(memories, caller=ProviderCaller(provider))

    assert ids(engine.search("u1", RetrievalStrategy.FIRST_N, limit=1)) == ["mem_a"]
    assert ids(engine.search("u1", "last_n", limit=1)) == ["mem_a"]
    assert ids(engine.search("u1", "agentic", query_text="bikes")) == ["mem_b"]
    with pytest.raises(InvalidArgumentError):
        engine.search("u1", RetrievalStrategy.LAST_N)


def test_search_rejects_unknown_strategy(store):
    with pytest.raises(InvalidArgumentError):
        RetrievalEngine(UserMemoryStore(store)).search("u1", "random", limit=1)
