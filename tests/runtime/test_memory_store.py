import pytest

from agentmem.runtime.memory.errors import InvalidArgumentError, NotFoundError
from agentmem.runtime.memory.memory_store import UserMemoryStore


def test_add_normalizes_topics(store):
    memories = UserMemoryStore(store)
    memory = memories.add("u1", "  Likes to hike  ", ["Hobbies", "hobbies ", ""], session_id="s1")

    assert memory.memory_id.startswith("mem_")
    assert memory.content == "Likes to hike"
    assert memory.topics == ["hobbies"]
    assert memory.session_id == "s1"
    assert memories.get(memory.memory_id, "u1").to_doc() == memory.to_doc()


def test_add_rejects_blank_content(store):
    memories = UserMemoryStore(store)
    with pytest.raises(InvalidArgumentError):
        memories.add("u1", "   ")
    with pytest.raises(InvalidArgumentError):
        memories.add("", "content")
    assert memories.list("u1") == []


def test_replace_keeps_identity(store):
    memories = UserMemoryStore(store)
    original = memories.add("u1", "Lives in Porto", ["location"])
    updated = memories.replace(original.memory_id, "u1", "Lives in Lisbon")

    assert updated.memory_id == original.memory_id
    assert updated.created_at == original.created_at
    assert updated.updated_at > original.updated_at
    assert updated.topics == ["location"]
    assert memories.get(original.memory_id, "u1").content == "Lives in Lisbon"

    retagged = memories.replace(original.memory_id, "u1", "Lives in Lisbon", ["Location", "home"])
    assert retagged.topics == ["home", "location"]


def test_replace_missing_memory_raises(store):
    memories = UserMemoryStore(store)
    with pytest.raises(NotFoundError):
        memories.replace("mem_missing", "u1", "anything")


def test_replace_with_blank_content_raises(store):
    memories = UserMemoryStore(store)
    original = memories.add("u1", "Has a cat")
    with pytest.raises(InvalidArgumentError):
        memories.replace(original.memory_id, "u1", "")
    assert memories.get(original.memory_id, "u1").content == "Has a cat"


def test_memories_are_scoped_by_user(store):
    memories = UserMemoryStore(store)
    mine = memories.add("u1", "Mine")
    memories.add("u2", "Theirs")
    assert memories.get(mine.memory_id, "u2") is None
    with pytest.raises(NotFoundError):
        memories.replace(mine.memory_id, "u2", "stolen")
    assert [m.content for m in memories.list("u1")] == ["Mine"]


def test_delete_and_delete_all(store):
    memories = UserMemoryStore(store)
    first = memories.add("u1", "One")
    memories.add("u1", "Two")

    memories.delete(first.memory_id, "u1")
    memories.delete(first.memory_id, "u1")
    assert [m.content for m in memories.list("u1")] == ["Two"]

    assert memories.delete_all("u1") == 1
    assert memories.list("u1") == []
    assert memories.delete_all("u1") == 0
