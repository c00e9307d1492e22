import threading

import pytest

from agentmem.runtime.memory.errors import InvalidArgumentError, NotFoundError
from agentmem.runtime.memory.locks import KeyedLock
from agentmem.runtime.memory.models import Message
from agentmem.runtime.memory.session import SessionManager


def test_append_preserves_call_order(store):
    sessions = SessionManager(store)
    assert sessions.append_messages("s1", "u1", [{"role": "user", "content": "one"}]) == 1
    assert sessions.append_messages(
        "s1",
        "u1",
        [Message(role="assistant", content="two"), {"role": "user", "content": "three"}],
    ) == 3

    messages = sessions.get_messages("s1", "u1")
    assert [m.content for m in messages] == ["one", "two", "three"]
    assert [m.content for m in sessions.get_messages("s1", "u1", limit=2)] == ["two", "three"]


def test_concurrent_appends_keep_every_message_once(store):
    sessions = SessionManager(store)
    sessions.get_or_create("s1", user_id="u1")
    barrier = threading.Barrier(2)

    def writer(tag: str) -> None:
        barrier.wait()
        for i in range(20):
            sessions.append_messages("s1", "u1", [{"role": "user", "content": f"{tag}-{i}"}])

    threads = [threading.Thread(target=writer, args=(tag,)) for tag in ("a", "b")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    contents = [m.content for m in sessions.get_messages("s1", "u1")]
    assert len(contents) == 40
    assert len(set(contents)) == 40
    for tag in ("a", "b"):
        assert [c for c in contents if c.startswith(tag)] == [f"{tag}-{i}" for i in range(20)]


def test_get_or_create_is_idempotent(store):
    sessions = SessionManager(store)
    first = sessions.get_or_create("s1", user_id="u1")
    second = sessions.get_or_create("s1", user_id="u1")
    assert first.created_at == second.created_at
    assert sessions.list_sessions("u1") == ["s1"]

    generated = sessions.get_or_create(user_id="u1")
    assert generated.session_id and generated.session_id != "s1"


def test_reads_of_unknown_session_raise(store):
    sessions = SessionManager(store)
    with pytest.raises(NotFoundError):
        sessions.get_messages("nope", "u1")
    with pytest.raises(NotFoundError):
        sessions.get_state("nope", "u1")
    assert sessions.get_session("nope", "u1") is None
    assert sessions.history_for_prompt("nope", "u1") == ()


def test_invalid_arguments_rejected(store):
    sessions = SessionManager(store)
    sessions.get_or_create("s1", user_id="u1")
    with pytest.raises(InvalidArgumentError):
        sessions.get_messages("s1", "u1", limit=0)
    with pytest.raises(InvalidArgumentError):
        sessions.append_messages("", "u1", [{"role": "user", "content": "x"}])
    with pytest.raises(InvalidArgumentError):
        sessions.iter_messages("s1", "u1", start=-1)


def test_malformed_message_rejected_before_write(store):
    sessions = SessionManager(store)
    with pytest.raises(InvalidArgumentError):
        sessions.append_messages("s1", "u1", [{"role": "bot", "content": "x"}])
    with pytest.raises(InvalidArgumentError):
        sessions.append_messages("s1", "u1", [{"role": "user"}])
    assert sessions.get_session("s1", "u1") is None


def test_sessions_isolated_per_user(store):
    sessions = SessionManager(store)
    sessions.append_messages("shared", "u1", [{"role": "user", "content": "mine"}])
    sessions.append_messages("shared", "u2", [{"role": "user", "content": "theirs"}])
    assert [m.content for m in sessions.get_messages("shared", "u1")] == ["mine"]
    assert [m.content for m in sessions.get_messages("shared", "u2")] == ["theirs"]


def test_state_replace_and_merge(store):
    sessions = SessionManager(store)
    assert sessions.set_state("s1", "u1", {"step": 1, "mode": "a"}) == {"step": 1, "mode": "a"}
    assert sessions.set_state("s1", "u1", {"step": 2}) == {"step": 2}

    merged = sessions.set_state("s1", "u1", {"mode": "b"}, merge=lambda old, new: {**old, **new})
    assert merged == {"step": 2, "mode": "b"}
    assert sessions.get_state("s1", "u1") == {"step": 2, "mode": "b"}


def test_updated_at_moves_forward(store):
    sessions = SessionManager(store)
    created = sessions.get_or_create("s1", user_id="u1")
    sessions.append_messages("s1", "u1", [{"role": "user", "content": "x"}])
    assert sessions.get_session("s1", "u1").updated_at > created.updated_at


def test_iter_messages_slices_lazily(store):
    sessions = SessionManager(store)
    sessions.append_messages("s1", "u1", [{"role": "user", "content": str(i)} for i in range(5)])
    assert [m.content for m in sessions.iter_messages("s1", "u1", start=1, stop=3)] == ["1", "2"]
    assert [m.content for m in sessions.iter_messages("s1", "u1", start=3)] == ["3", "4"]


def test_history_for_prompt_drops_system_and_caps(store):
    sessions = SessionManager(store)
    sessions.append_messages(
        "s1",
        "u1",
        [
            {"role": "system", "content": "be nice"},
            {"role": "user", "content": "a"},
            {"role": "assistant", "content": "b"},
            {"role": "user", "content": "c"},
        ],
    )
    history = sessions.history_for_prompt("s1", "u1", max_messages=2)
    assert [m.content for m in history] == ["b", "c"]
    assert [m.role for m in sessions.history_for_prompt("s1", "u1", include_system=True)][0] == "system"


def test_delete_session(store):
    sessions = SessionManager(store)
    sessions.get_or_create("s1", user_id="u1")
    sessions.delete_session("s1", "u1")
    sessions.delete_session("s1", "u1")
    assert sessions.list_sessions("u1") == []


def test_keyed_lock_releases_idle_keys():
    locks = KeyedLock()
    with locks.hold("a"):
        with locks.hold("b"):
            assert locks.active_keys() == 2
    assert locks.active_keys() == 0
