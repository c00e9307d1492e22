import pytest

from agentmem.runtime.memory.errors import ProviderFailureError
from agentmem.runtime.memory.operations import (
    CreateMemory,
    DeleteAllMemories,
    DeleteMemory,
    UpdateMemory,
    operation_list_schema,
    parse_operation,
    parse_operation_list,
    strip_code_fence,
)


def test_parse_fenced_operation_list():
    raw = """```json
{"version": "1", "operations": [
  {"op": "create", "content": "Likes to hike", "topics": ["hobbies"]},
  {"op": "update", "memory_id": "mem_1", "content": "Name is Jane"},
  {"op": "delete", "memory_id": "mem_2"},
  {"op": "delete_all"}
]}
```"""
    parsed = parse_operation_list(raw)
    assert [type(op) for op in parsed.operations] == [CreateMemory, UpdateMemory, DeleteMemory, DeleteAllMemories]
    assert parsed.operations[1].topics is None


def test_bare_list_is_version_one():
    parsed = parse_operation_list([{"op": "delete_all"}])
    assert parsed.version == "1"
    assert parsed.operations == [DeleteAllMemories()]


def test_empty_operation_list():
    assert parse_operation_list('{"version": "1", "operations": []}').operations == []


@pytest.mark.parametrize(
    "raw",
    [
        "not json at all",
        '{"version": "2", "operations": []}',
        '{"version": "1", "operations": [{"op": "rename", "memory_id": "x"}]}',
        '{"version": "1", "operations": [{"op": "update", "content": "no id"}]}',
    ],
)
def test_invalid_output_is_provider_failure(raw):
    with pytest.raises(ProviderFailureError):
        parse_operation_list(raw)


def test_parse_single_operation():
    assert parse_operation({"op": "delete", "memory_id": "mem_9"}) == DeleteMemory(memory_id="mem_9")


def test_strip_code_fence_leaves_plain_text():
    assert strip_code_fence("  plain  ") == "plain"
    assert strip_code_fence("```\n[]\n```") == "[]"


def test_schema_lists_every_operation():
    schema = operation_list_schema()
    assert "operations" in schema["properties"]
    names = set(schema.get("$defs", {}))
    assert {"CreateMemory", "UpdateMemory", "DeleteMemory", "DeleteAllMemories"} <= names
