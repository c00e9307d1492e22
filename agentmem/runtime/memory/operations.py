"""
Memory Operations - Versioned Operation-List Schema

WHAT: Tagged-variant operations (create/update/delete/delete_all) and their parser
WHERE: agentmem/runtime/memory/operations.py - contract between providers and the manager
WHO: MemoryManager (agentic mode) and callers routing explicit user commands
TIME: Parsing <1ms for typical batches

A reasoning provider never touches the store directly. Its free-form output is
parsed into an ``OperationList`` and the MemoryManager executes that list.
Changing the shape of an operation requires bumping ``OPERATION_SCHEMA_VERSION``.

Wire format (version "1")::

    {
      "version": "1",
      "operations": [
        {"op": "create", "content": "Likes to hike", "topics": ["hobbies"]},
        {"op": "update", "memory_id": "mem_...", "content": "Name is Jane"},
        {"op": "delete", "memory_id": "mem_..."},
        {"op": "delete_all"}
      ]
    }
"""

from __future__ import annotations

import json
import re
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from .errors import ProviderFailureError

OPERATION_SCHEMA_VERSION = "1"

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class CreateMemory(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: Literal["create"] = "create"
    content: str
    topics: List[str] = Field(default_factory=list)


class UpdateMemory(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: Literal["update"] = "update"
    memory_id: str
    content: str
    topics: Optional[List[str]] = None


class DeleteMemory(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: Literal["delete"] = "delete"
    memory_id: str


class DeleteAllMemories(BaseModel):
    model_config = ConfigDict(frozen=True)

    op: Literal["delete_all"] = "delete_all"


MemoryOperation = Annotated[
    Union[CreateMemory, UpdateMemory, DeleteMemory, DeleteAllMemories],
    Field(discriminator="op"),
]


class OperationList(BaseModel):
    """Ordered batch of memory operations produced by a provider."""

    version: Literal["1"] = OPERATION_SCHEMA_VERSION
    operations: List[MemoryOperation] = Field(default_factory=list)


_OPERATION_ADAPTER: TypeAdapter[MemoryOperation] = TypeAdapter(MemoryOperation)


def parse_operation(payload: Dict[str, Any]) -> MemoryOperation:
    """Validate a single operation mapping."""

    return _OPERATION_ADAPTER.validate_python(payload)


def strip_code_fence(text: str) -> str:
    """Remove a surrounding Markdown code fence, if any."""

    stripped = text.strip()
    match = _FENCE_RE.match(stripped)
    return match.group(1) if match else stripped


def load_json_payload(raw: str, *, what: str) -> Any:
    """Decode provider output as JSON, tolerating a fenced code block."""

    try:
        return json.loads(strip_code_fence(raw))
    except (TypeError, json.JSONDecodeError) as exc:
        raise ProviderFailureError(f"Provider returned non-JSON {what}: {exc}") from exc


def parse_operation_list(raw: str | Dict[str, Any] | List[Any]) -> OperationList:
    """
    Parse provider output into an OperationList.

    Accepts a JSON string (optionally fenced), a decoded mapping, or a bare list
    of operations (treated as version "1").

    Raises:
        ProviderFailureError: output is not JSON or does not match the schema
    """
    payload = load_json_payload(raw, what="operation list") if isinstance(raw, str) else raw
    if isinstance(payload, list):
        payload = {"version": OPERATION_SCHEMA_VERSION, "operations": payload}
    try:
        return OperationList.model_validate(payload)
    except ValidationError as exc:
        raise ProviderFailureError(f"Provider returned an invalid operation list: {exc}") from exc


def operation_list_schema() -> Dict[str, Any]:
    """JSON schema handed to providers that support structured output."""

    return OperationList.model_json_schema()


__all__ = [
    "OPERATION_SCHEMA_VERSION",
    "CreateMemory",
    "UpdateMemory",
    "DeleteMemory",
    "DeleteAllMemories",
    "MemoryOperation",
    "OperationList",
    "parse_operation",
    "parse_operation_list",
    "operation_list_schema",
    "load_json_payload",
    "strip_code_fence",
]
