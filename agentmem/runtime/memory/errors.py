"""
Error Taxonomy - Failure Kinds Surfaced by the Memory Engine

WHAT: Exception hierarchy shared by stores, managers and retrieval
WHERE: agentmem/runtime/memory/errors.py - imported by every layer
WHO: Callers deciding whether to retry, fall back, or report

Kinds:
- NotFoundError: session/memory id absent (read paths, strict updates)
- InvalidArgumentError: malformed ids, non-positive limits, empty text
- BackendUnavailableError: storage I/O failure, never retried internally
- ProviderFailureError: reasoning/embedding call failed or returned garbage
- PartialApplicationError: some operations of a batch failed

Deleting an absent record is not an error anywhere in the engine.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .manager import ReconcileResult


class MemoryEngineError(Exception):
    """Base class for all engine errors."""


class NotFoundError(MemoryEngineError, LookupError):
    """Raised when a session or memory id does not exist for the user."""

    def __init__(self, kind: str, key: str, user_id: str) -> None:
        super().__init__(f"{kind} not found: {key!r} (user_id={user_id!r})")
        self.kind = kind
        self.key = key
        self.user_id = user_id


class InvalidArgumentError(MemoryEngineError, ValueError):
    """Raised for malformed identifiers, non-positive limits and empty text."""


class BackendUnavailableError(MemoryEngineError):
    """Raised when the durable backend fails to read or write."""


class ProviderFailureError(MemoryEngineError):
    """Raised when an external provider call fails or its output cannot be parsed."""


class ProviderTimeoutError(ProviderFailureError):
    """Raised when a provider call exceeds its time budget."""


class PartialApplicationError(MemoryEngineError):
    """Raised on request when a reconcile batch applied only some operations."""

    def __init__(self, result: "ReconcileResult") -> None:
        failed = len(result.failed)
        total = failed + len(result.applied)
        super().__init__(f"{failed} of {total} memory operations failed")
        self.result = result


def require_id(value: str | None, name: str) -> str:
    """Return ``value`` unchanged, or raise if it is blank."""

    if value is None or not str(value).strip():
        raise InvalidArgumentError(f"{name} must be a non-empty string")
    return str(value)


def require_positive(value: int, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidArgumentError(f"{name} must be a positive integer, got {value!r}")
    return value


__all__ = [
    "MemoryEngineError",
    "NotFoundError",
    "InvalidArgumentError",
    "BackendUnavailableError",
    "ProviderFailureError",
    "ProviderTimeoutError",
    "PartialApplicationError",
    "require_id",
    "require_positive",
]
