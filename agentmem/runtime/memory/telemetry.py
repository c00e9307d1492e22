"""
Telemetry Collection - Spans Around Provider Calls and Reconciliation

WHAT: Lightweight spans recording duration, outcome and attributes
WHERE: agentmem/runtime/memory/telemetry.py - observability layer
WHO: MemoryManager, RetrievalEngine, SessionSummaryManager
TIME: Zero-overhead when disabled, <0.1ms overhead when enabled

Span names emitted by the engine:
- memory.provider_complete: one reasoning-provider call
- memory.reconcile: a full reconcile (extraction/decision + application)
- memory.retrieve_agentic: agentic retrieval
- memory.summarize: session summary regeneration
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import AbstractContextManager
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class TelemetrySpan(AbstractContextManager["TelemetrySpan"]):
    """Context manager capturing span metadata and duration."""

    def __init__(
        self,
        client: "TelemetryClient",
        name: str,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._client = client
        self.name = name
        self.attributes: Dict[str, Any] = dict(attributes or {})
        self._start: float = 0.0

    def __enter__(self) -> "TelemetrySpan":
        self._start = time.perf_counter()
        return self

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def __exit__(self, exc_type, exc, exc_tb) -> bool:
        self.attributes.setdefault("success", exc is None)
        if exc is not None:
            self.attributes.setdefault("error_type", type(exc).__name__)
        self.attributes["duration_ms"] = (time.perf_counter() - self._start) * 1000.0
        self._client.emit_span(self.name, self.attributes)
        return False


class TelemetryClient:
    """Base telemetry client; override `emit_span` for custom sinks."""

    def span(
        self,
        name: str,
        *,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> TelemetrySpan:
        return TelemetrySpan(self, name, attributes)

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:
        raise NotImplementedError


class NoOpTelemetryClient(TelemetryClient):
    """Telemetry client that silently discards spans."""

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:  # noqa: D401 - intentionally empty
        pass


class LoggingTelemetryClient(TelemetryClient):
    """Writes each span as one debug record (warning when the span failed)."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:
        payload = {k: attributes[k] for k in sorted(attributes)}
        level = logging.DEBUG if attributes.get("success", True) else logging.WARNING
        self._log.log(level, f"[telemetry] {name}: {payload}")


class RecordingTelemetryClient(TelemetryClient):
    """Keeps spans in memory; handy for diagnostics and tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.spans: List[Tuple[str, Dict[str, Any]]] = []

    def emit_span(self, name: str, attributes: Dict[str, Any]) -> None:
        with self._lock:
            self.spans.append((name, dict(attributes)))

    def names(self) -> List[str]:
        with self._lock:
            return [name for name, _ in self.spans]


__all__ = [
    "TelemetrySpan",
    "TelemetryClient",
    "NoOpTelemetryClient",
    "LoggingTelemetryClient",
    "RecordingTelemetryClient",
]
