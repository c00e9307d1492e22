"""
Model Engine - Reasoning and Embedding Provider Interfaces

WHAT: Provider protocols, a timeout-bounded caller, and an optional local provider
WHERE: agentmem/runtime/memory/model_engine.py - boundary to external models
WHO: MemoryManager (agentic reconcile, fact extraction), RetrievalEngine
     (agentic retrieval), SessionSummaryManager
TIME: Dominated by the provider; the wrapper adds <1ms

The engine never calls a model vendor directly. Anything exposing
``complete(prompt, schema=...) -> str`` is a ReasoningProvider; anything
exposing ``embed_documents(texts)`` is an Embedder.

Provider calls are the only suspension points in the engine. ProviderCaller
runs them on a worker thread bounded by a timeout; on timeout the caller gets
ProviderTimeoutError and nothing downstream is applied. The worker thread is
abandoned, not killed, and its late result is discarded.

TransformersReasoningProvider loads a local causal LM through ``transformers``
(install the ``local-model`` extra). It is optional and imported lazily.
"""

from __future__ import annotations

import importlib
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol, Sequence, TypeVar, runtime_checkable

from .errors import ProviderFailureError, ProviderTimeoutError
from .telemetry import NoOpTelemetryClient, TelemetryClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ModelNotLoadedError(RuntimeError):
    """Raised when generation is attempted before the model is loaded."""


class MissingDependencyError(RuntimeError):
    """Raised when required model packages are unavailable in the environment."""


@runtime_checkable
class ReasoningProvider(Protocol):
    """Text completion with optional structured-output schema."""

    def complete(self, prompt: str, *, schema: Optional[Dict[str, Any]] = None) -> str:
        ...


@runtime_checkable
class Embedder(Protocol):
    """Dense embeddings, one row per input text."""

    def embed_documents(self, texts: Sequence[str]) -> Any:
        ...


def call_with_timeout(fn: Callable[[], T], timeout_s: Optional[float], *, label: str = "provider call") -> T:
    """Run ``fn`` and wait at most ``timeout_s`` seconds for its result."""

    if timeout_s is None:
        return fn()
    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="agentmem-provider")
    future = pool.submit(fn)
    try:
        return future.result(timeout=timeout_s)
    except FutureTimeout as exc:
        future.cancel()
        raise ProviderTimeoutError(f"{label} exceeded {timeout_s:.2f}s") from exc
    finally:
        pool.shutdown(wait=False)


class ProviderCaller:
    """Invokes a ReasoningProvider with a timeout, telemetry, and error mapping."""

    def __init__(
        self,
        provider: ReasoningProvider,
        *,
        timeout_s: Optional[float] = 30.0,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self.provider = provider
        self.timeout_s = timeout_s
        self._telemetry = telemetry or NoOpTelemetryClient()

    def complete(self, prompt: str, *, schema: Optional[Dict[str, Any]] = None, purpose: str = "completion") -> str:
        with self._telemetry.span(
            "memory.provider_complete",
            attributes={"purpose": purpose, "prompt_chars": len(prompt), "structured": schema is not None},
        ) as span:
            try:
                raw = call_with_timeout(
                    lambda: self.provider.complete(prompt, schema=schema),
                    self.timeout_s,
                    label=f"{purpose} provider call",
                )
            except ProviderFailureError:
                raise
            except Exception as exc:
                logger.error(f"Provider call for {purpose} failed: {exc}")
                raise ProviderFailureError(f"{purpose} provider call failed: {exc}") from exc
            if not isinstance(raw, str):
                raise ProviderFailureError(f"{purpose} provider returned {type(raw).__name__}, expected str")
            span.set_attribute("response_chars", len(raw))
            return raw


REQUIRED_PACKAGES = ("transformers", "torch")


@dataclass(slots=True)
class LocalModelConfig:
    """Configuration for a locally hosted causal language model."""

    model_id: str = "Qwen/Qwen2.5-1.5B-Instruct"
    device: str = "cpu"
    dtype: str = "float32"
    max_new_tokens: int = 512
    temperature: float = 0.0
    top_p: float = 1.0
    trust_remote_code: bool = False


class TransformersReasoningProvider:
    """ReasoningProvider backed by a local ``transformers`` causal LM."""

    def __init__(self, config: LocalModelConfig | None = None) -> None:
        self.config = config or LocalModelConfig()
        self._tokenizer: Any = None
        self._model: Any = None
        self._modules: Dict[str, Any] = {}

    @staticmethod
    def dependencies_available() -> bool:
        for package in REQUIRED_PACKAGES:
            try:
                importlib.import_module(package)
            except ImportError:
                return False
        return True

    def _ensure_dependencies(self) -> None:
        missing: list[str] = []
        modules: Dict[str, Any] = {}
        for package in REQUIRED_PACKAGES:
            try:
                modules[package] = importlib.import_module(package)
            except ImportError:
                missing.append(package)
        if missing:
            raise MissingDependencyError(
                "Missing model dependencies: "
                + ", ".join(missing)
                + ". Install with `pip install agentmem[local-model]`."
            )
        self._modules = modules

    def load(self) -> None:
        """Load tokenizer and model into memory."""

        self._ensure_dependencies()
        transformers = self._modules["transformers"]
        torch = self._modules["torch"]
        model_id = self.config.model_id
        self._tokenizer = transformers.AutoTokenizer.from_pretrained(
            model_id, trust_remote_code=self.config.trust_remote_code
        )
        self._model = transformers.AutoModelForCausalLM.from_pretrained(
            model_id,
            torch_dtype=getattr(torch, self.config.dtype, None),
            trust_remote_code=self.config.trust_remote_code,
        ).to(self.config.device)
        logger.info(f"Loaded local model {model_id} on {self.config.device}")

    def is_loaded(self) -> bool:
        return self._model is not None and self._tokenizer is not None

    def build_prompt(self, prompt: str, schema: Optional[Dict[str, Any]]) -> str:
        if schema is None:
            return prompt
        return (
            f"{prompt}\n\nRespond with a single JSON document matching this JSON schema "
            f"and nothing else:\n{json.dumps(schema, sort_keys=True)}\n"
        )

    def complete(self, prompt: str, *, schema: Optional[Dict[str, Any]] = None) -> str:
        if not self.is_loaded():
            raise ModelNotLoadedError("Local model is not loaded; call load() first")

        tokenizer = self._tokenizer
        model = self._model
        text = self.build_prompt(prompt, schema)
        if getattr(tokenizer, "chat_template", None):
            text = tokenizer.apply_chat_template(
                [{"role": "user", "content": text}], tokenize=False, add_generation_prompt=True
            )
        inputs = tokenizer(text, return_tensors="pt").to(self.config.device)
        kwargs: Dict[str, Any] = {"max_new_tokens": self.config.max_new_tokens}
        if self.config.temperature > 0:
            kwargs.update(do_sample=True, temperature=self.config.temperature, top_p=self.config.top_p)
        else:
            kwargs["do_sample"] = False
        output_ids = model.generate(**inputs, **kwargs)
        response = tokenizer.decode(output_ids[0][inputs["input_ids"].shape[-1] :], skip_special_tokens=True)
        return response.strip()


__all__ = [
    "ReasoningProvider",
    "Embedder",
    "ProviderCaller",
    "call_with_timeout",
    "LocalModelConfig",
    "TransformersReasoningProvider",
    "ModelNotLoadedError",
    "MissingDependencyError",
]
