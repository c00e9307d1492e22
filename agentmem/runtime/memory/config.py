"""
Configuration - Capability Flags and Backend Resolution

WHAT: Explicit capability configuration and storage settings
WHERE: agentmem/runtime/memory/config.py - passed into managers/orchestrator
WHO: Applications wiring sessions, memories and summaries together

Capabilities are an explicit value passed to the orchestrator, never flags
toggled on a shared agent object. Storage settings resolve from environment:

- AGENTMEM_BACKEND: "sql" (default) or "arango"
- AGENTMEM_DB_URL: SQLAlchemy URL for the sql backend (default sqlite file)
- ARANGO_HOSTS / ARANGO_DB_NAME / ARANGO_USERNAME / ARANGO_PASSWORD
- AGENTMEM_PROVIDER_TIMEOUT_S: seconds before a provider call is abandoned
- AGENTMEM_HISTORY_TOKEN_BUDGET: token cap on injected history ("none" disables)
- AGENTMEM_MEMORIES_IN_CONTEXT / AGENTMEM_SIMILARITY_THRESHOLD: retrieval and dedup tuning
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Literal, Mapping, Optional

DEFAULT_DB_URL = "sqlite:///agentmem.db"
DEFAULT_ARANGO_DB = "agentmem"

Backend = Literal["sql", "arango"]


def _env_flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(env: Mapping[str, str], name: str, default: Optional[float]) -> Optional[float]:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_optional_int(env: Mapping[str, str], name: str, default: Optional[int]) -> Optional[int]:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    if raw.strip().lower() in {"none", "off"}:
        return None
    return int(raw)


@dataclass(slots=True, frozen=True)
class CapabilityConfig:
    """Which memory behaviors are active for a turn."""

    enable_user_memories: bool = True  # deterministic reconcile after each turn
    enable_agentic_memory: bool = False  # provider decides create/update/delete
    enable_session_summaries: bool = False
    add_history_to_messages: bool = True
    num_history_messages: int = 20
    history_token_budget: Optional[int] = None
    summary_every_n_messages: int = 10
    memories_in_context: int = 10
    provider_timeout_s: Optional[float] = 30.0
    similarity_threshold: float = 0.9

    def __post_init__(self) -> None:
        if self.num_history_messages <= 0:
            raise ValueError("num_history_messages must be positive")
        if self.summary_every_n_messages <= 0:
            raise ValueError("summary_every_n_messages must be positive")
        if self.memories_in_context <= 0:
            raise ValueError("memories_in_context must be positive")
        if not 0.0 < self.similarity_threshold <= 1.0:
            raise ValueError("similarity_threshold must be in (0, 1]")

    def with_overrides(self, **changes: object) -> "CapabilityConfig":
        return replace(self, **changes)

    @staticmethod
    def from_env(env: Mapping[str, str] | None = None) -> "CapabilityConfig":
        env = os.environ if env is None else env
        base = CapabilityConfig()
        return CapabilityConfig(
            enable_user_memories=_env_flag(env, "AGENTMEM_USER_MEMORIES", base.enable_user_memories),
            enable_agentic_memory=_env_flag(env, "AGENTMEM_AGENTIC_MEMORY", base.enable_agentic_memory),
            enable_session_summaries=_env_flag(env, "AGENTMEM_SESSION_SUMMARIES", base.enable_session_summaries),
            add_history_to_messages=_env_flag(env, "AGENTMEM_ADD_HISTORY", base.add_history_to_messages),
            num_history_messages=_env_int(env, "AGENTMEM_NUM_HISTORY_MESSAGES", base.num_history_messages),
            history_token_budget=_env_optional_int(env, "AGENTMEM_HISTORY_TOKEN_BUDGET", base.history_token_budget),
            summary_every_n_messages=_env_int(env, "AGENTMEM_SUMMARY_EVERY_N", base.summary_every_n_messages),
            memories_in_context=_env_int(env, "AGENTMEM_MEMORIES_IN_CONTEXT", base.memories_in_context),
            provider_timeout_s=_env_float(env, "AGENTMEM_PROVIDER_TIMEOUT_S", base.provider_timeout_s),
            similarity_threshold=_env_float(env, "AGENTMEM_SIMILARITY_THRESHOLD", base.similarity_threshold),
        )


@dataclass(slots=True)
class StoreConfig:
    """Backend selection and connection settings for the Record Store."""

    backend: Backend = "sql"
    db_url: str = DEFAULT_DB_URL
    echo_sql: bool = False
    arango_hosts: str = "http://localhost:8529"
    arango_database: str = DEFAULT_ARANGO_DB
    arango_username: Optional[str] = None
    arango_password: Optional[str] = field(default=None, repr=False)

    @staticmethod
    def from_env(env: Mapping[str, str] | None = None) -> "StoreConfig":
        env = os.environ if env is None else env
        backend = env.get("AGENTMEM_BACKEND", "sql").strip().lower()
        if backend not in ("sql", "arango"):
            raise ValueError(f"Unsupported AGENTMEM_BACKEND={backend!r}; use 'sql' or 'arango'")
        skip_auth = _env_flag(env, "ARANGO_SKIP_AUTH", False)
        username = None if skip_auth else env.get("ARANGO_USERNAME")
        password = None if skip_auth else env.get("ARANGO_PASSWORD")
        return StoreConfig(
            backend=backend,  # type: ignore[arg-type]
            db_url=env.get("AGENTMEM_DB_URL", DEFAULT_DB_URL),
            echo_sql=_env_flag(env, "AGENTMEM_ECHO_SQL", False),
            arango_hosts=env.get("ARANGO_HOSTS", "http://localhost:8529"),
            arango_database=env.get("ARANGO_DB_NAME", DEFAULT_ARANGO_DB),
            arango_username=username,
            arango_password=password,
        )


__all__ = ["CapabilityConfig", "StoreConfig", "DEFAULT_DB_URL", "DEFAULT_ARANGO_DB"]
