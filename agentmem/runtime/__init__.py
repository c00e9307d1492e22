"""
Runtime Module

WHAT: Runtime subsystem for agent session storage and user memory
WHERE: agentmem/runtime/ - orchestration layer above the record stores
WHO: Agent loops recording turns and building prompt context
TIME: Turn recording <100ms avg without provider calls

Sessions hold the ordered transcript and opaque state of one conversation.
User memories are durable facts that outlive any single session. Both are
persisted through a RecordStore backend (SQL via SQLAlchemy, or ArangoDB).
"""

__all__ = ["memory"]
