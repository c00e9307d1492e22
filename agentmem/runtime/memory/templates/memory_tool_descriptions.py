"""
Operation descriptions for agentic memory management.

Rendered into the agentic reconcile prompt so the reasoning provider knows
which operations exist and when to use each. Every entry maps onto one
variant of the operation-list schema in ``operations.py``.
"""

from __future__ import annotations

import json
from typing import Any, Dict

TOOL_DESCRIPTIONS: Dict[str, Dict[str, Any]] = {
    "create": {
        "description": (
            "Store a new durable fact about the user: identity, preferences, "
            "hobbies, goals, relationships or recurring context. Do NOT store "
            "small talk, one-off requests, or facts already present in memory."
        ),
        "parameters": {
            "content": "Short third-person statement, e.g. 'User likes to hike on weekends.'",
            "topics": "1-3 lowercase topic tags, e.g. ['hobbies'] or ['personal_info']",
        },
        "example": {"op": "create", "content": "User's name is John Doe.", "topics": ["personal_info"]},
    },
    "update": {
        "description": (
            "Rewrite an existing memory when the user corrects or refines it. "
            "Keep the memory_id; supply the complete new content, not a diff."
        ),
        "parameters": {
            "memory_id": "Id of an existing memory listed in the prompt",
            "content": "Complete replacement content",
            "topics": "Optional replacement topic tags; omit to keep the current ones",
        },
        "example": {"op": "update", "memory_id": "mem_123", "content": "User now lives in Lisbon."},
    },
    "delete": {
        "description": (
            "Remove a memory the user asked to forget or that is no longer true "
            "and has no replacement."
        ),
        "parameters": {"memory_id": "Id of an existing memory listed in the prompt"},
        "example": {"op": "delete", "memory_id": "mem_123"},
    },
    "delete_all": {
        "description": "Remove every memory for this user. Only when the user explicitly asks to clear everything.",
        "parameters": {},
        "example": {"op": "delete_all"},
    },
}


def render_tool_guide() -> str:
    """Human-readable operation guide embedded in prompts."""

    blocks = []
    for name, entry in TOOL_DESCRIPTIONS.items():
        params = entry["parameters"]
        param_lines = "\n".join(f"    - {key}: {text}" for key, text in params.items()) or "    (no parameters)"
        blocks.append(
            f"- {name}: {entry['description']}\n{param_lines}\n    example: {json.dumps(entry['example'])}"
        )
    return "\n".join(blocks)


__all__ = ["TOOL_DESCRIPTIONS", "render_tool_guide"]
