"""Prompt-side descriptions of memory operations."""

from .memory_tool_descriptions import TOOL_DESCRIPTIONS, render_tool_guide  # noqa: F401

__all__ = ["TOOL_DESCRIPTIONS", "render_tool_guide"]
