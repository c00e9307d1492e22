"""agentmem - persistent session storage and long-term user memory for agents."""

__version__ = "0.1.0"

__all__ = ["runtime"]
