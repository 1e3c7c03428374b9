"""LLM adapters — assistant CLI runners."""

from discoagent.adapters.llm.claude_runner import (
    ClaudeRunner,
    available_agents,
    create_runner,
)

__all__ = [
    "ClaudeRunner",
    "available_agents",
    "create_runner",
]
