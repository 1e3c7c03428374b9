"""Storage adapters."""

from discoagent.adapters.storage.session_store import JsonSessionStore

__all__ = ["JsonSessionStore"]
