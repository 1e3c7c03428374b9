"""discoagent — bridges a Discord channel's web UI to a command-line AI assistant."""

__version__ = "0.1.0"

from discoagent.domain.feed import FeedReader, resolve_authors, select_window
from discoagent.domain.models import (
    AssistantError,
    AssistantReply,
    FailureKind,
    MessageRecord,
    RawMessage,
    UNKNOWN_AUTHOR,
)

__all__ = [
    "FeedReader",
    "resolve_authors",
    "select_window",
    "AssistantError",
    "AssistantReply",
    "FailureKind",
    "MessageRecord",
    "RawMessage",
    "UNKNOWN_AUTHOR",
]
