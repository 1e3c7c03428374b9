"""Domain data models — pure Python dataclasses."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

UNKNOWN_AUTHOR = "Unknown"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class RawMessage:
    """One content node as read from the rendered feed, before author resolution."""

    id: str
    content: str
    author: Optional[str] = None  # None when the container has no header of its own
    header_id: Optional[str] = None  # id of this message's own username header
    header_ref: Optional[str] = None  # username header referenced via aria-labelledby
    timestamp: Optional[str] = None


@dataclass
class MessageRecord:
    """A message handed downstream to the orchestration loop."""

    id: str
    author: str
    content: str
    timestamp: str
    header_ref: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: RawMessage) -> "MessageRecord":
        return cls(
            id=raw.id,
            author=(raw.author or "").strip() or UNKNOWN_AUTHOR,
            content=(raw.content or "").strip(),
            timestamp=raw.timestamp or _now_iso(),
            header_ref=raw.header_ref,
        )

    @property
    def has_author(self) -> bool:
        return self.author != UNKNOWN_AUTHOR


@dataclass
class AssistantReply:
    """Parsed result of one assistant invocation."""

    result: str
    cost: float = 0.0
    session_id: Optional[str] = None


class FailureKind(str, Enum):
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    INVALID_SESSION = "invalid_session"
    OTHER = "other"


class AssistantError(Exception):
    """Raised by a runner when an invocation fails."""

    def __init__(self, kind: FailureKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __repr__(self) -> str:
        return f"AssistantError({self.kind.value!r}, {self.message!r})"


class FeedReadError(Exception):
    """The rendered feed could not be read at all."""


class DispatchError(Exception):
    """A reply could not be written into the feed."""


class StartupError(Exception):
    """The host session could not be established."""
