"""Outbound ports — interfaces for external system adapters."""

from typing import List, Optional, Protocol, runtime_checkable

from discoagent.domain.models import AssistantReply, RawMessage


@runtime_checkable
class FeedPort(Protocol):
    """Interface for the rendered chat feed (read and write)."""

    async def read_snapshot(self) -> List[RawMessage]: ...

    async def send_text(self, text: str) -> None: ...


@runtime_checkable
class RunnerPort(Protocol):
    """Interface for the external text-command assistant."""

    async def invoke(
        self,
        prompt: str,
        resume_token: Optional[str] = None,
        max_turns: Optional[int] = None,
    ) -> Optional[AssistantReply]: ...


@runtime_checkable
class SessionStorePort(Protocol):
    """Interface for channel → session token persistence."""

    def load(self) -> None: ...
    def get(self, channel_key: str) -> Optional[str]: ...
    def set(self, channel_key: str, token: str) -> None: ...
    def invalidate(self, channel_key: str) -> None: ...
