"""Assistant agent — session bookkeeping around a RunnerPort."""

import logging
from typing import Optional

from discoagent.domain.models import (
    AssistantError,
    AssistantReply,
    FailureKind,
    MessageRecord,
)
from discoagent.ports.outbound import RunnerPort, SessionStorePort

logger = logging.getLogger(__name__)


class AssistantAgent:
    """Sends feed messages to the assistant and keeps the channel's session token.

    In conversation mode the stored token is passed as the resume token so the
    assistant keeps context across messages. In one-shot mode every message is
    independent and the turn limit applies.
    """

    def __init__(
        self,
        runner: RunnerPort,
        sessions: SessionStorePort,
        channel_key: str,
        conversation_mode: bool = True,
        max_turns: int = 5,
    ):
        self._runner = runner
        self._sessions = sessions
        self.channel_key = channel_key
        self.conversation_mode = conversation_mode
        self.max_turns = max_turns

    @staticmethod
    def build_prompt(message: MessageRecord) -> str:
        return f"[Discord message from {message.author}]: {message.content}"

    @property
    def session_id(self) -> Optional[str]:
        return self._sessions.get(self.channel_key)

    async def process(self, message: MessageRecord) -> Optional[AssistantReply]:
        """Run one message through the assistant.

        Raises AssistantError on failure. An invalid resume token is dropped
        and the call retried once without it.
        """
        prompt = self.build_prompt(message)
        token = self.session_id if self.conversation_mode else None
        max_turns = None if self.conversation_mode else self.max_turns

        if token:
            logger.info(f"MODE: resuming conversation with session ID: {token}")
        elif self.conversation_mode:
            logger.info("MODE: starting new conversation session")
        else:
            logger.info(f"MODE: one-shot, no conversation memory (max-turns={max_turns})")

        try:
            reply = await self._runner.invoke(prompt, resume_token=token, max_turns=max_turns)
        except AssistantError as e:
            if e.kind is not FailureKind.INVALID_SESSION or not token:
                raise
            logger.warning(f"Session {token} rejected ({e.message}), clearing and retrying")
            self._sessions.invalidate(self.channel_key)
            reply = await self._runner.invoke(prompt, resume_token=None, max_turns=max_turns)

        if reply and reply.session_id:
            self._sessions.set(self.channel_key, reply.session_id)
        return reply
