"""Response dispatcher — formats replies and decides whether to post or log them."""

import asyncio
import logging
from typing import List, Optional

from discoagent.domain.models import MessageRecord
from discoagent.ports.outbound import FeedPort

logger = logging.getLogger(__name__)

DEFAULT_MAX_LENGTH = 2000


def format_response(author: str, cost: Optional[float], result: str) -> str:
    cost_str = f"${cost:.2f}" if cost else "$0.00"
    return f"@{author} [{cost_str}] {result}"


def format_error(author: str, error: str) -> str:
    return f"@{author} Error: {error}"


def split_message(text: str, limit: int = DEFAULT_MAX_LENGTH) -> List[str]:
    """Split a reply into chunks of at most ``limit`` characters.

    Breaks on line boundaries so that joining the chunks with newlines gives
    back the original text, except that a trailing empty chunk (text ending in
    a newline right at a chunk boundary) is dropped since it cannot be posted.
    A single line longer than the limit is cut at the limit.
    """
    if len(text) <= limit:
        return [text]

    chunks: List[str] = []
    current: Optional[str] = None
    for line in text.split("\n"):
        while len(line) > limit:
            if current is not None:
                chunks.append(current)
                current = None
            chunks.append(line[:limit])
            line = line[limit:]
        if current is None:
            current = line
        elif len(current) + 1 + len(line) > limit:
            chunks.append(current)
            current = line
        else:
            current += "\n" + line

    if current:
        chunks.append(current)
    return chunks


class ResponseDispatcher:
    """Posts replies into the feed, or only logs them.

    A reply is logged instead of posted in testing mode, or when a mention
    filter is configured and the triggering message does not mention it.
    """

    def __init__(
        self,
        feed: FeedPort,
        filter_mentions: Optional[str] = None,
        testing_mode: bool = False,
        response_delay: float = 2.0,
        chunk_delay: float = 0.5,
        max_length: int = DEFAULT_MAX_LENGTH,
    ):
        self._feed = feed
        self.filter_mentions = filter_mentions
        self.testing_mode = testing_mode
        self.response_delay = response_delay
        self.chunk_delay = chunk_delay
        self.max_length = max_length

    def should_post(self, message: MessageRecord) -> bool:
        if not self.filter_mentions:
            return True
        return (
            self.filter_mentions.lower() in message.content.lower()
            or f"@{self.filter_mentions}" in message.content
        )

    async def dispatch(self, message: MessageRecord, reply: str) -> bool:
        """Post or log ``reply`` for ``message``. Returns True when posted."""
        if self.testing_mode or not self.should_post(message):
            reason = "TESTING MODE" if self.testing_mode else "NO MENTION"
            logger.info(f"==== AGENT RESPONSE ({reason} - NOT SENT) ====")
            logger.info(reply)
            logger.info("=" * 52)
            return False

        await self.post(reply)
        logger.info(f"Sent response: {reply[:100]}...")
        return True

    async def post(self, text: str):
        chunks = split_message(text, self.max_length)
        for i, chunk in enumerate(chunks):
            if self.response_delay > 0:
                await asyncio.sleep(self.response_delay)
            await self._feed.send_text(chunk)
            if i < len(chunks) - 1 and self.chunk_delay > 0:
                await asyncio.sleep(self.chunk_delay)
