"""Orchestration loop: poll → resolve → dispatch → sleep."""

import asyncio
import logging
from enum import Enum
from typing import Optional

from discoagent.domain.assistant import AssistantAgent
from discoagent.domain.dispatch import ResponseDispatcher, format_error, format_response
from discoagent.domain.feed import FeedReader
from discoagent.domain.models import AssistantError, DispatchError, MessageRecord

logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    DISPATCHING = "dispatching"
    SLEEPING = "sleeping"
    STOPPED = "stopped"


class Orchestrator:
    """Ties the feed reader, the assistant and the dispatcher together.

    Runs until stop() is called. A failure while handling one message only
    affects that message; a failure of a whole cycle is logged and followed
    by a longer back-off before the next poll.
    """

    def __init__(
        self,
        reader: FeedReader,
        agent: AssistantAgent,
        dispatcher: ResponseDispatcher,
        poll_interval: float = 2.0,
        error_backoff: float = 5.0,
    ):
        self.reader = reader
        self.agent = agent
        self.dispatcher = dispatcher
        self.poll_interval = poll_interval
        self.error_backoff = error_backoff
        self.state = LoopState.IDLE
        self._stop_event: Optional[asyncio.Event] = None
        self._running = False
        self._stopping = False

    @property
    def running(self) -> bool:
        return self._running

    def stop(self):
        """Request shutdown; the loop exits at the next state transition."""
        if self._running:
            logger.info("Stopping orchestrator...")
        self._running = False
        self._stopping = True
        if self._stop_event is not None:
            self._stop_event.set()

    async def run(self):
        logger.info("Starting orchestrator main loop...")
        self._stop_event = asyncio.Event()
        self._running = True
        self._stopping = False
        try:
            while self._running:
                try:
                    await self.run_cycle()
                    delay = self.poll_interval
                except Exception as e:
                    logger.error(f"Orchestrator loop error: {e}")
                    logger.debug("Loop error details", exc_info=True)
                    delay = self.error_backoff
                if not self._running:
                    break
                self.state = LoopState.SLEEPING
                await self._sleep(delay)
        finally:
            self._running = False
            self.state = LoopState.STOPPED

    async def run_cycle(self) -> int:
        """Poll once and handle every new message. Returns the number handled.

        A reply that cannot be posted does not stop the rest of the batch; the
        first DispatchError is re-raised once the batch is done so that run()
        backs off before the next poll.
        """
        self.state = LoopState.POLLING
        messages = await self.reader.poll()

        self.state = LoopState.DISPATCHING
        handled = 0
        send_failure: Optional[DispatchError] = None
        for message in messages:
            if self._stopping:
                break
            if self._is_from_filter_user(message):
                logger.info(
                    f"Skipping message FROM {self.dispatcher.filter_mentions} "
                    "(feedback loop prevention)"
                )
                continue

            logger.info(f"New message from {message.author}: {message.content}")
            reply = await self.process_message(message)
            if reply:
                try:
                    await self.dispatcher.dispatch(message, reply)
                except DispatchError as e:
                    logger.error(f"Failed to send reply to {message.author}: {e}")
                    if send_failure is None:
                        send_failure = e
            handled += 1

        if send_failure is not None:
            raise send_failure
        return handled

    async def process_message(self, message: MessageRecord) -> Optional[str]:
        """Run one message through the assistant and format the reply text."""
        logger.info(f"Processing message from {message.author}: {message.content[:50]}...")
        try:
            reply = await self.agent.process(message)
        except AssistantError as e:
            logger.error(f"Agent error ({e.kind.value}): {e.message}")
            return format_error(message.author, e.message)
        except Exception as e:
            logger.error(f"Message processing error: {e}")
            logger.debug("Message processing error details", exc_info=True)
            return format_error(
                message.author,
                f"Sorry, I encountered an error processing your message: {e}",
            )

        if reply is None or not reply.result:
            logger.warning("Agent returned empty response")
            return None

        logger.info(f"Response cost: ${reply.cost:.2f}")
        return format_response(message.author, reply.cost, reply.result)

    def _is_from_filter_user(self, message: MessageRecord) -> bool:
        target = self.dispatcher.filter_mentions
        return bool(target) and message.author.lower() == target.lower()

    async def _sleep(self, seconds: float):
        if self._stop_event is None:
            await asyncio.sleep(seconds)
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
