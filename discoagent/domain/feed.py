"""Feed reader — turns rendered feed snapshots into new message records.

Each poll reads every message node currently rendered, resolves authors for
continuation messages (the host collapses consecutive messages from the same
author and drops the username header), and returns only the records that came
after the cursor.

Continuation authors are resolved by an ordered list of strategies, first
match wins:

1. the username header the message points to through ``aria-labelledby``,
   when that header belongs to a message in the same snapshot
2. the nearest earlier record in the snapshot with a known, non-bot author
3. the last known author carried over from the previous poll

A record that no strategy can attribute keeps the ``Unknown`` author and is
still emitted.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from discoagent.domain.models import (
    FeedReadError,
    MessageRecord,
    RawMessage,
    UNKNOWN_AUTHOR,
)
from discoagent.ports.outbound import FeedPort

logger = logging.getLogger(__name__)


@dataclass
class ResolveContext:
    """Per-snapshot state shared by the author strategies."""

    bot_name: str
    last_known_author: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)  # header element id → author


AuthorStrategy = Callable[[MessageRecord, Sequence[MessageRecord], ResolveContext], Optional[str]]


def author_from_header_ref(
    record: MessageRecord, earlier: Sequence[MessageRecord], ctx: ResolveContext
) -> Optional[str]:
    if not record.header_ref:
        return None
    return ctx.headers.get(record.header_ref)


def author_from_previous(
    record: MessageRecord, earlier: Sequence[MessageRecord], ctx: ResolveContext
) -> Optional[str]:
    for prior in reversed(earlier):
        if prior.has_author and prior.author != ctx.bot_name:
            return prior.author
    return None


def author_from_last_known(
    record: MessageRecord, earlier: Sequence[MessageRecord], ctx: ResolveContext
) -> Optional[str]:
    return ctx.last_known_author


CONTINUATION_STRATEGIES: Tuple[AuthorStrategy, ...] = (
    author_from_header_ref,
    author_from_previous,
    author_from_last_known,
)


def resolve_authors(
    raw_messages: Sequence[RawMessage],
    bot_name: str,
    last_known_author: Optional[str] = None,
    strategies: Sequence[AuthorStrategy] = CONTINUATION_STRATEGIES,
) -> Tuple[List[MessageRecord], Optional[str]]:
    """Build records for one snapshot and fill in continuation authors.

    Returns the records in feed order and the updated last known author
    (the last resolved non-bot author in the snapshot, or the incoming value
    when there is none).
    """
    ctx = ResolveContext(bot_name=bot_name, last_known_author=last_known_author)
    records: List[MessageRecord] = []
    seen_ids = set()

    for raw in raw_messages:
        if not raw.id:
            logger.debug("Skipping content node without id")
            continue
        if raw.id in seen_ids:
            logger.debug(f"Skipping duplicate node {raw.id}")
            continue
        seen_ids.add(raw.id)

        record = MessageRecord.from_raw(raw)
        if record.has_author and raw.header_id:
            ctx.headers[raw.header_id] = record.author

        if not record.has_author:
            for strategy in strategies:
                author = strategy(record, records, ctx)
                if author:
                    record.author = author
                    logger.debug(
                        f"Resolved continuation {record.id} -> {author} ({strategy.__name__})"
                    )
                    break
            else:
                logger.debug(f"Author unresolved for {record.id}: {record.content[:50]!r}")

        records.append(record)

    for record in reversed(records):
        if record.has_author and record.author != bot_name:
            last_known_author = record.author
            break

    return records, last_known_author


def select_window(
    records: Sequence[MessageRecord],
    last_seen_id: Optional[str],
    startup_limit: int,
) -> List[MessageRecord]:
    """Pick the slice of a snapshot that has not been processed yet.

    Until a cursor exists the window is governed by ``startup_limit``:
    ``0`` skips everything, a positive value keeps the newest N records and a
    negative value keeps every record.
    """
    if last_seen_id is None:
        if startup_limit == 0:
            logger.info(
                f"Startup mode: skipping all {len(records)} existing messages "
                "(STARTUP_MESSAGE_LIMIT=0)"
            )
            return []
        if startup_limit < 0:
            logger.info(
                f"Startup mode: processing all {len(records)} messages "
                f"(STARTUP_MESSAGE_LIMIT={startup_limit})"
            )
            return list(records)
        if len(records) > startup_limit:
            logger.info(
                f"Startup mode: limiting initial processing to last {startup_limit} "
                f"messages out of {len(records)} total"
            )
        return list(records[-startup_limit:])

    for index, record in enumerate(records):
        if record.id == last_seen_id:
            return list(records[index + 1:])

    logger.warning(
        f"Last seen message {last_seen_id} is no longer rendered; "
        f"resuming from the newest of {len(records)} visible messages"
    )
    return []


class FeedReader:
    """Single-owner reader for one monitored channel.

    Holds the de-duplication cursor and the last known author across polls.
    Neither is persisted: a restart re-resolves from the visible history.
    """

    def __init__(
        self,
        feed: FeedPort,
        bot_name: str,
        startup_limit: int = 3,
        strategies: Sequence[AuthorStrategy] = CONTINUATION_STRATEGIES,
    ):
        self._feed = feed
        self.bot_name = bot_name
        self.startup_limit = startup_limit
        self._strategies = tuple(strategies)
        self.last_seen_id: Optional[str] = None
        self.last_known_author: Optional[str] = None
        self._startup = True

    @property
    def is_startup(self) -> bool:
        return self._startup

    def mark_startup_complete(self):
        if self._startup:
            self._startup = False
            logger.info("Startup message processing complete, switching to normal operation")

    async def poll(self) -> List[MessageRecord]:
        """Read the feed and return new, non-bot, non-empty records in feed order."""
        try:
            raw_messages = await self._feed.read_snapshot()
        except FeedReadError as e:
            logger.error(f"Could not read feed: {e}")
            return []
        return self.reconcile(raw_messages)

    def reconcile(self, raw_messages: Sequence[RawMessage]) -> List[MessageRecord]:
        """Resolve, window and filter one snapshot, advancing the cursor."""
        had_author = self.last_known_author
        records, self.last_known_author = resolve_authors(
            raw_messages,
            self.bot_name,
            last_known_author=self.last_known_author,
            strategies=self._strategies,
        )
        if records:
            logger.debug(f"Retrieved {len(records)} messages from feed")
            for record in records[-3:]:
                logger.debug(
                    f"Message {record.id}: author={record.author!r} "
                    f"content={record.content[:50]!r}"
                )
        if had_author is None and self.last_known_author:
            logger.info(f"Last known author: {self.last_known_author}")

        window = select_window(records, self.last_seen_id, self.startup_limit)
        new_records = [r for r in window if self._is_deliverable(r)]

        if records:
            self.last_seen_id = records[-1].id
            self.mark_startup_complete()
        return new_records

    def _is_deliverable(self, record: MessageRecord) -> bool:
        if record.author == self.bot_name:
            return False
        if not record.content:
            return False
        if record.author == UNKNOWN_AUTHOR:
            logger.warning(f"Emitting message {record.id} with unresolved author")
        return True
