"""Tests for the Discord web client — extraction conversion and feed I/O."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError

from discoagent.adapters.browser import selectors as sel
from discoagent.adapters.browser.discord_web import (
    EXTRACT_SCRIPT,
    DiscordWebClient,
    _mask,
    to_raw_message,
)
from discoagent.config import DiscordConfig
from discoagent.domain.models import DispatchError, FeedReadError
from discoagent.ports.outbound import FeedPort


def _client_with_page(page):
    client = DiscordWebClient(DiscordConfig(email="someone@example.com", target_channel="general"))
    client._page = page
    return client


def _page_with_textbox(visible=True):
    element = MagicMock()
    if visible:
        element.wait_for = AsyncMock()
    else:
        element.wait_for = AsyncMock(side_effect=PlaywrightError("not visible"))
    element.fill = AsyncMock()
    element.press = AsyncMock()

    locator = MagicMock()
    locator.first = element

    page = MagicMock()
    page.locator = MagicMock(return_value=locator)
    return page, element


class TestToRawMessage:
    def test_headed_entry(self):
        raw = to_raw_message({
            "id": "message-content-1",
            "content": "hello",
            "author": "alice",
            "headerId": "message-username-1",
            "headerRef": "message-username-1",
            "timestamp": "2026-01-01T00:00:00.000Z",
            "hasContainer": True,
        })
        assert raw.id == "message-content-1"
        assert raw.author == "alice"
        assert raw.header_id == "message-username-1"
        assert raw.header_ref == "message-username-1"
        assert raw.timestamp == "2026-01-01T00:00:00.000Z"

    def test_continuation_entry(self):
        raw = to_raw_message({
            "id": "message-content-2",
            "content": "more",
            "author": None,
            "headerId": None,
            "headerRef": "",
            "timestamp": None,
            "hasContainer": False,
        })
        assert raw.author is None
        assert raw.header_id is None
        assert raw.header_ref is None
        assert raw.timestamp is None

    def test_missing_fields(self):
        raw = to_raw_message({})
        assert raw.id == ""
        assert raw.content == ""


class TestSelectors:
    def test_channel_selectors_escape_quotes(self):
        selectors = sel.channel_selectors('dev "ops"')
        assert selectors[0] == '[aria-label*="dev \\"ops\\"" i]'
        assert len(selectors) == len(sel.CHANNEL_SELECTOR_TEMPLATES)

    def test_extraction_args_cover_script_keys(self):
        args = sel.extraction_args()
        for key in args:
            assert f"sel.{key}" in EXTRACT_SCRIPT
        assert args["containers"][0] == '[id^="chat-messages-"]'

    def test_mask_email(self):
        assert _mask("someone@example.com") == "som***"


class TestReadSnapshot:
    def test_implements_feed_port(self):
        assert isinstance(DiscordWebClient(DiscordConfig()), FeedPort)

    @pytest.mark.asyncio
    async def test_converts_extracted_items(self):
        page = MagicMock()
        page.evaluate = AsyncMock(return_value=[
            {"id": "message-content-1", "content": "hi", "author": "alice"},
            {"id": "message-content-2", "content": "again", "author": None},
            "garbage",
        ])
        client = _client_with_page(page)

        raws = await client.read_snapshot()

        assert [r.id for r in raws] == ["message-content-1", "message-content-2"]
        script, args = page.evaluate.await_args.args
        assert script == EXTRACT_SCRIPT
        assert args == sel.extraction_args()

    @pytest.mark.asyncio
    async def test_evaluate_failure_raises_feed_read_error(self):
        page = MagicMock()
        page.evaluate = AsyncMock(side_effect=PlaywrightError("Target closed"))
        client = _client_with_page(page)

        with pytest.raises(FeedReadError):
            await client.read_snapshot()

    @pytest.mark.asyncio
    async def test_unexpected_result_raises_feed_read_error(self):
        page = MagicMock()
        page.evaluate = AsyncMock(return_value=None)
        client = _client_with_page(page)

        with pytest.raises(FeedReadError):
            await client.read_snapshot()

    @pytest.mark.asyncio
    async def test_not_started_raises_feed_read_error(self):
        client = DiscordWebClient(DiscordConfig())
        with pytest.raises(FeedReadError):
            await client.read_snapshot()


class TestSendText:
    @pytest.mark.asyncio
    async def test_fills_and_presses_enter(self):
        page, element = _page_with_textbox()
        client = _client_with_page(page)

        await client.send_text("@alice [$0.01] hi")

        page.locator.assert_called_with(sel.MESSAGE_INPUT_SELECTORS[0])
        element.fill.assert_awaited_once_with("@alice [$0.01] hi")
        element.press.assert_awaited_once_with("Enter")

    @pytest.mark.asyncio
    async def test_no_textbox_raises_dispatch_error(self):
        page, element = _page_with_textbox(visible=False)
        client = _client_with_page(page)

        with pytest.raises(DispatchError, match="Could not find message input box"):
            await client.send_text("hi")

        assert element.wait_for.await_count == len(sel.MESSAGE_INPUT_SELECTORS)
        element.fill.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fill_failure_raises_dispatch_error(self):
        page, element = _page_with_textbox()
        element.fill = AsyncMock(side_effect=PlaywrightError("detached"))
        client = _client_with_page(page)

        with pytest.raises(DispatchError):
            await client.send_text("hi")


class TestClose:
    @pytest.mark.asyncio
    async def test_close_without_start_is_noop(self):
        client = DiscordWebClient(DiscordConfig())
        await client.close()

    @pytest.mark.asyncio
    async def test_close_releases_browser(self):
        client = DiscordWebClient(DiscordConfig())
        context = MagicMock()
        context.close = AsyncMock()
        playwright = MagicMock()
        playwright.stop = AsyncMock()
        client._context = context
        client._playwright = playwright
        client._page = MagicMock()

        await client.close()

        context.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()
        assert client._page is None
