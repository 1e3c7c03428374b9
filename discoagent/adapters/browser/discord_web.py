"""Discord web client over Playwright — implements FeedPort.

Drives a persistent Chromium profile so the login survives restarts, reads
the rendered message list of one channel, and types replies into the
message box.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from playwright.async_api import (
    BrowserContext,
    Error as PlaywrightError,
    Locator,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from discoagent.adapters.browser import selectors as sel
from discoagent.config import DiscordConfig
from discoagent.domain.models import (
    DispatchError,
    FeedReadError,
    RawMessage,
    StartupError,
)

logger = logging.getLogger(__name__)

# Runs in the page. Reads every message content node in document order and
# reports what the surrounding markup says about its author.
EXTRACT_SCRIPT = """
(sel) => {
    const firstClosest = (el, selectors) => {
        const start = el.parentElement;
        if (!start) return null;
        for (const s of selectors) {
            const found = start.closest(s);
            if (found) return found;
        }
        return null;
    };

    const out = [];
    document.querySelectorAll(sel.content).forEach(el => {
        if (el.matches(sel.replyPreviewContent) || el.closest(sel.replyPreview)) {
            return;
        }
        const container = firstClosest(el, sel.containers);
        let author = null;
        let headerId = null;
        let headerRef = null;

        if (container) {
            const headers = Array.from(container.querySelectorAll(sel.usernameHeader))
                .filter(h => !h.closest(sel.replyPreview));
            if (headers.length > 0) {
                const header = headers[0];
                let nameEl = null;
                for (const s of sel.usernameText) {
                    nameEl = header.querySelector(s);
                    if (nameEl) break;
                }
                author = ((nameEl || header).textContent || '').trim() || null;
                headerId = header.id || null;
            }
            const labelledBy = container.getAttribute('aria-labelledby') || '';
            headerRef = labelledBy.split(/\\s+/)
                .find(part => part.startsWith(sel.usernameHeaderPrefix)) || null;
        }

        const time = container ? container.querySelector(sel.timestamp) : null;
        out.push({
            id: el.id,
            content: (el.textContent || '').trim(),
            author: author,
            headerId: headerId,
            headerRef: headerRef,
            timestamp: time ? time.getAttribute('datetime') : null,
            hasContainer: !!container,
        });
    });
    return out;
}
"""

TEXTBOX_ATTRS_SCRIPT = """
el => ({
    'aria-label': el.getAttribute('aria-label'),
    'placeholder': el.getAttribute('placeholder'),
    'data-slate-editor': el.getAttribute('data-slate-editor'),
    'contenteditable': el.getAttribute('contenteditable'),
    'class': el.className,
})
"""


def to_raw_message(item: Dict[str, Any]) -> RawMessage:
    """Convert one entry returned by EXTRACT_SCRIPT."""
    if not item.get("hasContainer", True):
        logger.debug(f"No message container found for {item.get('id')}")
    return RawMessage(
        id=str(item.get("id") or ""),
        content=str(item.get("content") or ""),
        author=item.get("author") or None,
        header_id=item.get("headerId") or None,
        header_ref=item.get("headerRef") or None,
        timestamp=item.get("timestamp") or None,
    )


def _mask(email: str) -> str:
    return f"{email[:3]}***"


class DiscordWebClient:
    """Playwright-driven Discord session for one channel."""

    def __init__(self, config: DiscordConfig):
        self.config = config
        self._playwright: Optional[Playwright] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Browser session not started")
        return self._page

    # -- Session bootstrap --

    async def start(self):
        """Open the browser, make sure we are logged in, and open the channel.

        Raises StartupError when the session cannot be established.
        """
        logger.info("Initializing Discord web session...")
        logger.info(
            f"Browser launch configuration: headless={self.config.headless}, "
            f"persistent session={self.config.profile_dir}"
        )
        try:
            await self._launch()
            await self._ensure_logged_in()
            await self._open_channel()
        except PlaywrightError as e:
            raise StartupError(f"Browser error during startup: {e}") from e
        logger.info(f"Successfully connected to channel: {self.config.target_channel}")

    async def _launch(self):
        self._playwright = await async_playwright().start()
        self._context = await self._playwright.chromium.launch_persistent_context(
            user_data_dir=self.config.profile_dir,
            headless=self.config.headless,
            viewport={"width": 1280, "height": 720},
        )
        logger.info("Browser context created successfully")

        if self._context.pages:
            logger.info(f"Found {len(self._context.pages)} existing page(s), using first one")
            self._page = self._context.pages[0]
        else:
            logger.info("Creating new page")
            self._page = await self._context.new_page()

    async def _ensure_logged_in(self):
        page = self.page
        logger.info(f"Starting URL: {page.url}")

        if "discord.com" in page.url and "channels" in page.url:
            logger.info("Already on Discord channels page, skipping navigation")
        else:
            logger.info("Navigating to Discord app...")
            await page.goto(self.config.app_url, wait_until="domcontentloaded")
            await page.wait_for_timeout(sel.NAVIGATION_SETTLE_MS)

        url = page.url
        logger.info(f"After redirect check - current URL: {url}")

        if "login" in url:
            logger.info("Login page detected, proceeding with authentication")
            await self.login()
            return
        if "channels" in url:
            logger.info("Already logged in, found channels in URL")
            return

        await page.wait_for_timeout(sel.REDIRECT_SETTLE_MS)
        if await self._first_visible(sel.LOGGED_IN_INDICATORS):
            logger.info("Detected logged-in state")
            return

        logger.info("No logged-in indicators found, navigating to login page")
        await page.goto(self.config.login_url, wait_until="domcontentloaded")
        await page.wait_for_timeout(sel.REDIRECT_SETTLE_MS)
        url = page.url
        if "channels" in url:
            logger.info("Redirected to channels, already logged in")
        elif "login" in url:
            await self.login()
        else:
            logger.warning(f"Unexpected state after login navigation: {url}")

    async def login(self):
        page = self.page
        logger.info(f"Starting login process at {page.url}")
        try:
            try:
                await page.wait_for_selector(sel.LOGIN_EMAIL_INPUT, timeout=sel.LOGIN_FORM_TIMEOUT_MS)
            except PlaywrightTimeoutError:
                if "channels" in page.url:
                    logger.info("Redirected to channels during login wait, already logged in")
                    return
                raise

            logger.info(f"Entering email: {_mask(self.config.email)}")
            await page.fill(sel.LOGIN_EMAIL_INPUT, self.config.email)
            logger.info("Entering password...")
            await page.fill(sel.LOGIN_PASSWORD_INPUT, self.config.password)
            await page.locator(sel.LOGIN_SUBMIT_BUTTON).first.click()

            logger.info("Waiting for login response...")
            outcome = await self._wait_for_any(
                [
                    ("channels", sel.CHANNEL_LIST),
                    ("2fa", sel.TWO_FACTOR_PROMPT),
                    ("error", sel.LOGIN_ERROR),
                ],
                timeout_ms=sel.LOGIN_RESPONSE_TIMEOUT_MS,
            )
            logger.info(f"Login result: {outcome}")

            if outcome == "error":
                error_text = await page.locator(sel.LOGIN_ERROR).first.text_content()
                raise StartupError(f"Login failed: {(error_text or '').strip()}")
            if outcome == "timeout":
                raise StartupError("Login timeout - no response after 30 seconds")
            if outcome == "2fa":
                await self._handle_two_factor()

            if "channels" in page.url:
                logger.info("Login successful - channels URL confirmed")
            else:
                logger.warning(f"Unexpected post-login URL: {page.url}")
        except (StartupError, PlaywrightError) as e:
            logger.error(f"Login error: {e}")
            await self._screenshot("login-error.png")
            if isinstance(e, StartupError):
                raise
            raise StartupError(f"Login failed: {e}") from e

    async def _handle_two_factor(self):
        page = self.page
        if self.config.skip_2fa:
            logger.warning("2FA detected but SKIP_2FA is enabled, attempting to proceed anyway")
            await page.wait_for_timeout(sel.NAVIGATION_SETTLE_MS)
            return
        logger.warning("2FA authentication required. Enter the code in the browser window.")
        logger.info("Waiting up to 2 minutes for 2FA completion (set SKIP_2FA=true to skip)")
        await page.wait_for_selector(sel.CHANNEL_LIST, timeout=sel.TWO_FACTOR_TIMEOUT_MS)
        logger.info("2FA completed successfully")

    async def _open_channel(self):
        target = self.config.target_channel
        try:
            await self.navigate_to_channel()
        except StartupError as e:
            logger.error(f"Failed to navigate to channel: {e}")
            if not target.startswith("http"):
                raise
            logger.info("Attempting direct navigation to channel URL...")
            await self.page.goto(target, wait_until="domcontentloaded")
            await self.page.wait_for_timeout(sel.NAVIGATION_SETTLE_MS)

    async def navigate_to_channel(self):
        page = self.page
        target = self.config.target_channel
        logger.info(f"Attempting to navigate to channel: {target}")

        if target.startswith("http"):
            await page.goto(target)
            await page.wait_for_timeout(sel.CHANNEL_LOAD_MS)
        else:
            try:
                await page.wait_for_selector(sel.CHANNEL_LIST, timeout=sel.CHANNEL_LIST_TIMEOUT_MS)
            except PlaywrightTimeoutError as e:
                raise StartupError("Channel list did not load") from e
            found = await self._first_visible(sel.channel_selectors(target))
            if not found:
                raise StartupError(f"Could not find channel: {target}")
            selector, element = found
            await element.click()
            logger.info(f"Clicked channel using selector: {selector}")

        await page.wait_for_timeout(sel.NAVIGATION_SETTLE_MS)
        textbox_count = await page.locator(sel.ANY_TEXTBOX).count()
        logger.info(f"Found {textbox_count} textbox elements on page")

        found = await self._first_visible(sel.MESSAGE_INPUT_SELECTORS)
        if not found:
            await self._log_textbox_attributes()
            raise StartupError("Could not find message input field")
        selector, element = found
        logger.info(f"Found message input with selector: {selector}")
        await element.click()

    # -- FeedPort --

    async def read_snapshot(self) -> List[RawMessage]:
        try:
            items = await self.page.evaluate(EXTRACT_SCRIPT, sel.extraction_args())
        except (PlaywrightError, RuntimeError) as e:
            raise FeedReadError(str(e)) from e
        if not isinstance(items, list):
            raise FeedReadError(f"Unexpected extraction result: {type(items).__name__}")
        return [to_raw_message(item) for item in items if isinstance(item, dict)]

    async def send_text(self, text: str) -> None:
        try:
            found = await self._first_visible(
                sel.MESSAGE_INPUT_SELECTORS, timeout_ms=sel.SEND_VISIBILITY_TIMEOUT_MS
            )
            if not found:
                raise DispatchError("Could not find message input box")
            _, message_box = found
            await message_box.fill(text)
            await message_box.press("Enter")
        except PlaywrightError as e:
            raise DispatchError(f"Failed to send message: {e}") from e

    async def close(self):
        logger.info("Closing browser session...")
        if self._context is not None:
            try:
                await self._context.close()
            except PlaywrightError as e:
                logger.debug(f"Browser context close failed: {e}")
            self._context = None
            self._page = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    # -- Helpers --

    async def _first_visible(
        self, selectors: Sequence[str], timeout_ms: int = sel.VISIBILITY_TIMEOUT_MS
    ) -> Optional[Tuple[str, Locator]]:
        """Return the first selector (and its locator) with a visible match."""
        for selector in selectors:
            element = self.page.locator(selector).first
            try:
                await element.wait_for(state="visible", timeout=timeout_ms)
            except PlaywrightError:
                logger.debug(f"Selector not visible: {selector}")
                continue
            return selector, element
        return None

    async def _wait_for_any(self, outcomes: Sequence[Tuple[str, str]], timeout_ms: int) -> str:
        """Wait until one of the selectors appears; return its name, or 'timeout'."""
        tasks = {
            asyncio.ensure_future(self.page.wait_for_selector(selector, timeout=timeout_ms)): name
            for name, selector in outcomes
        }
        pending = set(tasks)
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    if task.exception() is None:
                        return tasks[task]
            return "timeout"
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

    async def _log_textbox_attributes(self):
        textbox = self.page.locator(sel.ANY_TEXTBOX).first
        try:
            if await textbox.count():
                attrs = await textbox.evaluate(TEXTBOX_ATTRS_SCRIPT)
                logger.info(f"Found textbox with attributes: {attrs}")
            else:
                logger.error("No textbox elements found at all")
        except PlaywrightError as e:
            logger.error(f"Could not inspect textbox: {e}")

    async def _screenshot(self, path: str):
        try:
            await self.page.screenshot(path=path)
            logger.info(f"Screenshot saved as {path}")
        except PlaywrightError as e:
            logger.error(f"Could not save screenshot: {e}")
