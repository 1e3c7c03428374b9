"""Discord web DOM selectors, centralised.

Discord ships hashed class names that change between releases. Every lookup
that can break is an ordered fallback list here: the first selector that
matches wins. When the UI changes, update this module only.
"""

from typing import List

# --- Navigation ---
LOGIN_EMAIL_INPUT = 'input[name="email"]'
LOGIN_PASSWORD_INPUT = 'input[name="password"]'
LOGIN_SUBMIT_BUTTON = 'button[type="submit"]'

CHANNEL_LIST = '[data-list-id="channels"]'

LOGGED_IN_INDICATORS = [
    CHANNEL_LIST,
    '[class*="sidebar"]',
    '[aria-label*="Server"]',
    '[role="navigation"]',
]

TWO_FACTOR_PROMPT = '[aria-label*="Auth" i], [aria-label*="2FA" i], [aria-label*="code" i]'
LOGIN_ERROR = '[class*="error" i], [class*="invalid" i]'

# Formatted with the channel name (already escaped for a quoted attribute value)
CHANNEL_SELECTOR_TEMPLATES = [
    '[aria-label*="{name}" i]',
    '[data-dnd-name*="{name}" i]',
    'text="{name}"',
    '[aria-label="{name}"]',
]

# --- Message input (fallback chain) ---
MESSAGE_INPUT_SELECTORS = [
    '[data-slate-editor="true"]',
    '[role="textbox"][data-slate-node="value"]',
    '[role="textbox"][aria-label*="Message" i]',
    '[role="textbox"][placeholder*="Message" i]',
    '[contenteditable="true"][role="textbox"]',
    'div[role="textbox"][spellcheck="true"]',
    'div[role="textbox"]',
]

ANY_TEXTBOX = '[role="textbox"]'

# --- Feed extraction ---
MESSAGE_CONTENT = '[id^="message-content-"]'

# Content nodes inside a quoted reply preview belong to another message
REPLY_PREVIEW_CONTENT = '[class*="repliedTextContent"]'
REPLY_PREVIEW = '[class*="repliedMessage"]'

# Enclosing container of a content node, most specific first
MESSAGE_CONTAINER_SELECTORS = [
    '[id^="chat-messages-"]',
    '[class*="message-"]',
    '[class*="message"]',
    'li',
]

USERNAME_HEADER = '[id^="message-username-"]'
USERNAME_HEADER_PREFIX = "message-username-"

# Name text inside a username header; the header text itself is the last resort
USERNAME_TEXT_SELECTORS = [
    '[class*="username_"]',
    '[class*="username"]',
]

TIMESTAMP = "time"

# --- Timeouts (milliseconds) ---
NAVIGATION_SETTLE_MS = 3000
REDIRECT_SETTLE_MS = 2000
CHANNEL_LOAD_MS = 5000
VISIBILITY_TIMEOUT_MS = 2000
SEND_VISIBILITY_TIMEOUT_MS = 1000
LOGIN_FORM_TIMEOUT_MS = 5000
LOGIN_RESPONSE_TIMEOUT_MS = 30000
TWO_FACTOR_TIMEOUT_MS = 120000
CHANNEL_LIST_TIMEOUT_MS = 15000


def escape_attr_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def channel_selectors(name: str) -> List[str]:
    escaped = escape_attr_value(name)
    return [template.format(name=escaped) for template in CHANNEL_SELECTOR_TEMPLATES]


def extraction_args() -> dict:
    """Selector lists handed to the in-page extraction script."""
    return {
        "content": MESSAGE_CONTENT,
        "replyPreviewContent": REPLY_PREVIEW_CONTENT,
        "replyPreview": REPLY_PREVIEW,
        "containers": list(MESSAGE_CONTAINER_SELECTORS),
        "usernameHeader": USERNAME_HEADER,
        "usernameHeaderPrefix": USERNAME_HEADER_PREFIX,
        "usernameText": list(USERNAME_TEXT_SELECTORS),
        "timestamp": TIMESTAMP,
    }
