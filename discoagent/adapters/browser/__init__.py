"""Browser adapters — Playwright-driven chat web UI."""

from discoagent.adapters.browser.discord_web import DiscordWebClient, to_raw_message

__all__ = ["DiscordWebClient", "to_raw_message"]
