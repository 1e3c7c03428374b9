"""Configuration loaded from the environment (and a local .env file)."""

import os
import re
import sys
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

_stderr_print = lambda *a, **kw: print(*a, **kw, file=sys.stderr)

_TRUE_VALUES = ("1", "true", "yes", "on")


def env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE_VALUES


def env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError:
        _stderr_print(f"Invalid {name}={value!r}, falling back to {default}")
        return default


def env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError:
        _stderr_print(f"Invalid {name}={value!r}, falling back to {default}")
        return default


def channel_key(target_channel: Optional[str]) -> str:
    """Session-file key for a channel: every non-alphanumeric char becomes '_'."""
    return re.sub(r"[^a-zA-Z0-9]", "_", target_channel or "default")


@dataclass
class ClaudeConfig:
    command: str = "claude"
    model: str = "sonnet"
    max_turns: int = 5
    timeout: float = 60.0
    conversation_mode: bool = True


@dataclass
class DiscordConfig:
    email: str = ""
    password: str = ""
    target_channel: str = ""
    app_url: str = "https://discord.com/app"
    login_url: str = "https://discord.com/login"
    profile_dir: str = "./discord-session"
    headless: bool = False
    skip_2fa: bool = False
    max_message_length: int = 2000


@dataclass
class BridgeConfig:
    """Typed configuration for one bridged channel."""

    bot_name: str = "ClaudeAgent"
    agent_type: str = "claude"
    response_delay_ms: int = 2000
    chunk_delay_ms: int = 500
    filter_mentions: Optional[str] = None
    testing_mode: bool = False
    startup_message_limit: int = 3
    poll_interval: float = 2.0
    error_backoff: float = 5.0
    session_file: str = "./claude-sessions.json"
    log_file: str = "agent.log"
    debug: bool = False
    discord: DiscordConfig = field(default_factory=DiscordConfig)
    claude: ClaudeConfig = field(default_factory=ClaudeConfig)

    @property
    def channel_key(self) -> str:
        return channel_key(self.discord.target_channel)

    def missing_required(self) -> List[str]:
        missing = []
        if not self.discord.email:
            missing.append("DISCORD_EMAIL")
        if not self.discord.password:
            missing.append("DISCORD_PASSWORD")
        if not self.discord.target_channel:
            missing.append("DISCORD_CHANNEL")
        return missing

    @classmethod
    def from_env(cls) -> "BridgeConfig":
        """Create BridgeConfig from environment variables."""
        return cls(
            bot_name=os.getenv("BOT_NAME", "").strip() or "ClaudeAgent",
            agent_type=os.getenv("AGENT_TYPE", "claude").strip().lower() or "claude",
            response_delay_ms=env_int("RESPONSE_DELAY", 2000),
            chunk_delay_ms=env_int("CHUNK_DELAY", 500),
            filter_mentions=os.getenv("FILTER_MENTIONS", "").strip() or None,
            testing_mode=env_bool("TESTING_MODE"),
            startup_message_limit=env_int("STARTUP_MESSAGE_LIMIT", 3),
            poll_interval=env_float("POLL_INTERVAL", 2.0),
            error_backoff=env_float("ERROR_BACKOFF", 5.0),
            session_file=os.getenv("SESSION_FILE", "./claude-sessions.json"),
            log_file=os.getenv("LOG_FILE", "agent.log"),
            debug=env_bool("DEBUG"),
            discord=DiscordConfig(
                email=os.getenv("DISCORD_EMAIL", ""),
                password=os.getenv("DISCORD_PASSWORD", ""),
                target_channel=os.getenv("DISCORD_CHANNEL", "").strip(),
                profile_dir=os.getenv("BROWSER_PROFILE_DIR", "./discord-session"),
                headless=env_bool("HEADLESS"),
                skip_2fa=env_bool("SKIP_2FA"),
            ),
            claude=ClaudeConfig(
                command=os.getenv("CLAUDE_COMMAND", "claude").strip() or "claude",
                model=os.getenv("CLAUDE_MODEL", "sonnet").strip() or "sonnet",
                max_turns=env_int("CLAUDE_MAX_TURNS", 5),
                timeout=env_float("CLAUDE_TIMEOUT", 60.0),
                # Only an explicit "false" turns conversation mode off
                conversation_mode=os.getenv("USE_CONVERSATION_MODE", "").strip().lower() != "false",
            ),
        )
