"""Process bootstrap — wires the bridge together and runs it until shutdown."""

import asyncio
import logging
import signal
import sys
from typing import Optional

from discoagent.adapters.browser.discord_web import DiscordWebClient
from discoagent.adapters.llm.claude_runner import available_agents, create_runner
from discoagent.adapters.storage.session_store import JsonSessionStore
from discoagent.config import BridgeConfig
from discoagent.domain.assistant import AssistantAgent
from discoagent.domain.dispatch import ResponseDispatcher
from discoagent.domain.feed import FeedReader
from discoagent.domain.models import StartupError
from discoagent.domain.orchestrator import Orchestrator
from discoagent.log import configure_logging
from discoagent.ports.outbound import FeedPort, RunnerPort, SessionStorePort

logger = logging.getLogger(__name__)


def build_orchestrator(
    config: BridgeConfig,
    feed: FeedPort,
    runner: RunnerPort,
    sessions: SessionStorePort,
) -> Orchestrator:
    """Assemble reader, agent and dispatcher for one channel."""
    reader = FeedReader(
        feed,
        bot_name=config.bot_name,
        startup_limit=config.startup_message_limit,
    )
    agent = AssistantAgent(
        runner,
        sessions,
        channel_key=config.channel_key,
        conversation_mode=config.claude.conversation_mode,
        max_turns=config.claude.max_turns,
    )
    dispatcher = ResponseDispatcher(
        feed,
        filter_mentions=config.filter_mentions,
        testing_mode=config.testing_mode,
        response_delay=config.response_delay_ms / 1000,
        chunk_delay=config.chunk_delay_ms / 1000,
        max_length=config.discord.max_message_length,
    )
    return Orchestrator(
        reader,
        agent,
        dispatcher,
        poll_interval=config.poll_interval,
        error_backoff=config.error_backoff,
    )


def announce(config: BridgeConfig):
    if config.testing_mode:
        logger.info("TESTING MODE ENABLED - responses will NOT be sent to Discord")
    if config.filter_mentions:
        logger.info(
            "FILTER ENABLED - processing all messages, but only responding in Discord "
            f"to mentions of: {config.filter_mentions}"
        )
    if config.claude.conversation_mode:
        logger.info("CONVERSATION MODE - the assistant keeps context across messages")
    else:
        logger.info("ONE-SHOT MODE - each message processed independently")
    logger.info(f"Agent: {config.agent_type} (available: {', '.join(available_agents())})")


def _install_signal_handlers(orchestrator: Orchestrator, main_task: "asyncio.Task"):
    loop = asyncio.get_running_loop()

    def _on_signal():
        logger.info("Received shutdown signal...")
        if orchestrator.running:
            orchestrator.stop()
        else:
            main_task.cancel()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _on_signal)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform; KeyboardInterrupt still ends asyncio.run
            pass


async def run_bridge(config: BridgeConfig) -> int:
    """Run the bridge until shutdown. Returns the process exit code."""
    try:
        runner = create_runner(config.agent_type, config.claude)
    except ValueError as e:
        logger.error(str(e))
        return 1

    client = DiscordWebClient(config.discord)
    sessions = JsonSessionStore(config.session_file)
    orchestrator = build_orchestrator(config, client, runner, sessions)

    main_task: Optional[asyncio.Task] = asyncio.current_task()
    if main_task is not None:
        _install_signal_handlers(orchestrator, main_task)

    try:
        await client.start()
        sessions.load()
        current = sessions.get(config.channel_key)
        if current:
            logger.info(f"Loaded existing session for channel: {current}")
        await orchestrator.run()
        return 0
    except asyncio.CancelledError:
        logger.info("Shutdown requested during startup")
        return 0
    except StartupError as e:
        logger.error(f"Fatal error: {e}")
        return 1
    finally:
        await client.close()


def main() -> int:
    config = BridgeConfig.from_env()
    configure_logging(debug=config.debug, log_file=config.log_file)

    missing = config.missing_required()
    if missing:
        logger.error("Missing required environment variables. Please check your .env file.")
        logger.error(f"Required: {', '.join(missing)}")
        return 1

    announce(config)
    try:
        return asyncio.run(run_bridge(config))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 0


if __name__ == "__main__":
    sys.exit(main())
