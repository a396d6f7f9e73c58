"""Discord Claude relay - Main Bot.

Answers @-mentions by opening a thread and relaying the conversation to
Claude; replies inside the thread continue the same conversation. Keeps a
managed git checkout in sync and reports status on request.
"""

import asyncio
import sys
import time

import discord

from claude_client import ClaudeCliClient, make_completion_client, usage
from config import (
    ANTHROPIC_API_KEY,
    BOT_NAME,
    CLAUDE_CODE_OAUTH_TOKEN,
    DISCORD_TOKEN,
    MAX_THREAD_HISTORY,
    format_config_errors,
    resolve_backend,
    validate_config,
)
from domains.relay import ConversationAssembler, parse_command
from domains.relay.config import MESSAGE_DEDUP_SECONDS
from domains.relay.git_sync import GitError, GitRepository
from domains.relay.orchestrator import Orchestrator
from domains.relay.status import StatusService
from domains.relay.threads import ThreadManager
from logger import logger

# Initialize bot
intents = discord.Intents.default()
intents.message_content = True
bot = discord.Client(intents=intents)

# Pipeline components
repo = GitRepository()
completion = make_completion_client(usage)
orchestrator = Orchestrator(
    threads=ThreadManager(),
    assembler=ConversationAssembler(bot),
    completion=completion,
    repo=repo,
    status=StatusService(repo, usage),
    max_history=MAX_THREAD_HISTORY,
)

# Message deduplication: track recently processed message IDs
_processed_messages: dict[int, float] = {}  # message_id -> timestamp


def is_duplicate(message_id: int, now: float | None = None) -> bool:
    """Record a message id; True if it was already seen in the dedup window."""
    now = time.time() if now is None else now
    if message_id in _processed_messages:
        return True
    _processed_messages[message_id] = now

    # Clean up old entries
    cutoff = now - MESSAGE_DEDUP_SECONDS * 2
    for k in [k for k, v in _processed_messages.items() if v < cutoff]:
        del _processed_messages[k]
    return False


@bot.event
async def on_ready():
    """Called when bot is connected and ready."""
    logger.info(f"Logged in as {bot.user} (id={bot.user.id})")


@bot.event
async def on_message(message: discord.Message):
    """Handle incoming messages."""
    # Ignore bot messages (including our own) to prevent reply loops
    if message.author.bot:
        return

    if is_duplicate(message.id):
        logger.debug(f"Skipping duplicate message {message.id}")
        return

    command = parse_command(message, bot.user)
    if command is None:
        return

    logger.info(
        f"Processing {command.kind.value} message {message.id} from {message.author} "
        f"in channel {message.channel.id}"
    )
    await orchestrator.process_command(command)


@bot.event
async def on_error(event, *args, **kwargs):
    """Handle errors."""
    logger.exception(f"Bot error in {event}")


def log_credentials() -> None:
    """Log which Claude credential and transport will be used."""
    if CLAUDE_CODE_OAUTH_TOKEN:
        logger.info("Using CLAUDE_CODE_OAUTH_TOKEN for authentication")
    elif ANTHROPIC_API_KEY:
        logger.info("Using ANTHROPIC_API_KEY for authentication")
    logger.info(f"Completion backend: {resolve_backend()}")


async def _run() -> None:
    logger.info("Initializing git repository...")
    await repo.initialize()

    if isinstance(completion, ClaudeCliClient):
        await completion.verify()

    async with bot:
        logger.info("Connecting to Discord...")
        await bot.start(DISCORD_TOKEN)


def main():
    """Entry point."""
    errors = validate_config()
    if errors:
        logger.error(format_config_errors(errors))
        sys.exit(1)

    logger.info(f"Starting {BOT_NAME} Discord relay...")
    log_credentials()

    try:
        asyncio.run(_run())
    except GitError as e:
        logger.error(f"Failed to initialize git repository: {e.message}")
        sys.exit(1)
    except discord.LoginFailure as e:
        logger.error(f"Discord login failed: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Shutdown requested, exiting")


if __name__ == "__main__":
    main()
