"""Thread lifecycle - create/reuse Discord threads, read history, deliver replies."""

from datetime import datetime
from enum import Enum

import discord

from logger import logger
from .config import (
    HISTORY_FETCH_LIMIT,
    THREAD_AUTO_ARCHIVE_MINUTES,
    THREAD_NAME_MAX,
    THREAD_NAME_PREFIX,
)
from .response import DISCORD_MESSAGE_LIMIT, split_message


class ThreadErrorKind(Enum):
    CREATION_FAILED = "creation_failed"
    FETCH_FAILED = "fetch_failed"
    SEND_FAILED = "send_failed"


class ThreadError(Exception):
    """A Discord thread operation failed; aborts the current command only."""

    def __init__(self, kind: ThreadErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


def thread_name(now: datetime | None = None) -> str:
    """Human-readable thread name stamped with the creation time."""
    now = now or datetime.now()
    return f"{THREAD_NAME_PREFIX} - {now.strftime('%Y-%m-%d %H:%M:%S')}"[:THREAD_NAME_MAX]


class ThreadManager:
    """Discord thread operations used by the orchestrator."""

    def __init__(self, message_limit: int = DISCORD_MESSAGE_LIMIT):
        self.message_limit = message_limit

    async def resolve_thread(self, message) -> discord.Thread:
        """Return the thread the message is in, or start one anchored to it.

        Raises:
            ThreadError: creation_failed
        """
        if isinstance(message.channel, discord.Thread):
            logger.debug(f"Using existing thread {message.channel.id}")
            return message.channel

        try:
            thread = await message.create_thread(
                name=thread_name(),
                auto_archive_duration=THREAD_AUTO_ARCHIVE_MINUTES,
            )
        except discord.DiscordException as e:
            logger.error(f"Failed to create thread for message {message.id}: {e}")
            raise ThreadError(ThreadErrorKind.CREATION_FAILED, f"Thread creation failed: {e}") from e

        logger.info(f"Created thread {thread.id} ({thread.name}) for message {message.id}")
        return thread

    async def fetch_history(self, thread, limit: int = HISTORY_FETCH_LIMIT) -> list:
        """Fetch up to `limit` recent messages from the thread (newest first).

        Raises:
            ThreadError: fetch_failed
        """
        try:
            messages = [msg async for msg in thread.history(limit=limit)]
        except discord.DiscordException as e:
            logger.error(f"Failed to fetch history for thread {thread.id}: {e}")
            raise ThreadError(ThreadErrorKind.FETCH_FAILED, f"Failed to fetch thread history: {e}") from e

        logger.debug(f"Fetched {len(messages)} messages from thread {thread.id}")
        return messages

    async def deliver(self, thread, text: str):
        """Send text to the thread, split into Discord-sized chunks, in order.

        Chunks already sent stay sent if a later one fails.

        Returns:
            The last message sent

        Raises:
            ThreadError: send_failed
        """
        chunks = split_message(text, self.message_limit)
        logger.debug(f"Sending {len(chunks)} chunk(s), {len(text)} chars, to thread {thread.id}")

        last_message = None
        for i, chunk in enumerate(chunks):
            try:
                last_message = await thread.send(chunk)
            except discord.DiscordException as e:
                logger.error(f"Failed to send chunk {i + 1}/{len(chunks)} to thread {thread.id}: {e}")
                raise ThreadError(ThreadErrorKind.SEND_FAILED, f"Failed to send message: {e}") from e

        return last_message

    async def send_typing(self, thread) -> None:
        """Show the typing indicator. Cosmetic, so failures are only logged."""
        try:
            await thread.typing()
        except Exception as e:
            logger.warning(f"Failed to send typing indicator to thread {thread.id}: {e}")
