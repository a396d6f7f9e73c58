"""Command router - decides which Discord messages the relay answers.

No LLM involved: a message is handled when it mentions the bot or sits in a
thread, and is a status request when it contains the word "status".
Bot-authored messages are filtered out before this point (see bot.on_message).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

import discord

from .config import STATUS_KEYWORD


class CommandKind(Enum):
    STATUS = "status"
    CHAT = "chat"


@dataclass
class Command:
    """One inbound message, classified. Consumed once by the orchestrator."""

    kind: CommandKind
    content: str
    message: Any
    thread: Optional[discord.Thread] = None  # set when posted inside an existing thread


def is_thread_message(message) -> bool:
    return isinstance(message.channel, discord.Thread)


def mentions_user(message, user) -> bool:
    """True when `user` is directly @-mentioned (not via @everyone or a role)."""
    if user is None:
        return False
    return any(mentioned.id == user.id for mentioned in message.mentions)


def parse_command(
    message,
    bot_user,
    is_thread: Callable[[Any], bool] = is_thread_message,
) -> Optional[Command]:
    """Classify a message, or return None when the relay should ignore it.

    Args:
        message: Discord message (already known not to be from a bot)
        bot_user: The bot's own user, None before the client is ready
        is_thread: Predicate for "posted inside an existing thread"

    Returns:
        Command, or None for channel chatter that doesn't mention the bot
    """
    in_thread = is_thread(message)

    if not in_thread and not mentions_user(message, bot_user):
        return None

    content = message.content or ""
    kind = CommandKind.STATUS if STATUS_KEYWORD in content.strip().lower() else CommandKind.CHAT

    return Command(
        kind=kind,
        content=content,
        message=message,
        thread=message.channel if in_thread else None,
    )
