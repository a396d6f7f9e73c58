"""Conversation assembly - Discord thread history to Claude turns.

Claude's messages API needs strictly alternating user/assistant turns that
end on a user turn. Discord threads give neither guarantee, so history is
sorted, trimmed, cleaned of bot mentions and folded into that shape.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import reduce
from types import SimpleNamespace
from typing import Any, Iterable

from .config import DEFAULT_MAX_HISTORY

USER = "user"
ASSISTANT = "assistant"

_WORD_MENTION = re.compile(r"@\w+")


@dataclass(frozen=True)
class ConversationTurn:
    """One role-tagged message sent to Claude."""

    role: str
    content: str

    def to_api(self) -> dict:
        return {"role": self.role, "content": self.content}


def clean_content(content: str, bot_id: int | str | None, bot_name: str | None) -> str:
    """Strip mentions of the bot and surrounding whitespace."""
    cleaned = content or ""

    if bot_id is not None:
        cleaned = re.sub(rf"<@!?{re.escape(str(bot_id))}>", "", cleaned)

    if bot_name:
        # Only drop @word mentions naming the bot; keep mentions of other people
        cleaned = _WORD_MENTION.sub(
            lambda m: "" if bot_name in m.group(0) else m.group(0),
            cleaned,
        )

    return cleaned.strip()


def _append_turn(turns: tuple, turn: ConversationTurn) -> tuple:
    """Fold step: merge into the previous turn when the role repeats."""
    if turns and turns[-1].role == turn.role:
        merged = ConversationTurn(turn.role, f"{turns[-1].content}\n{turn.content}")
        return turns[:-1] + (merged,)
    return turns + (turn,)


def merge_turns(turns: Iterable[ConversationTurn]) -> tuple[ConversationTurn, ...]:
    """Collapse consecutive same-role turns so roles strictly alternate."""
    return reduce(_append_turn, turns, ())


def trim_trailing_assistant(turns: tuple[ConversationTurn, ...]) -> tuple[ConversationTurn, ...]:
    """Drop assistant turns from the end; Claude needs the last word to be the user's."""
    end = len(turns)
    while end and turns[end - 1].role == ASSISTANT:
        end -= 1
    return turns[:end]


class ConversationAssembler:
    """Builds the turn list for one Claude request.

    Usage:
        assembler = ConversationAssembler(bot)
        turns = assembler.assemble(thread_messages, "what does this do?")
    """

    def __init__(self, client: Any):
        """
        Args:
            client: discord.py client; its `user` identifies bot mentions
        """
        self.client = client

    def assemble(
        self,
        history: list[Any],
        new_message: str,
        max_history: int = DEFAULT_MAX_HISTORY,
    ) -> tuple[ConversationTurn, ...]:
        """Convert thread history plus the new message into Claude turns.

        Args:
            history: Discord messages from the thread, any order
            new_message: Content of the message being answered
            max_history: Max source messages to consider (newest kept)

        Returns:
            Turns alternating by role and ending with a user turn, or empty
        """
        now = SimpleNamespace(
            content=new_message,
            created_at=datetime.now(timezone.utc),
            author=SimpleNamespace(bot=False),
        )

        # sorted() is stable, so same-timestamp messages keep delivery order
        ordered = sorted([*history, now], key=lambda m: m.created_at)
        if len(ordered) > max_history:
            ordered = ordered[-max_history:]

        bot_user = getattr(self.client, "user", None)
        bot_id = bot_user.id if bot_user else None
        bot_name = bot_user.name if bot_user else None

        turns = []
        for message in ordered:
            content = clean_content(message.content, bot_id, bot_name)
            if not content:
                continue
            role = ASSISTANT if message.author.bot else USER
            turns.append(ConversationTurn(role, content))

        return trim_trailing_assistant(merge_turns(turns))
