"""Outbound response handling for the relay domain."""

from .chunker import DISCORD_MESSAGE_LIMIT, split_message

__all__ = ["DISCORD_MESSAGE_LIMIT", "split_message"]
