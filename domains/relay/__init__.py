"""Relay domain - Discord threads to Claude and back.

Messages that mention the bot (or arrive inside one of its threads) become
commands; chat commands are answered by Claude inside a thread, status
commands get the bot status report.
"""

from .router import Command, CommandKind, parse_command
from .conversation import ConversationAssembler, ConversationTurn
from .response import split_message

__all__ = [
    "Command",
    "CommandKind",
    "parse_command",
    "ConversationAssembler",
    "ConversationTurn",
    "split_message",
]
