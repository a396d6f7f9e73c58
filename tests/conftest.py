"""Pytest configuration and fixtures."""

import os
import sys
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock

import pytest

# Keep test runs from writing log files; must happen before config is imported
os.environ.setdefault("LOG_TO_FILE", "false")

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import discord  # noqa: E402

BOT_ID = 999
BOT_NAME = "RelayBot"
BASE_TIME = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_message(
    content: str,
    *,
    bot: bool = False,
    minutes: int = 0,
    message_id: int | None = None,
    channel=None,
    mentions=None,
):
    """Build a mock Discord message created `minutes` after BASE_TIME."""
    message = Mock()
    message.id = message_id if message_id is not None else 1000 + minutes
    message.content = content
    message.created_at = BASE_TIME + timedelta(minutes=minutes)
    message.author = Mock(bot=bot, id=BOT_ID if bot else 42)
    message.channel = channel if channel is not None else Mock(id=555)
    message.mentions = mentions or []
    return message


def make_thread(thread_id: int = 777):
    """Mock discord.Thread that passes isinstance checks."""
    thread = Mock(spec=discord.Thread)
    thread.id = thread_id
    thread.name = "Conversation - test"
    thread.send = AsyncMock(side_effect=lambda content: Mock(content=content))
    thread.typing = AsyncMock()
    return thread


@pytest.fixture
def bot_user():
    user = Mock()
    user.id = BOT_ID
    user.name = BOT_NAME
    return user


@pytest.fixture
def mock_discord_client(bot_user):
    """Mock discord.py client with a ready bot user."""
    client = Mock()
    client.user = bot_user
    return client


@pytest.fixture
def thread():
    return make_thread()


@pytest.fixture
def mock_anthropic_client():
    """Patch the async Anthropic SDK client used by ClaudeClient."""
    from unittest.mock import patch

    with patch("anthropic.AsyncAnthropic") as mock:
        client = Mock()
        client.messages.create = AsyncMock()
        mock.return_value = client
        yield client
