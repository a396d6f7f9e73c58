"""Tests for the Discord event layer."""

from unittest.mock import AsyncMock, Mock, patch

import pytest

from conftest import make_message

import bot


@pytest.fixture(autouse=True)
def clear_seen():
    bot._processed_messages.clear()
    yield
    bot._processed_messages.clear()


def test_duplicate_within_window():
    assert not bot.is_duplicate(1, now=100.0)
    assert bot.is_duplicate(1, now=101.0)


def test_old_entries_expire():
    bot.is_duplicate(1, now=100.0)
    bot.is_duplicate(2, now=200.0)

    assert 1 not in bot._processed_messages


@pytest.mark.asyncio
async def test_bot_messages_ignored():
    with patch.object(bot, "orchestrator") as orchestrator:
        orchestrator.process_command = AsyncMock()
        await bot.on_message(make_message("hi", bot=True))

    orchestrator.process_command.assert_not_awaited()


@pytest.mark.asyncio
async def test_routed_message_processed_once():
    message = make_message("in a thread", message_id=77)
    command = Mock()

    with patch.object(bot, "orchestrator") as orchestrator, \
            patch.object(bot, "parse_command", return_value=command) as parse:
        orchestrator.process_command = AsyncMock()
        await bot.on_message(message)
        await bot.on_message(message)

    parse.assert_called_once()
    orchestrator.process_command.assert_awaited_once_with(command)
