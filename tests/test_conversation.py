"""Tests for conversation assembly."""

from conftest import BOT_ID, BOT_NAME, make_message

from domains.relay.conversation import (
    ASSISTANT,
    USER,
    ConversationAssembler,
    ConversationTurn,
    clean_content,
    merge_turns,
    trim_trailing_assistant,
)


def roles(turns):
    return [t.role for t in turns]


class TestCleanContent:

    def test_strips_id_mentions(self):
        assert clean_content(f"<@{BOT_ID}> hello", BOT_ID, BOT_NAME) == "hello"
        assert clean_content(f"<@!{BOT_ID}> hello", BOT_ID, BOT_NAME) == "hello"

    def test_keeps_other_user_mentions(self):
        assert clean_content("<@123> hello", BOT_ID, BOT_NAME) == "<@123> hello"

    def test_strips_name_mentions_of_the_bot_only(self):
        assert clean_content(f"@{BOT_NAME} ask @alice", BOT_ID, BOT_NAME) == "ask @alice"

    def test_mention_only_becomes_empty(self):
        assert clean_content(f"  <@{BOT_ID}>  ", BOT_ID, BOT_NAME) == ""

    def test_none_content(self):
        assert clean_content(None, BOT_ID, BOT_NAME) == ""


class TestMergeTurns:

    def test_merges_consecutive_same_role(self):
        turns = [
            ConversationTurn(USER, "Thanks"),
            ConversationTurn(USER, "Bye"),
        ]
        assert merge_turns(turns) == (ConversationTurn(USER, "Thanks\nBye"),)

    def test_empty(self):
        assert merge_turns([]) == ()

    def test_trim_trailing_assistant(self):
        turns = (
            ConversationTurn(USER, "a"),
            ConversationTurn(ASSISTANT, "b"),
        )
        assert trim_trailing_assistant(turns) == (ConversationTurn(USER, "a"),)

    def test_trim_all_assistant_is_empty(self):
        assert trim_trailing_assistant((ConversationTurn(ASSISTANT, "b"),)) == ()


class TestConversationAssembler:

    def test_thread_example(self, mock_discord_client):
        history = [
            make_message("Hello", minutes=0),
            make_message("Hi", bot=True, minutes=1),
            make_message("Thanks", minutes=2),
        ]
        turns = ConversationAssembler(mock_discord_client).assemble(history, "Bye")

        assert [t.to_api() for t in turns] == [
            {"role": "user", "content": "Hello"},
            {"role": "assistant", "content": "Hi"},
            {"role": "user", "content": "Thanks\nBye"},
        ]

    def test_history_order_does_not_matter(self, mock_discord_client):
        history = [
            make_message("Thanks", minutes=2),
            make_message("Hi", bot=True, minutes=1),
            make_message("Hello", minutes=0),
        ]
        turns = ConversationAssembler(mock_discord_client).assemble(history, "Bye")

        assert [t.content for t in turns] == ["Hello", "Hi", "Thanks\nBye"]

    def test_roles_alternate_and_end_with_user(self, mock_discord_client):
        history = [
            make_message("notice", bot=True, minutes=0),
            make_message("a", minutes=1),
            make_message("b", minutes=2),
            make_message("c", bot=True, minutes=3),
            make_message("d", bot=True, minutes=4),
            make_message("e", minutes=5),
        ]
        turns = ConversationAssembler(mock_discord_client).assemble(history, "f")

        assert roles(turns) == [ASSISTANT, USER, ASSISTANT, USER]
        for prev, cur in zip(turns, turns[1:]):
            assert prev.role != cur.role
        assert turns[-1].role == USER

    def test_respects_max_history(self, mock_discord_client):
        history = [make_message(f"m{i}", bot=i % 2 == 1, minutes=i) for i in range(20)]
        turns = ConversationAssembler(mock_discord_client).assemble(history, "now", max_history=3)

        # Newest two history messages plus the new one
        assert [t.content for t in turns] == ["m18", "m19", "now"]

    def test_new_message_with_only_mention_drops_out(self, mock_discord_client):
        turns = ConversationAssembler(mock_discord_client).assemble([], f"<@{BOT_ID}>")

        assert turns == ()

    def test_empty_history_single_turn(self, mock_discord_client):
        turns = ConversationAssembler(mock_discord_client).assemble(
            [], f"<@{BOT_ID}> what is 2+2?"
        )

        assert turns == (ConversationTurn(USER, "what is 2+2?"),)

    def test_cleans_history_mentions(self, mock_discord_client):
        history = [make_message(f"<@{BOT_ID}> first", minutes=0)]
        turns = ConversationAssembler(mock_discord_client).assemble(history, "second")

        assert turns == (ConversationTurn(USER, "first\nsecond"),)

    def test_client_not_ready(self):
        client = type("Client", (), {"user": None})()
        turns = ConversationAssembler(client).assemble([], "<@5> hi")

        assert turns == (ConversationTurn(USER, "<@5> hi"),)
