"""Tests for inbound message classification."""

import pytest

from routing import OWNER_ID, Route, classify, forget_id_rejected, strip_trigger

USER = 42


def route_of(content, author=USER, is_reply=False):
    return classify(content, author, "map", "!", is_reply=is_reply)


class TestOwnerCommands:
    def test_shutdown(self):
        assert route_of("Shut Down", OWNER_ID).route is Route.SHUTDOWN

    def test_mood_keeps_text(self):
        result = route_of("Mood Sarcastic Pirate", OWNER_ID)
        assert result.route is Route.MOOD
        assert result.text == "Sarcastic Pirate"

    def test_others_cannot_use_owner_commands(self):
        assert route_of("shut down").route is Route.IGNORE
        assert route_of("mood happy").route is Route.IGNORE


class TestClassify:
    def test_describe_image_beats_everything_else(self):
        assert route_of("map please describe this image").route is Route.DESCRIBE_IMAGE
        assert route_of("Describe the IMAGE", is_reply=True).route is Route.DESCRIBE_IMAGE

    def test_trigger_is_case_insensitive_and_stripped(self):
        result = route_of("MAP what's up?")
        assert result.route is Route.CHAT
        assert result.text == "what's up?"

    def test_prefixed_commands(self):
        assert route_of("!remember Bob likes tea").route is Route.COMMAND
        assert route_of("!list", is_reply=True).route is Route.COMMAND

    def test_replies_go_to_chat(self):
        result = route_of("thanks!", is_reply=True)
        assert result.route is Route.CHAT
        assert result.text == "thanks!"

    def test_plain_chatter_is_ignored(self):
        assert route_of("hello everyone").route is Route.IGNORE


def test_strip_trigger():
    assert strip_trigger("Map   hello", "map") == "hello"
    assert strip_trigger("hello map", "map") == "hello map"


@pytest.mark.parametrize("argument, rejected", [
    ("0", True), ("1", True), ("-3", True), ("2", False), ("12", False), ("abc", False),
])
def test_forget_id_rejected(argument, rejected):
    assert forget_id_rejected(argument) is rejected
