"""Tests for prompt builders."""

from prompts import (
    NO_NEW_FACTS,
    build_chat_messages,
    build_direct_query,
    build_extraction_prompt,
    build_image_description_prompt,
    build_image_url_fallback_prompt,
    build_reply_to_bot_query,
    build_reply_to_user_query,
    build_search_messages,
    fold_image_descriptions,
)


def test_chat_messages_embed_personality_and_facts():
    messages = build_chat_messages("grumpy pirate", "Bob likes tea,Alice likes cats", "hello")

    assert [m["role"] for m in messages] == ["system", "user"]
    system = messages[0]["content"]
    assert "grumpy pirate" in system
    assert "Bob likes tea,Alice likes cats" in system
    assert "username" in system
    assert messages[1]["content"] == "hello"


def test_search_messages_ask_for_one_sentence():
    messages = build_search_messages("why is the sky blue")
    assert "one-sentence" in messages[0]["content"]
    assert messages[1] == {"role": "user", "content": "why is the sky blue"}


def test_image_prompt_defaults_personality():
    prompt = build_image_description_prompt(None, "facts here")
    assert "personality: concise" in prompt
    assert "facts here" in prompt


def test_fallback_prompt_contains_url():
    assert "https://cdn.test/cat.png" in build_image_url_fallback_prompt("https://cdn.test/cat.png")


def test_extraction_prompt_lists_only_non_system_facts():
    prompt = build_extraction_prompt(
        {1: "You are in the server called X.", 2: "Bob likes tea", 7: "Alice likes cats"},
        "I just adopted a dog",
        "Congrats!",
    )
    assert "You are in the server called X." not in prompt
    assert "2: Bob likes tea" in prompt
    assert "7: Alice likes cats" in prompt
    assert "I just adopted a dog" in prompt
    assert NO_NEW_FACTS in prompt
    assert '"|"' in prompt


def test_extraction_prompt_with_no_facts():
    assert "(nothing yet)" in build_extraction_prompt({}, "hi", "hello")


def test_query_builders():
    assert build_direct_query("alice", 42, "hi there") == "(username: alice, userid: 42) hi there  "
    reply_bot = build_reply_to_bot_query("alice", 42, "previous answer", "thanks", "a cat photo")
    assert 'Your previous message was: "previous answer"' in reply_bot
    assert reply_bot.endswith("User's reply: thanks a cat photo")
    reply_user = build_reply_to_user_query("alice", 42, ("bob", "I like tea"), "me too")
    assert "replying to bob's message: \"I like tea\"" in reply_user


def test_fold_image_descriptions():
    assert fold_image_descriptions([]) == " "
    assert fold_image_descriptions(["a cat", "", "a dog"]) == "a cat a dog"
