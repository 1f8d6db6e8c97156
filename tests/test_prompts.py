"""Tests for locale lookups and quoted prompts (branching_toolkit/chat/prompts.py)."""

from branching_toolkit.chat.prompts import (
    QUOTE_MAX_LENGTH,
    QuotedMessage,
    build_quoted_prompt,
    fallback_message_for,
    get_quote_type,
    is_placeholder_title,
    placeholder_title_for,
    system_prompt_for,
)
from branching_toolkit.llms.base import Roles
from branching_toolkit.utils.text import truncate_text


def test_unknown_locale_falls_back_to_japanese():
    assert system_prompt_for("fr") == system_prompt_for("ja")
    assert fallback_message_for("fr") == "申し訳ございませんが、現在応答を生成できません。後でもう一度お試しください。"
    assert placeholder_title_for("fr") == "新しい会話"


def test_placeholder_titles_of_every_locale_are_recognised():
    assert is_placeholder_title("新しい会話")
    assert is_placeholder_title("New Conversation")
    assert not is_placeholder_title("Wooden pallets")


def test_quote_type():
    assert get_quote_type("part", "part of a longer answer") == "partial"
    assert get_quote_type("whole answer", "whole answer") == "full"


def test_japanese_partial_quote_of_assistant():
    quoted = QuotedMessage(id="m1", role=Roles.ASSISTANT, content="木製パレットは再利用できます。")
    prompt = build_quoted_prompt("詳しく教えて", "再利用", quoted, locale="ja")

    assert prompt == '【部分引用：AIの回答より】\n"再利用"\n\n上記の引用について：詳しく教えて'


def test_english_full_quote_of_user():
    quoted = QuotedMessage(id="m1", role=Roles.USER, content="How heavy is a pallet?")
    prompt = build_quoted_prompt("Why did I ask this?", "How heavy is a pallet?", quoted, locale="en")

    assert prompt.startswith("[Full quote from the user's message]\n")
    assert prompt.endswith("Regarding the quote above: Why did I ask this?")


def test_long_excerpts_are_truncated_after_classification():
    content = "x" * 400
    quoted = QuotedMessage(id="m1", role=Roles.ASSISTANT, content=content)
    prompt = build_quoted_prompt("?", content, quoted, locale="en")

    assert "[Full quote" in prompt
    assert f'"{"x" * QUOTE_MAX_LENGTH}..."' in prompt


def test_quote_without_source_message_is_partial_from_assistant():
    prompt = build_quoted_prompt("why?", "some text", locale="en")
    assert prompt.startswith("[Partial quote from the AI's answer]")


def test_truncate_text():
    assert truncate_text("short") == "short"
    assert truncate_text("a" * 60) == "a" * 50 + "..."
    assert truncate_text("abcdef", 3) == "abc..."
