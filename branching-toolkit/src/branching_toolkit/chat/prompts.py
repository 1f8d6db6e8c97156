"""
Locale-dependent prompt text and quoted-reply prompt construction.

Everything that varies with the UI language lives here as plain lookups keyed
by locale: the system prompt, the apology shown when a turn fails, and the
placeholder title of a fresh conversation.
"""

from typing import Literal

from pydantic import BaseModel

from branching_toolkit.llms.base import Roles

Locale = Literal["ja", "en"]
DEFAULT_LOCALE: Locale = "ja"

QUOTE_MAX_LENGTH = 300
TITLE_MAX_LENGTH = 30

SYSTEM_PROMPTS: dict[str, str] = {
    "ja": (
        "あなたは親切で知識豊富なAIアシスタントです。日本語で分かりやすく回答してください。\n\n"
        "ユーザーが過去のメッセージや特定のテキストを引用して質問した場合は、以下の点に注意して回答してください：\n\n"
        "1. 引用された内容を正確に理解し、それに基づいて回答する\n"
        "2. 引用部分が不明確な場合は、確認を求める\n"
        "3. 引用内容に対する具体的な説明や関連情報を提供する\n"
        "4. 引用された文脈を考慮して適切な詳しさで説明する\n"
        "5. 必要に応じて、引用部分を参照しながら説明する\n\n"
        "引用がない通常の質問の場合は、これまで通り親切で分かりやすい回答を心がけてください。"
    ),
    "en": (
        "You are a helpful and knowledgeable AI assistant. Answer clearly in English.\n\n"
        "When the user quotes an earlier message or a specific excerpt, keep the following in mind:\n\n"
        "1. Understand the quoted content accurately and base your answer on it\n"
        "2. Ask for clarification if the quoted part is ambiguous\n"
        "3. Give concrete explanations and related information about the quoted content\n"
        "4. Adjust the level of detail to the quoted context\n"
        "5. Refer back to the quoted part where it helps the explanation\n\n"
        "For ordinary questions without a quote, answer in the same helpful and clear way."
    ),
}

FALLBACK_MESSAGES: dict[str, str] = {
    "ja": "申し訳ございませんが、現在応答を生成できません。後でもう一度お試しください。",
    "en": "Sorry, a response cannot be generated right now. Please try again later.",
}

PLACEHOLDER_TITLES: dict[str, str] = {
    "ja": "新しい会話",
    "en": "New Conversation",
}

_QUOTE_LABELS: dict[str, dict[str, str]] = {
    "ja": {
        "partial": "部分引用",
        "full": "全文引用",
        Roles.USER: "ユーザーのメッセージ",
        Roles.ASSISTANT: "AIの回答",
    },
    "en": {
        "partial": "Partial quote",
        "full": "Full quote",
        Roles.USER: "the user's message",
        Roles.ASSISTANT: "the AI's answer",
    },
}


class QuotedMessage(BaseModel):
    """The message a quoted excerpt was taken from."""

    id: str
    role: Roles
    content: str


def system_prompt_for(locale: str) -> str:
    return SYSTEM_PROMPTS.get(locale, SYSTEM_PROMPTS[DEFAULT_LOCALE])


def fallback_message_for(locale: str) -> str:
    return FALLBACK_MESSAGES.get(locale, FALLBACK_MESSAGES[DEFAULT_LOCALE])


def placeholder_title_for(locale: str) -> str:
    return PLACEHOLDER_TITLES.get(locale, PLACEHOLDER_TITLES[DEFAULT_LOCALE])


def is_placeholder_title(title: str) -> bool:
    return title in PLACEHOLDER_TITLES.values()


def get_quote_type(quoted_text: str, original_content: str) -> Literal["partial", "full"]:
    return "partial" if len(quoted_text) < len(original_content) else "full"


def build_quoted_prompt(
    user_message: str,
    quoted_text: str,
    quoted_message: QuotedMessage | None = None,
    locale: str = DEFAULT_LOCALE,
) -> str:
    """Wrap a quoted excerpt and the user's question into one prompt.

    Without the source message the quote is treated as partial and attributed
    to the assistant, which is what the UI quotes in practice.
    """
    labels = _QUOTE_LABELS.get(locale, _QUOTE_LABELS[DEFAULT_LOCALE])
    quote_type = get_quote_type(quoted_text, quoted_message.content) if quoted_message else "partial"
    sender = labels[quoted_message.role] if quoted_message else labels[Roles.ASSISTANT]
    if len(quoted_text) > QUOTE_MAX_LENGTH:
        quoted_text = quoted_text[:QUOTE_MAX_LENGTH] + "..."

    if locale == "en":
        return f'[{labels[quote_type]} from {sender}]\n"{quoted_text}"\n\nRegarding the quote above: {user_message}'
    return f'【{labels[quote_type]}：{sender}より】\n"{quoted_text}"\n\n上記の引用について：{user_message}'
