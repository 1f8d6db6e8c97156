"""
Scripted walk-through of a branching conversation.

Each step is an independent function so you can run and inspect individual
steps in isolation. loguru logs every answer and, at the end, the whole tree
with the active path marked.

Usage
-----
Run end-to-end with the default OpenAI backend:

    python -m branch_chat_backend.demo

Select a different LLM backend, model or locale via environment variables:

    BACKEND=ollama MODEL=llama3.2 python -m branch_chat_backend.demo
    LOCALE=en STREAMING=0 python -m branch_chat_backend.demo

Steps at a glance
-----------------
1  step1_start()          Create a conversation and ask the first question.
2  step2_follow_up()      Continue the active path with a follow-up.
3  step3_fork()           Branch from the first answer and ask something else.
4  step4_quote()          Ask about a quoted excerpt of the latest answer.
5  step5_switch_back()    Select the original follow-up branch again.
"""

import asyncio

from loguru import logger

from branch_chat_backend.app import build_controller
from branching_toolkit.chat.prompts import QuotedMessage
from branching_toolkit.chat.session import SessionView, TurnResult
from branching_toolkit.conversation_database.controller import BranchingChatController, MessageInput
from branching_toolkit.conversation_database.data_models.message import Message
from branching_toolkit.llms.base import LLM
from branching_toolkit.settings import AppSettings

QUESTIONS = {
    "ja": ["木製パレットの利点は何ですか？", "耐久性についてもっと詳しく教えてください。", "プラスチック製と比べるとどうですか？", "これを簡単に説明してください。"],
    "en": [
        "What are the benefits of wooden pallets?",
        "Tell me more about their durability.",
        "How do they compare to plastic pallets?",
        "Can you explain this in simpler terms?",
    ],
}


def log_tree(view: SessionView) -> None:
    """Log every message as an indented tree, marking the active path with '*'."""
    nodes = view.all_messages
    active = set(view.current_path)

    def walk(message: Message, depth: int) -> None:
        marker = "*" if message.id in active else " "
        logger.info(f"{marker} {'  ' * depth}[{message.role}] {message.id}: {message.content[:60]!r}")
        for child_id in message.children:
            walk(nodes[child_id], depth + 1)

    for root in (m for m in nodes.values() if m.parent_id is None):
        walk(root, 0)


def log_turn(step: str, result: TurnResult) -> None:
    if result.error:
        logger.warning(f"[{step}] Turn failed: {result.error} (shown: {result.display_message!r})")
        return
    answer = result.assistant_message.content if result.assistant_message else ""
    logger.info(f"[{step}] Answer: {answer[:200]!r}")
    if result.sync_error:
        logger.warning(f"[{step}] Not persisted yet: {result.sync_error}")


async def step1_start(controller: BranchingChatController, question: str) -> tuple[str, TurnResult]:
    conversation = await controller.create_conversation()
    logger.info(f"[Step 1] Conversation {conversation.id} created")
    result = await controller.send_message(conversation.id, MessageInput(content=question))
    log_turn("Step 1", result)
    return conversation.id, result


async def step2_follow_up(controller: BranchingChatController, conversation_id: str, question: str) -> TurnResult:
    result = await controller.send_message(conversation_id, MessageInput(content=question))
    log_turn("Step 2", result)
    return result


async def step3_fork(
    controller: BranchingChatController, conversation_id: str, fork_id: str, question: str
) -> TurnResult:
    """Attach a new question under 'fork_id', leaving the existing follow-up untouched."""
    await controller.create_branch(conversation_id, fork_id)
    result = await controller.send_message(conversation_id, MessageInput(content=question))
    log_turn("Step 3", result)
    return result


async def step4_quote(
    controller: BranchingChatController, conversation_id: str, quoted: Message, question: str
) -> TurnResult:
    excerpt = quoted.content[:80]
    logger.info(f"[Step 4] Quoting {excerpt!r}")
    result = await controller.send_message(
        conversation_id,
        MessageInput(
            content=question,
            quoted_message=QuotedMessage(id=quoted.id, role=quoted.role, content=quoted.content),
            quoted_text=excerpt,
        ),
    )
    log_turn("Step 4", result)
    return result


async def step5_switch_back(
    controller: BranchingChatController, conversation_id: str, message_id: str
) -> SessionView:
    view = await controller.select_message(conversation_id, message_id)
    logger.info(f"[Step 5] Active path now ends at {view.current_path[-1]} ({len(view.current_path)} messages)")
    return view


async def run_demo(settings: AppSettings, llm: LLM | None = None) -> SessionView:
    logger.info("======= Branching conversation demo: start =======")
    logger.info(f"backend={settings.backend!r}  model={settings.ai_model!r}  locale={settings.locale!r}")
    controller = build_controller(settings, llm=llm)
    questions = QUESTIONS.get(settings.locale, QUESTIONS["en"])

    conversation_id, first = await step1_start(controller, questions[0])
    if first.assistant_message is None:
        logger.error("First turn produced no answer, stopping")
        return await controller.switch_conversation(conversation_id)

    follow_up = await step2_follow_up(controller, conversation_id, questions[1])
    fork = await step3_fork(controller, conversation_id, first.assistant_message.id, questions[2])
    if fork.assistant_message is not None:
        await step4_quote(controller, conversation_id, fork.assistant_message, questions[3])

    view = await controller.switch_conversation(conversation_id)
    if follow_up.assistant_message is not None:
        view = await step5_switch_back(controller, conversation_id, follow_up.assistant_message.id)

    conversation = await controller.get_conversation(conversation_id)
    logger.info(f"Title: {conversation.title!r}")
    log_tree(view)
    logger.info("======= Branching conversation demo: done =======")
    return view


if __name__ == "__main__":
    asyncio.run(run_demo(AppSettings.from_env()))
