"""
Branching chat controller (Facade).

'BranchingChatController' is the single entry point for application logic. It
coordinates the sync layer, the LLM backend and the application settings, and
owns one 'ConversationSession' per open conversation so every conversation's
tree has exactly one mutating owner.

Conversation lifecycle (create, list, switch, rename, delete) lives here; the
turn protocol and branching live in the session. The id of the conversation
last switched to is kept in 'AppSettings.last_conversation_id' and written
back through the settings' own save boundary when a path is configured.
"""

from collections.abc import AsyncGenerator, Sequence
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel

from branching_toolkit.chat.prompts import QuotedMessage, placeholder_title_for
from branching_toolkit.chat.session import ConversationSession, SessionView, TurnEvent, TurnResult, TurnState
from branching_toolkit.conversation_database.data_models.conversation import Conversation
from branching_toolkit.conversation_database.data_models.message import Message
from branching_toolkit.conversation_database.sync import ConversationTree, TreeSync
from branching_toolkit.errors import ValidationError
from branching_toolkit.llms.base import LLM
from branching_toolkit.settings import AppSettings


class MessageInput(BaseModel):
    content: str
    branch_parent_id: str | None = None
    quoted_message: QuotedMessage | None = None
    quoted_text: str | None = None


class ConversationInput(BaseModel):
    title: str | None = None


class BranchingChatController:
    def __init__(
        self,
        sync: TreeSync,
        llm: LLM,
        settings: AppSettings,
        settings_path: Path | None = None,
    ):
        self.sync = sync
        self.llm = llm
        self.settings = settings
        self.settings_path = settings_path
        self.sessions: dict[str, ConversationSession] = {}
        self.current_conversation_id: str | None = None

    async def create_conversation(self, conversation_input: ConversationInput | None = None) -> Conversation:
        title = (conversation_input.title if conversation_input else None) or placeholder_title_for(
            self.settings.locale
        )
        conversation = await self.sync.create_conversation(title)
        self._set_current(conversation.id)
        return conversation

    async def list_conversations(self) -> list[Conversation]:
        return await self.sync.list_conversations()

    async def get_conversation(self, conversation_id: str) -> Conversation:
        return await self.sync.get_conversation(conversation_id)

    async def update_conversation(self, conversation_id: str, conversation_input: ConversationInput) -> Conversation:
        if not conversation_input.title:
            return await self.sync.get_conversation(conversation_id)
        return await self.sync.update_title(conversation_id, conversation_input.title)

    async def get_session(self, conversation_id: str) -> ConversationSession:
        session = self.sessions.get(conversation_id)
        if session is None:
            session = ConversationSession(conversation_id, self.sync, self.llm, self.settings)
            await session.load()
            self.sessions[conversation_id] = session
        return session

    async def switch_conversation(self, conversation_id: str) -> SessionView:
        session = await self.get_session(conversation_id)
        self._set_current(conversation_id)
        return session.view()

    async def restore_last_conversation(self) -> Conversation | None:
        """Reopen the last used conversation, else the most recently updated one."""
        conversations = await self.sync.list_conversations()
        if not conversations:
            return None
        last_id = self.settings.last_conversation_id
        conversation = next((c for c in conversations if c.id == last_id), conversations[0])
        self._set_current(conversation.id)
        return conversation

    async def delete_conversation(self, conversation_id: str) -> bool:
        deleted = await self.sync.delete_conversation(conversation_id)
        self.sessions.pop(conversation_id, None)
        if self.current_conversation_id == conversation_id or self.settings.last_conversation_id == conversation_id:
            remaining = await self.sync.list_conversations()
            self._set_current(remaining[0].id if remaining else None)
        return deleted

    async def get_conversation_tree(self, conversation_id: str) -> ConversationTree:
        return await self.sync.load_conversation_tree(conversation_id)

    async def sync_messages(
        self, conversation_id: str, messages: Sequence[Message], current_path: Sequence[str]
    ) -> ConversationTree:
        """Apply an externally produced delta and refresh the open session.

        Rejected with 'ValidationError' before anything is written while the
        open session has a turn in flight.
        """
        session = self.sessions.get(conversation_id)
        if session is not None and session.state is not TurnState.IDLE:
            raise ValidationError(f"Conversation {conversation_id} has a turn in flight, sync it afterwards")
        tree = await self.sync.upsert_messages(conversation_id, messages, current_path)
        if session is not None:
            await session.load()
        return tree

    async def send_message(self, conversation_id: str, message_input: MessageInput) -> TurnResult:
        session = await self.get_session(conversation_id)
        return await session.send_message(
            message_input.content,
            branch_parent_id=message_input.branch_parent_id,
            quoted_message=message_input.quoted_message,
            quoted_text=message_input.quoted_text,
        )

    async def send_message_stream(
        self, conversation_id: str, message_input: MessageInput
    ) -> AsyncGenerator[TurnEvent, Any]:
        session = await self.get_session(conversation_id)
        async for event in session.send_message_stream(
            message_input.content,
            branch_parent_id=message_input.branch_parent_id,
            quoted_message=message_input.quoted_message,
            quoted_text=message_input.quoted_text,
        ):
            yield event

    async def select_message(self, conversation_id: str, message_id: str) -> SessionView:
        session = await self.get_session(conversation_id)
        return await session.select_message(message_id)

    async def create_branch(self, conversation_id: str, message_id: str) -> SessionView:
        session = await self.get_session(conversation_id)
        return await session.create_branch(message_id)

    def _set_current(self, conversation_id: str | None) -> None:
        self.current_conversation_id = conversation_id
        self.settings.last_conversation_id = conversation_id
        if self.settings_path is None:
            return
        try:
            self.settings.save(self.settings_path)
        except OSError as exc:
            logger.warning(f"Could not save settings to {self.settings_path}: {exc}")
