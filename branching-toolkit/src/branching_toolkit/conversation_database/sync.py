"""
Sync protocol between a client-side tree and the persisted tree.

'TreeSync' implements the persistence contract the session talks to on top of
a 'ConversationDatabase' and a 'MessageDatabase':

    load_conversation_tree  rebuilds 'children' from 'parent_id' and returns
                            the messages together with the stored path.
    upsert_messages         validates a whole batch (messages plus path)
                            before writing anything, so a rejected batch
                            leaves the store untouched.

Message upserts are idempotent by id: resending a message with the same
content is a no-op. A message whose parent is neither persisted nor earlier in
the same batch is rejected with 'DependencyError'. 'current_path' is always
overwritten as a whole; concurrent path writers resolve last-writer-wins.
"""

from collections.abc import Sequence

from loguru import logger
from pydantic import BaseModel

from branching_toolkit.conversation_database.data_models.conversation import Conversation, ConversationDatabase
from branching_toolkit.conversation_database.data_models.message import Message, MessageDatabase
from branching_toolkit.errors import DependencyError, NotFoundError, TransportError, ValidationError
from branching_toolkit.llms.base import Roles
from branching_toolkit.tree.paths import is_contiguous_path
from branching_toolkit.tree.store import MessageStore
from branching_toolkit.utils.database import generate_uid
from branching_toolkit.utils.time import get_current_timestamp


class ConversationTree(BaseModel):
    """A conversation's full message set keyed by id and its active path."""

    messages: dict[str, Message]
    current_path: list[str]


class TreeSync:
    def __init__(self, conversation_db: ConversationDatabase, message_db: MessageDatabase):
        self.conversation_db = conversation_db
        self.message_db = message_db

    async def create_conversation(self, title: str, conversation_id: str | None = None) -> Conversation:
        create_time = get_current_timestamp()
        conversation = await self.conversation_db.create_conversation(
            Conversation(
                id=conversation_id or generate_uid("conv"),
                title=title,
                create_timestamp=create_time,
                update_timestamp=create_time,
            )
        )
        logger.info(f"Created conversation {conversation.id} ({conversation.title!r})")
        return conversation

    async def get_conversation(self, conversation_id: str) -> Conversation:
        conversation = await self.conversation_db.get_conversation_by_id(conversation_id)
        if conversation is None:
            raise NotFoundError("conversation", conversation_id)
        return conversation

    async def list_conversations(self) -> list[Conversation]:
        return await self.conversation_db.list_conversations()

    async def update_title(self, conversation_id: str, title: str) -> Conversation:
        conversation = await self.get_conversation(conversation_id)
        return await self.conversation_db.update_conversation(
            conversation.model_copy(update={"title": title, "update_timestamp": get_current_timestamp()})
        )

    async def delete_conversation(self, conversation_id: str) -> bool:
        await self.get_conversation(conversation_id)
        removed = await self.message_db.delete_messages_by_conversation_id(conversation_id)
        deleted = await self.conversation_db.delete_conversation(conversation_id)
        logger.info(f"Deleted conversation {conversation_id} and {removed} messages")
        return deleted

    async def load_conversation_tree(self, conversation_id: str) -> ConversationTree:
        conversation = await self.get_conversation(conversation_id)
        messages = await self.message_db.get_messages_by_conversation_id(conversation_id)
        store = MessageStore.from_messages(messages)
        return ConversationTree(messages=store.messages(), current_path=list(conversation.current_path))

    async def upsert_messages(
        self, conversation_id: str, messages: Sequence[Message], current_path: Sequence[str]
    ) -> ConversationTree:
        """Persist 'messages' and overwrite the stored path as one unit.

        Raises 'DependencyError' naming the first missing parent, or
        'ValidationError' for a malformed message or a non-contiguous path; in
        both cases nothing has been written.
        """
        conversation = await self.get_conversation(conversation_id)
        persisted = await self.message_db.get_messages_by_conversation_id(conversation_id)
        known: dict[str, Message] = {message.id: message for message in persisted}
        has_root = any(message.parent_id is None for message in persisted)
        writes: list[Message] = []

        for message in messages:
            self._validate(message, conversation_id)
            previous = known.get(message.id)
            if previous is not None and previous.parent_id != message.parent_id:
                raise ValidationError(f"Parent of message {message.id} cannot change")
            if message.parent_id is not None and message.parent_id not in known:
                raise DependencyError(message.parent_id)
            if previous is None and message.parent_id is None:
                if has_root:
                    raise ValidationError(f"Conversation {conversation_id} already has a root message")
                has_root = True
            known[message.id] = message
            if previous is not None and previous.content == message.content and previous.metadata == message.metadata:
                continue
            writes.append(message)

        tree = MessageStore.from_messages(known.values())
        if not is_contiguous_path(current_path, tree.view()):
            raise ValidationError(f"Path {list(current_path)} is not a contiguous root-to-node walk")
        root_id = tree.root_id()

        try:
            for message in writes:
                await self.message_db.upsert_message(message)
            await self.conversation_db.update_conversation(
                conversation.model_copy(
                    update={
                        "current_path": list(current_path),
                        "root_message_id": root_id,
                        "update_timestamp": get_current_timestamp(),
                    }
                )
            )
        except (ConnectionError, TimeoutError) as exc:
            raise TransportError(f"Failed to persist conversation {conversation_id}: {exc}") from exc

        logger.debug(
            f"Synced conversation {conversation_id}: {len(writes)} of {len(messages)} messages written, "
            f"path length {len(current_path)}"
        )
        return ConversationTree(messages=tree.messages(), current_path=list(current_path))

    async def save_current_path(self, conversation_id: str, current_path: Sequence[str]) -> ConversationTree:
        return await self.upsert_messages(conversation_id, [], current_path)

    @staticmethod
    def _validate(message: Message, conversation_id: str) -> None:
        if not message.id:
            raise ValidationError("Message id is required")
        if message.conversation_id != conversation_id:
            raise ValidationError(f"Message {message.id} does not belong to conversation {conversation_id}")
        if message.role not in (Roles.USER, Roles.ASSISTANT):
            raise ValidationError(f"Message {message.id} has unsupported role {message.role!r}")
