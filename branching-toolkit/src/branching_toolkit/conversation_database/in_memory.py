"""
In-memory storage backends.

Dictionaries keyed by id, suitable for tests, demos and single-process use.
Records are copied on the way in and out so callers cannot mutate stored state
by holding on to a returned model.
"""

from branching_toolkit.conversation_database.data_models.conversation import Conversation, ConversationDatabase
from branching_toolkit.conversation_database.data_models.message import Message, MessageDatabase


class InMemoryConversationDatabase(ConversationDatabase):
    def __init__(self) -> None:
        self.conversations: dict[str, Conversation] = {}

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        self.conversations[conversation.id] = conversation.model_copy(deep=True)
        return conversation.model_copy(deep=True)

    async def list_conversations(self) -> list[Conversation]:
        # Ties on the millisecond timestamp go to the most recent write.
        latest_first = reversed(list(self.conversations.values()))
        return [
            conversation.model_copy(deep=True)
            for conversation in sorted(latest_first, key=lambda c: c.update_timestamp, reverse=True)
        ]

    async def get_conversation_by_id(self, conversation_id: str) -> Conversation | None:
        conversation = self.conversations.get(conversation_id)
        return conversation.model_copy(deep=True) if conversation else None

    async def update_conversation(self, conversation: Conversation) -> Conversation:
        self.conversations.pop(conversation.id, None)
        self.conversations[conversation.id] = conversation.model_copy(deep=True)
        return conversation.model_copy(deep=True)

    async def delete_conversation(self, conversation_id: str) -> bool:
        return self.conversations.pop(conversation_id, None) is not None


class InMemoryMessageDatabase(MessageDatabase):
    def __init__(self) -> None:
        self.messages: dict[str, Message] = {}

    async def upsert_message(self, message: Message) -> Message:
        stored = message.model_copy(update={"children": []}, deep=True)
        self.messages[message.id] = stored
        return stored.model_copy(deep=True)

    async def get_messages_by_conversation_id(self, conversation_id: str) -> list[Message]:
        messages = [m for m in self.messages.values() if m.conversation_id == conversation_id]
        return [m.model_copy(deep=True) for m in sorted(messages, key=lambda m: m.create_timestamp)]

    async def delete_messages_by_conversation_id(self, conversation_id: str) -> int:
        doomed = [message_id for message_id, m in self.messages.items() if m.conversation_id == conversation_id]
        for message_id in doomed:
            del self.messages[message_id]
        return len(doomed)
