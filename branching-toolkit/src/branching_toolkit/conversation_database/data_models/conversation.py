"""
Conversation data model and storage interface.

A 'Conversation' record carries the tree's bookkeeping: the id of its root
message and 'current_path', the root-to-leaf walk the user is looking at. The
messages themselves live in the 'MessageDatabase'.

The 'ConversationDatabase' ABC is the pluggable storage backend for
conversation records. Concrete implementation: 'InMemoryConversationDatabase'.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel, Field


class Conversation(BaseModel):
    """A single branching conversation."""

    id: str
    title: str
    create_timestamp: int
    update_timestamp: int
    root_message_id: str | None = None
    current_path: list[str] = Field(default_factory=list)


class ConversationDatabase(ABC):
    """Abstract repository for 'Conversation' records."""

    @abstractmethod
    async def create_conversation(self, conversation: Conversation) -> Conversation:
        pass

    @abstractmethod
    async def list_conversations(self) -> list[Conversation]:
        """Return all conversations, most recently updated first."""
        pass

    @abstractmethod
    async def get_conversation_by_id(self, conversation_id: str) -> Conversation | None:
        pass

    @abstractmethod
    async def update_conversation(self, conversation: Conversation) -> Conversation:
        pass

    @abstractmethod
    async def delete_conversation(self, conversation_id: str) -> bool:
        pass
