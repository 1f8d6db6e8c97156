"""
Message data model and storage interface.

Messages form a tree within a conversation via 'parent_id'. Any message can be
the parent of several children, which is how branches are represented: a fork
is simply a second child attached to an existing node. 'children' is the
forward view of the same links and is maintained exclusively by 'MessageStore',
never set by hand. Storage backends persist only 'parent_id'; 'children' is
rebuilt when a tree is loaded.

'metadata' stores the model name and token usage of assistant messages.

The 'MessageDatabase' ABC is the pluggable storage backend. Concrete
implementation: 'InMemoryMessageDatabase'.
"""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from branching_toolkit.llms.base import Roles


class Message(BaseModel):
    """
    A single node of the conversation tree.

    'branch_index' is the position of the message among its parent's children
    at the moment it was attached, 0 for the root.
    """

    id: str
    role: Roles
    content: str
    conversation_id: str
    create_timestamp: int
    parent_id: str | None = None
    children: list[str] = Field(default_factory=list)
    branch_index: int = 0
    metadata: dict[str, Any] | None = None


class MessageDatabase(ABC):
    """Abstract repository for 'Message' records."""

    @abstractmethod
    async def upsert_message(self, message: Message) -> Message:
        pass

    @abstractmethod
    async def get_messages_by_conversation_id(self, conversation_id: str) -> list[Message]:
        """Return all messages of a conversation ordered by 'create_timestamp'."""
        pass

    @abstractmethod
    async def delete_messages_by_conversation_id(self, conversation_id: str) -> int:
        """Delete every message of a conversation and return how many were removed."""
        pass
