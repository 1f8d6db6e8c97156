"""
Branching conversation toolkit.

Conversations are trees of messages; the active thread is a root-to-node path.
The usual entry point is the controller, wired from two storage backends, an
LLM backend and the application settings:

    from branching_toolkit import (
        AppSettings, BranchingChatController, TreeSync,
        InMemoryConversationDatabase, InMemoryMessageDatabase,
    )

Lower-level building blocks (the tree arena, the path resolver and the branch
engine) are importable from 'branching_toolkit.tree'.
"""

from branching_toolkit.chat.session import ConversationSession, SessionView, TurnEvent, TurnResult, TurnState
from branching_toolkit.conversation_database.controller import (
    BranchingChatController,
    ConversationInput,
    MessageInput,
)
from branching_toolkit.conversation_database.in_memory import InMemoryConversationDatabase, InMemoryMessageDatabase
from branching_toolkit.conversation_database.sync import ConversationTree, TreeSync
from branching_toolkit.errors import (
    BranchingChatError,
    DependencyError,
    NotFoundError,
    ProviderError,
    TransportError,
    ValidationError,
)
from branching_toolkit.settings import AppSettings

__all__ = [
    "AppSettings",
    "BranchingChatController",
    "BranchingChatError",
    "ConversationInput",
    "ConversationSession",
    "ConversationTree",
    "DependencyError",
    "InMemoryConversationDatabase",
    "InMemoryMessageDatabase",
    "MessageInput",
    "NotFoundError",
    "ProviderError",
    "SessionView",
    "TransportError",
    "TreeSync",
    "TurnEvent",
    "TurnResult",
    "TurnState",
    "ValidationError",
]
