"""
Error hierarchy for the branching conversation toolkit.

All toolkit exceptions inherit from 'BranchingChatError' so API boundaries can
catch everything raised by the core with one clause, while the session and the
sync layer catch the specific kinds they know how to recover from.

    BranchingChatError
    ├── ValidationError     malformed message, bad parent reference, broken path
    ├── DependencyError     write attempted before its parent message is persisted
    ├── NotFoundError       conversation or message id absent from the store
    ├── ProviderError       completion service failed or returned no content
    └── TransportError      network-level failure reaching store or provider

'ValidationError' and 'DependencyError' signal ordering or programming bugs and
are always surfaced unmodified. 'ProviderError' and 'TransportError' raised
during a turn are recovered by 'ConversationSession'.
"""


class BranchingChatError(Exception):
    """Base class for all toolkit errors."""


class ValidationError(BranchingChatError, ValueError):
    """A message or path violates the tree invariants."""


class DependencyError(BranchingChatError):
    """A message was written before the message it depends on was persisted."""

    def __init__(self, missing_id: str, message: str | None = None):
        self.missing_id = missing_id
        super().__init__(message or f"Parent message {missing_id} is not persisted")


class NotFoundError(BranchingChatError, LookupError):
    """An operation addressed a conversation or message that does not exist."""

    def __init__(self, kind: str, id: str):
        self.kind = kind
        self.id = id
        super().__init__(f"{kind.capitalize()} with id {id} not found")


class ProviderError(BranchingChatError):
    """The completion service failed or produced no content."""


class TransportError(BranchingChatError):
    """The store or the completion service could not be reached."""
