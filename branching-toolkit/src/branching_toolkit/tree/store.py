"""
In-memory message arena for one conversation.

'MessageStore' is the only component allowed to mutate the links between
messages. Nodes are kept in a single mapping indexed by id and both sides of
every edge ('parent_id' on the child, the id inside the parent's 'children')
are written by the same call, so callers cannot update one without the other.

The store hands out copies: mutating a 'Message' returned by 'get' never
changes the tree. Content edits go through 'append_content' / 'set_content'.
"""

from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType
from typing import Any

from loguru import logger

from branching_toolkit.errors import NotFoundError, ValidationError
from branching_toolkit.conversation_database.data_models.message import Message
from branching_toolkit.llms.base import Roles
from branching_toolkit.tree.paths import resolve_path

_TREE_ROLES = (Roles.USER, Roles.ASSISTANT)


class MessageStore:
    """
    Mapping of message id to message node with referential integrity.

    A well-formed conversation has exactly one root. 'upsert' refuses to create
    a second one; trees loaded with 'from_messages' may contain several, which
    'root_id' reports as corruption instead of picking one.
    """

    def __init__(self) -> None:
        self._messages: dict[str, Message] = {}
        self.conversation_id: str | None = None

    @classmethod
    def from_messages(cls, messages: Iterable[Message]) -> "MessageStore":
        """Build a store from messages given in any order.

        Stored 'children' lists are ignored and rebuilt from 'parent_id'.
        Siblings keep the relative order in which they appear in 'messages'.
        """
        incoming = list(messages)
        by_id = {message.id: message for message in incoming}
        depths: dict[str, int] = {}

        def depth_of(message_id: str) -> int:
            chain: list[str] = []
            current: str | None = message_id
            while current is not None and current not in depths:
                if current in chain:
                    raise ValidationError(f"Cycle detected through message {current}")
                if current not in by_id:
                    raise ValidationError(f"Message {chain[-1]} references missing parent {current}")
                chain.append(current)
                current = by_id[current].parent_id
            base = -1 if current is None else depths[current]
            for offset, node_id in enumerate(reversed(chain), start=1):
                depths[node_id] = base + offset
            return depths[message_id]

        store = cls()
        for message in sorted(incoming, key=lambda m: depth_of(m.id)):
            store._insert(message, allow_extra_root=True)
        return store

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._messages

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[str]:
        return iter(self._messages)

    def upsert(self, message: Message) -> Message:
        """Insert a new node or replace an existing one by id.

        The parent must already be in the store. Replacing a node keeps its
        children; its 'parent_id' cannot change.
        """
        return self._insert(message, allow_extra_root=False)

    def _insert(self, message: Message, allow_extra_root: bool) -> Message:
        if message.role not in _TREE_ROLES:
            raise ValidationError(f"Message {message.id} has unsupported role {message.role!r}")
        if not message.id:
            raise ValidationError("Message id is required")
        if message.parent_id == message.id:
            raise ValidationError(f"Message {message.id} cannot be its own parent")
        if self.conversation_id is not None and message.conversation_id != self.conversation_id:
            raise ValidationError(
                f"Message {message.id} belongs to conversation {message.conversation_id}, "
                f"not {self.conversation_id}"
            )

        existing = self._messages.get(message.id)
        if existing is not None:
            if existing.parent_id != message.parent_id:
                raise ValidationError(
                    f"Parent of message {message.id} cannot change from {existing.parent_id} to {message.parent_id}"
                )
            self._messages[message.id] = message.model_copy(update={"children": list(existing.children)}, deep=True)
            return self._messages[message.id].model_copy(deep=True)

        if message.parent_id is not None:
            parent = self._messages.get(message.parent_id)
            if parent is None:
                raise ValidationError(f"Message {message.id} references missing parent {message.parent_id}")
        elif not allow_extra_root and self.roots():
            raise ValidationError(f"Conversation already has a root, refusing second root {message.id}")
        else:
            parent = None

        node = message.model_copy(update={"children": []}, deep=True)
        self._messages[node.id] = node
        if parent is not None and node.id not in parent.children:
            parent.children.append(node.id)
        if self.conversation_id is None:
            self.conversation_id = node.conversation_id
        logger.debug(f"Stored message {node.id} (parent={node.parent_id})")
        return node.model_copy(deep=True)

    def get(self, message_id: str) -> Message | None:
        message = self._messages.get(message_id)
        return message.model_copy(deep=True) if message is not None else None

    def children_of(self, message_id: str) -> list[str]:
        return list(self._require(message_id).children)

    def roots(self) -> list[str]:
        return [message_id for message_id, message in self._messages.items() if message.parent_id is None]

    def root_id(self) -> str | None:
        """Return the single root, None for an empty store.

        Raises 'ValidationError' when the tree has more than one root.
        """
        roots = self.roots()
        if len(roots) > 1:
            raise ValidationError(f"Conversation has {len(roots)} root messages: {roots}")
        return roots[0] if roots else None

    def resolve_path(self, message_id: str) -> list[str]:
        return resolve_path(message_id, self._messages)

    def append_content(self, message_id: str, delta: str) -> None:
        self._require(message_id).content += delta

    def set_content(self, message_id: str, content: str) -> None:
        self._require(message_id).content = content

    def set_metadata(self, message_id: str, metadata: dict[str, Any]) -> None:
        self._require(message_id).metadata = metadata

    def messages(self) -> dict[str, Message]:
        """Return a deep copy of every node keyed by id."""
        return {message_id: message.model_copy(deep=True) for message_id, message in self._messages.items()}

    def view(self) -> Mapping[str, Message]:
        """Read-only access to the live nodes, for traversal without copying."""
        return MappingProxyType(self._messages)

    def copy(self) -> "MessageStore":
        clone = MessageStore()
        clone._messages = self.messages()
        clone.conversation_id = self.conversation_id
        return clone

    def _require(self, message_id: str) -> Message:
        message = self._messages.get(message_id)
        if message is None:
            raise NotFoundError("message", message_id)
        return message
