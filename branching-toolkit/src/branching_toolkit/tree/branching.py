"""
Branch engine: decides where a new message attaches and what the new path is.

Two forking modes exist. In continue mode the new message becomes a child of
the last node of the current path. In branch-from mode the caller names any
existing node as parent, and the new path is the resolved path to that node
plus the new message. Attaching never rewrites existing nodes apart from
appending one id to the parent's 'children'; sibling order is arrival order.

Quoted replies use branch-from mode unchanged: quoting only alters the prompt
sent to the completion service, never where the node attaches.
"""

from pydantic import BaseModel

from branching_toolkit.conversation_database.data_models.message import Message
from branching_toolkit.errors import NotFoundError, ValidationError
from branching_toolkit.llms.base import Roles
from branching_toolkit.tree.store import MessageStore
from branching_toolkit.utils.database import generate_uid
from branching_toolkit.utils.time import get_current_timestamp


class BranchPlan(BaseModel):
    """Where the next message goes: its parent and the path leading to it."""

    parent_id: str | None
    base_path: list[str]


class BranchEngine:
    def __init__(self, store: MessageStore):
        self.store = store

    def plan(self, current_path: list[str], branch_parent_id: str | None = None) -> BranchPlan:
        if branch_parent_id is None:
            parent_id = current_path[-1] if current_path else None
            if parent_id is None:
                if len(self.store):
                    raise ValidationError("Current path is empty but the conversation already has messages")
                return BranchPlan(parent_id=None, base_path=[])
        else:
            parent_id = branch_parent_id

        base_path = self.store.resolve_path(parent_id)
        if not base_path:
            raise NotFoundError("message", parent_id)
        return BranchPlan(parent_id=parent_id, base_path=base_path)

    def attach(self, plan: BranchPlan, role: Roles, content: str, conversation_id: str) -> tuple[Message, list[str]]:
        """Create a node under 'plan.parent_id' and return it with its path."""
        branch_index = len(self.store.children_of(plan.parent_id)) if plan.parent_id else 0
        message = self.store.upsert(
            Message(
                id=generate_uid("msg"),
                role=role,
                content=content,
                conversation_id=conversation_id,
                create_timestamp=get_current_timestamp(),
                parent_id=plan.parent_id,
                branch_index=branch_index,
            )
        )
        return message, [*plan.base_path, message.id]

    def path_to(self, message_id: str) -> list[str]:
        path = self.store.resolve_path(message_id)
        if not path:
            raise NotFoundError("message", message_id)
        return path
