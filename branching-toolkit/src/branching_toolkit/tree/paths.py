"""
Path resolution over a message tree.

Every message has at most one parent, so there is exactly one path from a root
to any node. 'resolve_path' finds it by walking 'parent_id' upward from the
target and reversing the result, which costs O(depth) instead of searching the
whole tree from every root. Only the root that is an ancestor of the target is
ever visited, so trees with several disconnected roots resolve correctly.
"""

from collections.abc import Mapping, Sequence

from branching_toolkit.conversation_database.data_models.message import Message


def resolve_path(target_id: str, messages: Mapping[str, Message]) -> list[str]:
    """Return the root-to-target list of ids, or [] when no such path exists.

    An unknown target, a dangling parent reference or a cycle all yield an
    empty path; this function never raises.
    """
    path: list[str] = []
    seen: set[str] = set()
    current: str | None = target_id
    while current is not None:
        message = messages.get(current)
        if message is None or current in seen:
            return []
        seen.add(current)
        path.append(current)
        current = message.parent_id
    path.reverse()
    return path


def is_contiguous_path(path: Sequence[str], messages: Mapping[str, Message]) -> bool:
    """Check that 'path' starts at a root and follows 'children' links.

    The empty path is valid.
    """
    if not path:
        return True
    first = messages.get(path[0])
    if first is None or first.parent_id is not None:
        return False
    for parent_id, child_id in zip(path, path[1:]):
        parent = messages.get(parent_id)
        child = messages.get(child_id)
        if parent is None or child is None:
            return False
        if child_id not in parent.children or child.parent_id != parent_id:
            return False
    return True


def messages_along_path(path: Sequence[str], messages: Mapping[str, Message]) -> list[Message]:
    return [messages[message_id] for message_id in path if message_id in messages]
