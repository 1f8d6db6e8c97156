"""Tests for path resolution (branching_toolkit/tree/paths.py)."""

import random

from branching_toolkit.tree.paths import is_contiguous_path, messages_along_path, resolve_path
from branching_toolkit.tree.store import MessageStore

from tests.helpers import make_chain, make_message


def _random_tree(seed: int, size: int = 60) -> MessageStore:
    rng = random.Random(seed)
    store = MessageStore()
    store.upsert(make_message("root"))
    ids = ["root"]
    for index in range(size):
        message_id = f"n{index}"
        store.upsert(make_message(message_id, rng.choice(ids)))
        ids.append(message_id)
    return store


def test_resolves_root_to_target():
    store = MessageStore.from_messages(make_chain(["a", "b", "c"]) + [make_message("d", "a")])

    assert resolve_path("c", store.view()) == ["a", "b", "c"]
    assert resolve_path("d", store.view()) == ["a", "d"]
    assert resolve_path("a", store.view()) == ["a"]


def test_every_node_resolves_to_a_walkable_path():
    """The path ends at the target and follows children links from a root."""
    for seed in range(10):
        store = _random_tree(seed)
        nodes = store.view()
        for message_id in nodes:
            path = resolve_path(message_id, nodes)
            assert path[-1] == message_id
            assert nodes[path[0]].parent_id is None
            for parent_id, child_id in zip(path, path[1:]):
                assert child_id in nodes[parent_id].children
            assert is_contiguous_path(path, nodes)


def test_unknown_id_yields_empty_path():
    store = MessageStore.from_messages(make_chain(["a", "b"]))
    assert resolve_path("nonexistent-id", store.view()) == []
    assert resolve_path("nonexistent-id", {}) == []


def test_dangling_parent_yields_empty_path():
    messages = {"b": make_message("b", "ghost")}
    assert resolve_path("b", messages) == []


def test_cycle_yields_empty_path():
    messages = {"a": make_message("a", "b"), "b": make_message("b", "a")}
    assert resolve_path("a", messages) == []


def test_disconnected_roots_resolve_independently():
    store = MessageStore.from_messages(make_chain(["a", "b"]) + [make_message("x"), make_message("y", "x")])
    assert resolve_path("y", store.view()) == ["x", "y"]
    assert resolve_path("b", store.view()) == ["a", "b"]


class TestContiguity:
    def test_empty_path_is_contiguous(self):
        assert is_contiguous_path([], {})

    def test_path_must_start_at_a_root(self):
        store = MessageStore.from_messages(make_chain(["a", "b", "c"]))
        assert not is_contiguous_path(["b", "c"], store.view())

    def test_path_must_not_skip_generations(self):
        store = MessageStore.from_messages(make_chain(["a", "b", "c"]))
        assert not is_contiguous_path(["a", "c"], store.view())

    def test_path_with_unknown_id_is_not_contiguous(self):
        store = MessageStore.from_messages(make_chain(["a", "b"]))
        assert not is_contiguous_path(["a", "ghost"], store.view())


def test_messages_along_path_preserves_order():
    store = MessageStore.from_messages(make_chain(["a", "b", "c"]))
    assert [m.id for m in messages_along_path(["a", "b", "c"], store.view())] == ["a", "b", "c"]
