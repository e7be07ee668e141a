"""Tests for the in-memory scene store."""

from dynfog.store import InMemoryStore
from dynfog.types import SceneItem


def _item(item_id="a"):
    return SceneItem(id=item_id, layer="DRAWING")


def test_snapshot_is_a_copy():
    store = InMemoryStore([_item()])
    snapshot = store.get_snapshot()
    snapshot.items[0].name = "changed"
    assert store.item("a").name == ""


def test_mutations_notify_listeners():
    store = InMemoryStore()
    calls = []
    unsubscribe = store.subscribe(lambda: calls.append(1))
    store.add_items([_item()])
    store.update_items(["a"], lambda items: None)
    store.delete_items(["a"])
    assert len(calls) == 3
    assert store.mutations == 3

    unsubscribe()
    store.add_items([_item("b")])
    assert len(calls) == 3


def test_no_op_mutations_are_silent():
    store = InMemoryStore()
    store.add_items([])
    store.update_items(["missing"], lambda items: None)
    store.delete_items(["missing"])
    assert store.mutations == 0


def test_fast_updates_are_counted():
    store = InMemoryStore([_item()])
    store.update_items(["a"], lambda items: None, fast=True)
    assert store.fast_updates == 1


def test_set_metadata_none_removes_key():
    store = InMemoryStore(metadata={"k": 1, "j": 2})
    store.set_metadata({"k": None, "n": 3})
    assert store.metadata == {"j": 2, "n": 3}
