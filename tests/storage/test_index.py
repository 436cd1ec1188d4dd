# tests/storage/test_index.py
"""
Tests for the in-process secondary index.

Covers:
- Id allocation and the never-decreasing counter
- Membership, forget and range queries
- Registry registration semantics
"""

from itemstore.storage.index import CollectionIndex, IndexRegistry


class TestCollectionIndex:

    def test_fresh_index(self):
        index = CollectionIndex()
        assert len(index) == 0
        assert index.counter == 0
        assert index.next_id() == 1

    def test_mark_live_raises_counter(self):
        index = CollectionIndex()
        index.mark_live(5)
        assert 5 in index
        assert index.counter == 5
        assert index.next_id() == 6

    def test_counter_never_decreases(self):
        index = CollectionIndex()
        index.mark_live(10)
        index.mark_live(3)
        assert index.counter == 10
        index.forget(10)
        assert index.counter == 10
        assert index.next_id() == 11

    def test_forget_reports_membership(self):
        index = CollectionIndex()
        index.mark_live(1)
        assert index.forget(1) is True
        assert index.forget(1) is False
        assert 1 not in index

    def test_ids_in_range_sorted_and_inclusive(self):
        index = CollectionIndex()
        for i in (9, 2, 5, 7, 1):
            index.mark_live(i)
        assert index.ids_in_range(2, 7) == [2, 5, 7]
        assert index.ids_in_range(0, 100) == [1, 2, 5, 7, 9]
        assert index.ids_in_range(8, 3) == []

    def test_copy_ids_is_independent(self):
        index = CollectionIndex()
        index.mark_live(1)
        ids = index.copy_ids()
        ids[2] = True
        assert 2 not in index
        assert ids == {1: True, 2: True}

    def test_rebuild_replaces_ids_keeps_counter_monotonic(self):
        index = CollectionIndex()
        index.mark_live(50)
        index.rebuild([3, 4])
        assert index.copy_ids() == {3: True, 4: True}
        assert index.counter == 50
        index.rebuild([80])
        assert index.counter == 80


class TestIndexRegistry:

    def test_register_is_idempotent(self):
        registry = IndexRegistry()
        first = registry.register("user")
        first.mark_live(3)
        second = registry.register("user")
        assert second is first
        assert len(registry) == 1

    def test_names_keep_registration_order(self):
        registry = IndexRegistry()
        for name in ("user", "item", "event"):
            registry.register(name)
        assert registry.names() == ["user", "item", "event"]
        assert list(registry) == ["user", "item", "event"]

    def test_get_unknown(self):
        registry = IndexRegistry()
        assert registry.get("nope") is None
        assert "nope" not in registry

    def test_clear(self):
        registry = IndexRegistry()
        registry.register("user")
        registry.clear()
        assert registry.names() == []
