"""Tests for the column selection manager."""

import pytest

from src.wizard import Column, ColumnSelectionManager, ConfigurationStore, StoreKey


def discovered(*names):
    return [Column(name=name, type="String", position=i) for i, name in enumerate(names)]


@pytest.fixture
def store():
    return ConfigurationStore()


@pytest.fixture
def manager(store):
    manager = ColumnSelectionManager(store)
    manager.initialize(discovered("id", "ts", "user_id", "payload", "country"))
    return manager


def stored(store):
    return [(col.name, col.selected) for col in store.get(StoreKey.SELECTED_COLUMNS)]


class TestInitialize:
    """Tests for loading discovered columns."""

    def test_all_columns_selected(self, manager):
        """Should include every discovered column."""
        assert [col.name for col in manager.selected] == ["id", "ts", "user_id", "payload", "country"]

    def test_positions_follow_discovery_order(self, store):
        """Should renumber positions from the discovery order."""
        manager = ColumnSelectionManager(store)
        manager.initialize(
            [Column(name="b", position=7, selected=False), Column(name="a", position=3)]
        )
        assert [(col.name, col.position, col.selected) for col in manager.columns] == [
            ("b", 0, True),
            ("a", 1, True),
        ]

    def test_replaces_previous_list(self, manager):
        manager.initialize(discovered("x"))
        assert len(manager) == 1

    def test_mirrors_into_store(self, manager, store):
        """Should write the full list with flags under selectedColumns."""
        assert stored(store) == [
            ("id", True),
            ("ts", True),
            ("user_id", True),
            ("payload", True),
            ("country", True),
        ]


class TestSelection:
    """Tests for select all, deselect all and toggle."""

    def test_select_all_is_idempotent(self, manager, store):
        """Should give the same result when applied twice."""
        manager.toggle(1)
        manager.select_all()
        first = stored(store)
        manager.select_all()
        assert stored(store) == first
        assert all(selected for _, selected in first)

    def test_deselect_all_keeps_columns(self, manager, store):
        """Should keep every column, flagged as excluded."""
        manager.deselect_all()
        manager.deselect_all()
        assert manager.selected == []
        assert len(manager) == 5
        assert all(not selected for _, selected in stored(store))

    def test_toggle_returns_new_flag(self, manager):
        assert manager.toggle(2) is False
        assert manager.toggle(2) is True

    def test_double_toggle_restores_state(self, manager, store):
        """Should be its own inverse."""
        before = stored(store)
        manager.toggle(3)
        manager.toggle(3)
        assert stored(store) == before

    def test_toggle_out_of_range(self, manager):
        with pytest.raises(IndexError):
            manager.toggle(5)
        with pytest.raises(IndexError):
            manager.toggle(-1)

    def test_store_reflects_every_mutation(self, manager, store):
        """Should flush after each toggle without an explicit commit."""
        manager.toggle(0)
        assert stored(store)[0] == ("id", False)
        manager.toggle(4)
        assert stored(store)[4] == ("country", False)
        assert [col.name for col in manager.selected] == ["ts", "user_id", "payload"]


class TestIsolation:
    """Tests that callers cannot mutate the manager's list."""

    def test_columns_are_copies(self, manager):
        manager.columns[0].selected = False
        assert manager.columns[0].selected is True

    def test_store_holds_copies(self, manager, store):
        store.get(StoreKey.SELECTED_COLUMNS)[0].selected = False
        assert manager.columns[0].selected is True


class TestClearAndCallbacks:
    """Tests for clearing and change callbacks."""

    def test_clear_removes_store_entry(self, manager, store):
        manager.clear()
        assert not manager.has_columns
        assert StoreKey.SELECTED_COLUMNS not in store

    def test_on_change_receives_full_list(self, store):
        """Should report the whole list after each mutation."""
        seen = []
        manager = ColumnSelectionManager(store, on_change=seen.append)
        manager.initialize(discovered("a", "b"))
        manager.toggle(1)
        manager.clear()

        assert [[(c.name, c.selected) for c in cols] for cols in seen] == [
            [("a", True), ("b", True)],
            [("a", True), ("b", False)],
            [],
        ]
