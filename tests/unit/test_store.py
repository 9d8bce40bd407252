"""Unit tests for the local key-value stores."""

import pytest
from hebrew_text_search.core.store import (
    InMemoryKeyValueStore,
    SQLiteKeyValueStore,
    create_store,
)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    """Create each store implementation."""
    if request.param == "memory":
        yield InMemoryKeyValueStore()
    else:
        sqlite_store = SQLiteKeyValueStore(str(tmp_path / "index.db"))
        yield sqlite_store
        sqlite_store.close()


class TestKeyValueStore:
    """Behavior shared by every store implementation."""

    def test_get_missing(self, store):
        assert store.get("missing") is None

    def test_put_and_get(self, store):
        value = {"word": "שלום", "positions": [1, 2, 3]}
        store.put("key", value)
        assert store.get("key") == value

    def test_put_replaces(self, store):
        store.put("key", 1)
        store.put("key", 2)
        assert store.get("key") == 2

    def test_delete(self, store):
        store.put("key", "value")
        store.delete("key")
        store.delete("never-stored")
        assert store.get("key") is None

    def test_swap_moves_value_and_writes_extra(self, store):
        store.put("main", {"version": "old"})
        store.put("main:staging", {"version": "new"})

        store.swap("main:staging", "main", {"indexInfo": {"documentCount": 3}})

        assert store.get("main") == {"version": "new"}
        assert store.get("main:staging") is None
        assert store.get("indexInfo") == {"documentCount": 3}

    def test_swap_missing_source_changes_nothing(self, store):
        store.put("main", {"version": "old"})

        with pytest.raises(KeyError):
            store.swap("main:staging", "main", {"indexInfo": {"documentCount": 3}})

        assert store.get("main") == {"version": "old"}
        assert store.get("indexInfo") is None

    def test_keys(self, store):
        store.put("b", 1)
        store.put("a", 2)
        assert sorted(store.keys()) == ["a", "b"]


class TestSQLiteKeyValueStore:
    """SQLite-specific behavior."""

    def test_values_survive_reopen(self, tmp_path):
        path = str(tmp_path / "nested" / "index.db")
        first = SQLiteKeyValueStore(path)
        first.put("key", {"text": "בְּרֵאשִׁית"})
        first.close()

        second = SQLiteKeyValueStore(path)
        try:
            assert second.get("key") == {"text": "בְּרֵאשִׁית"}
        finally:
            second.close()


def test_create_store(tmp_path):
    assert isinstance(create_store(""), InMemoryKeyValueStore)
    sqlite_store = create_store(str(tmp_path / "index.db"))
    try:
        assert isinstance(sqlite_store, SQLiteKeyValueStore)
    finally:
        sqlite_store.close()
