"""
Tests for delivery_dashboard.services.storage
"""

from delivery_dashboard.services.storage import InMemoryStore


class TestInMemoryStore:
    def test_get_with_default(self):
        store = InMemoryStore()
        assert store.get("missing") is None
        assert store.get("missing", 3) == 3

    def test_initial_values_are_copied(self):
        initial = {"auth_token": "abc"}
        store = InMemoryStore(initial)
        initial["auth_token"] = "changed"
        assert store.get("auth_token") == "abc"

    def test_clear_single_key_and_everything(self):
        store = InMemoryStore({"a": 1, "b": 2})
        store.clear("a")
        assert store.get("a") is None
        assert store.get("b") == 2
        store.clear("not-there")
        store.clear()
        assert store.get("b") is None
