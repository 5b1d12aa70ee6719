"""
Tests for the in-memory document store.
"""

from datetime import datetime

import pytest

from biztrack.services.storage import (
    SERVER_TIMESTAMP,
    AlreadyExistsError,
    NotFoundError,
    QuerySpec,
    StorageError,
)
from biztrack.services.storage import paths

from tests.helpers import settle


class TestPaths:
    """Tests for document path helpers."""

    def test_record_paths(self):
        """Test the owner-namespaced layout."""
        from biztrack.models import RecordKind
        assert paths.records_path("u1", RecordKind.EXPENSE) == "users/u1/expenses"
        assert paths.record_doc_path("u1", RecordKind.INCOME, "i9") == "users/u1/incomes/i9"
        assert paths.split("users/u1/incomes/i9") == ("users/u1/incomes", "i9")

    def test_invalid_segments_rejected(self):
        """Test that empty or slashed segments are refused."""
        with pytest.raises(ValueError):
            paths.user_doc_path("")
        with pytest.raises(ValueError):
            paths.user_doc_path("a/b")


class TestQueries:
    """Tests for live collection queries."""

    async def test_initial_snapshot_is_delivered_later(self, store):
        """Test that the first snapshot never arrives on the caller's stack."""
        store.seed("users/u1/incomes/a", {"date": "2024-01-01"})
        received = []
        store.subscribe_query(QuerySpec(collection_path="users/u1/incomes"), received.append, pytest.fail)
        assert received == []
        await settle()
        assert [doc.id for doc in received[0]] == ["a"]

    async def test_order_limit_and_missing_field(self, store):
        """Test ordering, limit, and exclusion of documents without the order field."""
        store.seed("users/u1/incomes/a", {"date": "2024-01-01"})
        store.seed("users/u1/incomes/b", {"date": "2024-03-01"})
        store.seed("users/u1/incomes/c", {"date": "2024-02-01"})
        store.seed("users/u1/incomes/d", {"description": "no date"})
        received = []
        store.subscribe_query(
            QuerySpec(collection_path="users/u1/incomes", order_by="date", descending=True, limit=2),
            received.append,
            pytest.fail,
        )
        await settle()
        assert [doc.id for doc in received[-1]] == ["b", "c"]

    async def test_writes_notify_only_matching_collection(self, store):
        """Test that listeners see writes to their collection only."""
        mine, other = [], []
        store.subscribe_query(QuerySpec(collection_path="users/u1/incomes"), mine.append, pytest.fail)
        store.subscribe_query(QuerySpec(collection_path="users/u2/incomes"), other.append, pytest.fail)
        await settle()

        await store.add_document("users/u1/incomes", {"amount": 1})
        await settle()
        assert len(mine) == 2
        assert len(other) == 1

    async def test_unsubscribe_drops_queued_deliveries(self, store):
        """Test that nothing is delivered after unsubscribe."""
        received = []
        subscription = store.subscribe_query(
            QuerySpec(collection_path="users/u1/incomes"), received.append, pytest.fail,
        )
        subscription.unsubscribe()
        await settle()
        assert received == []
        assert subscription.closed
        assert store.listener_count() == 0

    async def test_emit_error_reaches_error_callback(self, store):
        """Test injected listener errors."""
        errors = []
        store.subscribe_query(QuerySpec(collection_path="users"), lambda docs: None, errors.append)
        store.emit_error("users", StorageError("denied"))
        await settle()
        assert str(errors[0]) == "denied"


class TestWrites:
    """Tests for the five write operations."""

    async def test_add_resolves_server_timestamp(self, store):
        """Test that the sentinel becomes a timestamp."""
        doc_id = await store.add_document("users/u1/incomes", {"createdAt": SERVER_TIMESTAMP})
        stored = store.get(f"users/u1/incomes/{doc_id}")
        assert isinstance(stored["createdAt"], datetime)

    async def test_create_refuses_existing(self, store):
        """Test create-if-absent."""
        await store.create_document("users/u1", {"email": "a"})
        with pytest.raises(AlreadyExistsError):
            await store.create_document("users/u1", {"email": "b"})
        assert store.get("users/u1") == {"email": "a"}

    async def test_update_requires_document(self, store):
        """Test that update of a missing document fails."""
        with pytest.raises(NotFoundError):
            await store.update_document("users/u1/incomes/x", {"amount": 2})

    async def test_update_merges_fields(self, store):
        """Test that update touches only the given fields."""
        store.seed("users/u1/incomes/x", {"amount": 1, "description": "a"})
        await store.update_document("users/u1/incomes/x", {"amount": 2})
        assert store.get("users/u1/incomes/x") == {"amount": 2, "description": "a"}

    async def test_set_with_and_without_merge(self, store):
        """Test set semantics."""
        store.seed("users/u1", {"email": "a", "firstName": "Ada"})
        await store.set_document("users/u1", {"lastName": "L"}, merge=True)
        assert store.get("users/u1") == {"email": "a", "firstName": "Ada", "lastName": "L"}
        await store.set_document("users/u1", {"lastName": "M"})
        assert store.get("users/u1") == {"lastName": "M"}

    async def test_delete_and_document_listener(self, store):
        """Test that a document listener sees the deletion as None."""
        store.seed("users/u1", {"email": "a"})
        received = []
        store.subscribe_document("users/u1", received.append, pytest.fail)
        await settle()
        await store.delete_document("users/u1")
        await settle()
        assert received[0].data == {"email": "a"}
        assert received[-1] is None

    async def test_injected_write_failure(self, store):
        """Test fail_writes()."""
        store.fail_writes(StorageError("offline"))
        with pytest.raises(StorageError):
            await store.add_document("users/u1/incomes", {})
        store.fail_writes(None)
        assert await store.add_document("users/u1/incomes", {})
