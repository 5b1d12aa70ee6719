"""
Tests for the aggregation merger.
"""

from datetime import date

from biztrack.aggregation import ORDERINGS, AggregationMerger, merge_records
from biztrack.models import ExpenseRecord, RecordKind
from biztrack.services.storage import StorageError

from tests.helpers import settle


def profile(uid: str, role: str = None) -> dict:
    data = {"email": f"{uid}@example.com"}
    if role:
        data["role"] = role
    return data


def expense(uid: str, description: str, day: str) -> dict:
    return {"userId": uid, "amount": 25, "date": day, "description": description}


def appointment(uid: str, title: str, start: str, end: str) -> dict:
    return {"userId": uid, "title": title, "startTime": start, "endTime": end}


class TestMergeRecords:
    """Tests for the pure merge step."""

    def test_duplicate_ids_keep_latest_source(self):
        """Test that the later observed source wins a collision."""
        older = ExpenseRecord(id="x", user_id="a", amount=1, entry_date=date(2024, 1, 1), description="old")
        newer = ExpenseRecord(id="x", user_id="b", amount=2, entry_date=date(2024, 1, 1), description="new")
        other = ExpenseRecord(id="y", user_id="a", amount=3, entry_date=date(2024, 2, 1), description="y")

        merged = merge_records([[older, other], [newer]], ORDERINGS[RecordKind.EXPENSE])
        assert [r.description for r in merged] == ["y", "new"]

    def test_ordering_by_entity(self):
        """Test that ledger entries sort newest first."""
        records = [
            ExpenseRecord(id=str(i), user_id="a", amount=1, entry_date=date(2024, 1, i), description="d")
            for i in (3, 1, 2)
        ]
        merged = merge_records([records], ORDERINGS[RecordKind.EXPENSE])
        assert [r.id for r in merged] == ["3", "2", "1"]


class TestAggregationMerger:
    """Tests for the live aggregate view."""

    async def test_viewer_sees_elevated_peer_appointments(self, store):
        """Test two appointments on the same day, ordered by start time and attributed to their owners."""
        store.seed("users/a", profile("a"))
        store.seed("users/b", profile("b", role="admin"))
        store.seed(
            "users/a/appointments/a1",
            appointment("a", "Client call", "2024-03-01T15:00:00+00:00", "2024-03-01T16:00:00+00:00"),
        )
        store.seed(
            "users/b/appointments/b1",
            appointment("b", "Team sync", "2024-03-01T09:00:00+00:00", "2024-03-01T10:00:00+00:00"),
        )

        merger = AggregationMerger(store, RecordKind.APPOINTMENT)
        merger.open("a")
        await settle()

        assert merger.elevated_peers == frozenset({"b"})
        state = merger.state
        assert not state.is_loading
        assert [(r.title, r.owner_id) for r in state.data] == [("Team sync", "b"), ("Client call", "a")]

    async def test_loading_until_every_source_delivered(self, store):
        """Test that the aggregate is loading while any source is."""
        merger = AggregationMerger(store, RecordKind.EXPENSE)
        merger.open("a")
        assert merger.state.is_loading
        await settle()
        assert not merger.state.is_loading
        assert merger.state.data == []

    async def test_no_peers_exposes_own_state(self, store):
        """Test that without elevated peers the own state passes through unchanged."""
        store.seed("users/a", profile("a", role="admin"))
        store.seed("users/a/expenses/e1", expense("a", "Rent", "2024-01-01"))

        merger = AggregationMerger(store, RecordKind.EXPENSE)
        merger.open("a")
        await settle()

        # The viewer's own admin role doesn't make them a peer of themselves
        assert merger.elevated_peers == frozenset()
        assert merger.state is merger.own_state

    async def test_peer_updates_flow_through(self, store):
        """Test that a peer's new record appears in the aggregate."""
        store.seed("users/b", profile("b", role="admin"))
        merger = AggregationMerger(store, RecordKind.EXPENSE)
        merger.open("a")
        await settle()
        assert merger.state.data == []

        await store.add_document("users/b/expenses", expense("b", "Software", "2024-05-01"))
        await settle()
        assert [r.description for r in merger.state.data] == ["Software"]

    async def test_demotion_rebuilds_peers(self, store):
        """Test that a peer leaving the elevated set drops its records and listener."""
        store.seed("users/b", profile("b", role="admin"))
        store.seed("users/b/expenses/e1", expense("b", "Software", "2024-05-01"))
        merger = AggregationMerger(store, RecordKind.EXPENSE)
        merger.open("a")
        await settle()
        assert len(merger.state.data) == 1

        store.seed("users/b", profile("b", role="employee"))
        await settle()
        assert merger.elevated_peers == frozenset()
        assert merger.state.data == []
        assert store.listener_count("users/b/expenses") == 0

    async def test_directory_error_surfaces(self, store):
        """Test that a failing directory listener is reported."""
        merger = AggregationMerger(store, RecordKind.EXPENSE)
        merger.open("a")
        await settle()
        store.emit_error("users", StorageError("missing permissions"))
        await settle()
        assert str(merger.state.error) == "missing permissions"
        assert merger.state.data == []

    async def test_own_error_takes_priority(self, store):
        """Test error priority: own before directory."""
        merger = AggregationMerger(store, RecordKind.EXPENSE)
        merger.open("a")
        await settle()
        store.emit_error("users", StorageError("directory"))
        store.emit_error("users/a/expenses", StorageError("own"))
        await settle()
        assert str(merger.state.error) == "own"

    async def test_close_cancels_everything(self, store):
        """Test that closing leaves no listener behind."""
        store.seed("users/b", profile("b", role="admin"))
        store.seed("users/c", profile("c", role="admin"))
        merger = AggregationMerger(store, RecordKind.EXPENSE)
        merger.open("a")
        await settle()
        assert store.listener_count() == 4

        merger.close()
        assert store.listener_count() == 0
        assert merger.state.data is None
        assert not merger.state.is_loading

    async def test_retarget_to_new_viewer(self, store):
        """Test switching viewer re-derives the peers."""
        store.seed("users/b", profile("b", role="admin"))
        merger = AggregationMerger(store, RecordKind.EXPENSE)
        merger.open("a")
        await settle()
        assert merger.elevated_peers == frozenset({"b"})

        merger.retarget("b")
        await settle()
        assert merger.viewer_uid == "b"
        assert merger.elevated_peers == frozenset()

    async def test_loading_while_peer_pending(self, store):
        """Test that the aggregate stays loading after own and directory deliver until the peer does."""
        store.seed("users/b", profile("b", role="admin"))
        store.seed("users/a/expenses/e1", expense("a", "Rent", "2024-01-01"))
        store.seed("users/b/expenses/e2", expense("b", "Software", "2024-05-01"))
        merger = AggregationMerger(store, RecordKind.EXPENSE)
        seen = []
        merger.add_listener(
            lambda state: seen.append((merger.own_state.is_loading, merger.elevated_peers, state))
        )
        merger.open("a")
        await settle()

        # Own and directory delivered, peer watcher opened but not yet delivered
        pending = [state for own_loading, peers, state in seen if not own_loading and peers == {"b"}]
        assert pending[0].is_loading
        assert [r.description for r in pending[0].data] == ["Rent"]

        assert not merger.state.is_loading
        assert [r.description for r in merger.state.data] == ["Software", "Rent"]

    async def test_peer_error_surfaces(self, store):
        """Test that a failing peer listener is reported while the viewer's data stays."""
        store.seed("users/b", profile("b", role="admin"))
        store.seed("users/a/expenses/e1", expense("a", "Rent", "2024-01-01"))
        merger = AggregationMerger(store, RecordKind.EXPENSE)
        merger.open("a")
        await settle()
        assert merger.state.error is None

        store.emit_error("users/b/expenses", StorageError("peer denied"))
        await settle()
        assert str(merger.state.error) == "peer denied"
        assert not merger.state.is_loading
        assert [r.description for r in merger.state.data] == ["Rent"]

    async def test_peer_rebuild_publishes_no_partial_state(self, store):
        """Test that a changed elevated set never publishes a settled state without its peers."""
        store.seed("users/b", profile("b", role="admin"))
        store.seed("users/b/expenses/e1", expense("b", "Software", "2024-05-01"))
        merger = AggregationMerger(store, RecordKind.EXPENSE)
        merger.open("a")
        await settle()
        states = []
        merger.add_listener(states.append)

        store.seed("users/c", profile("c", role="admin"))
        await settle()

        assert merger.elevated_peers == frozenset({"b", "c"})
        *during, final = states
        assert during
        assert all(state.is_loading for state in during)
        assert not final.is_loading
        assert [r.description for r in final.data] == ["Software"]
