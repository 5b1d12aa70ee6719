"""
Aggregation Merger

Builds the record list a viewer sees on the expenses, appointments and
dashboard pages: the viewer's own records plus the records of every
account with the elevated (admin) role, de-duplicated and ordered.

The steps:
1. Watch the account directory and pick the ids whose role is admin
2. Drop the viewer's own id (their records come from their own watcher)
3. Open one watcher per remaining id on the same entity collection
4. On every update, merge own + latest peer snapshots by record id
5. Sort by the entity's ordering key

DESIGN DECISION: Peer watchers are owned by a supervisor that opens and
cancels them as one unit. When the elevated set changes, all of them are
torn down and rebuilt; nothing is patched incrementally.
"""

import itertools
from typing import Any, Callable, Iterable, Optional, Sequence, TypeVar

import structlog
from pydantic import BaseModel, ConfigDict

from biztrack.audit import AuditLogger
from biztrack.data import (
    CollectionWatcher,
    QuerySpec,
    SubscriptionState,
    parser_for,
)
from biztrack.models import RECORD_MODELS, RecordKind, RecordMixin, UserProfile
from biztrack.services.storage import DocumentStoreInterface
from biztrack.services.storage.paths import COLLECTION_USERS, records_path


R = TypeVar("R", bound=RecordMixin)

logger = structlog.get_logger(__name__)


class Ordering(BaseModel):
    """Natural ordering of an entity: stored field, model attribute, direction."""
    model_config = ConfigDict(frozen=True)

    field: str
    attribute: str
    descending: bool = False


ORDERINGS: dict[RecordKind, Ordering] = {
    RecordKind.INCOME: Ordering(field="date", attribute="entry_date", descending=True),
    RecordKind.EXPENSE: Ordering(field="date", attribute="entry_date", descending=True),
    RecordKind.APPOINTMENT: Ordering(field="startTime", attribute="start_time", descending=False),
}


def merge_records(sources: Iterable[Sequence[R]], ordering: Ordering) -> list[R]:
    """
    Merge record lists into one de-duplicated, ordered list.

    `sources` must be given in observation order, oldest snapshot first.
    When two sources hold the same record id, the entry from the later
    source wins.
    """
    by_id: dict[str, R] = {}
    for records in sources:
        for record in records:
            by_id[record.id] = record

    return sorted(
        by_id.values(),
        key=lambda record: getattr(record, ordering.attribute),
        reverse=ordering.descending,
    )


class PeerSubscriptionSupervisor:
    """
    Holds one watcher per peer id and cancels them all as a unit.

    `on_update(peer_id, state)` fires on every child state change, except
    while `replace()` or `close_all()` is tearing down and reopening
    children; the owner recomputes once after those return.
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        parse: Callable[[Any], Any],
        query_for: Callable[[str], QuerySpec],
        on_update: Callable[[str, SubscriptionState], None],
        audit: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._parse = parse
        self._query_for = query_for
        self._on_update = on_update
        self._audit = audit
        self._children: dict[str, CollectionWatcher] = {}
        self._rebuilding = False

    @property
    def peer_ids(self) -> frozenset[str]:
        return frozenset(self._children)

    def __len__(self) -> int:
        return len(self._children)

    def replace(self, peer_ids: Iterable[str]) -> None:
        """Tear down every child and open one per id in `peer_ids`."""
        self.close_all()
        self._rebuilding = True
        try:
            for peer_id in sorted(set(peer_ids)):
                watcher = CollectionWatcher(self._store, self._parse, self._audit)
                watcher.add_listener(lambda state, pid=peer_id: self._child_update(pid, state))
                self._children[peer_id] = watcher
                watcher.open(self._query_for(peer_id))
        finally:
            self._rebuilding = False
        logger.debug("peer_subscriptions_replaced", peers=len(self._children))

    def states(self) -> dict[str, SubscriptionState]:
        """Latest state per peer, ordered by peer id."""
        return {pid: self._children[pid].state for pid in sorted(self._children)}

    def close_all(self) -> None:
        children, self._children = self._children, {}
        self._rebuilding = True
        try:
            for watcher in children.values():
                watcher.close()
        finally:
            self._rebuilding = False

    def _child_update(self, peer_id: str, state: SubscriptionState) -> None:
        if not self._rebuilding:
            self._on_update(peer_id, state)


class AggregationMerger:
    """
    Aggregate view of one entity for one viewer.

    Usage:
        merger = AggregationMerger(store, RecordKind.EXPENSE)
        merger.open(viewer_uid)
        merger.add_listener(render)
        ...
        merger.close()
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        kind: RecordKind,
        audit: Optional[AuditLogger] = None,
        limit: Optional[int] = None,
    ):
        self.kind = kind
        self.ordering = ORDERINGS[kind]
        self._limit = limit
        self._viewer_uid: Optional[str] = None
        self._elevated: frozenset[str] = frozenset()
        self._sequence = itertools.count(1)
        self._observed: dict[str, int] = {}
        self._state = SubscriptionState.idle()
        self._listeners: dict[int, Callable[[SubscriptionState], None]] = {}
        self._next_key = 0

        parse = parser_for(RECORD_MODELS[kind])
        self._own = CollectionWatcher(store, parse, audit)
        self._directory = CollectionWatcher(store, parser_for(UserProfile), audit)
        self._supervisor = PeerSubscriptionSupervisor(
            store,
            parse,
            query_for=self._query_for,
            on_update=self._on_peer,
            audit=audit,
        )
        self._own.add_listener(self._on_own)
        self._directory.add_listener(self._on_directory)

    # =========================================================================
    # PUBLIC
    # =========================================================================

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def viewer_uid(self) -> Optional[str]:
        return self._viewer_uid

    @property
    def elevated_peers(self) -> frozenset[str]:
        """Elevated account ids other than the viewer's."""
        return self._elevated

    @property
    def own_state(self) -> SubscriptionState:
        return self._own.state

    def add_listener(self, listener: Callable[[SubscriptionState], None]) -> Callable[[], None]:
        key = self._next_key
        self._next_key += 1
        self._listeners[key] = listener
        return lambda: self._listeners.pop(key, None)

    def open(self, viewer_uid: str) -> None:
        self.retarget(viewer_uid)

    def retarget(self, viewer_uid: Optional[str]) -> None:
        """Switch to another viewer; None closes everything."""
        if viewer_uid == self._viewer_uid:
            return
        self._supervisor.close_all()
        self._elevated = frozenset()
        self._observed.clear()
        self._viewer_uid = viewer_uid

        if viewer_uid is None:
            self._own.close()
            self._directory.close()
            self._set_state(SubscriptionState.idle())
            return

        self._own.retarget(self._query_for(viewer_uid))
        self._directory.retarget(QuerySpec(collection_path=COLLECTION_USERS))
        # The directory watcher survives a viewer change; re-derive peers from it.
        self._on_directory(self._directory.state)

    def close(self) -> None:
        self.retarget(None)

    # =========================================================================
    # SOURCES
    # =========================================================================

    def _query_for(self, uid: str) -> QuerySpec:
        return QuerySpec(
            collection_path=records_path(uid, self.kind),
            order_by=self.ordering.field,
            descending=self.ordering.descending,
            limit=self._limit,
        )

    def _observe(self, source: str, state: SubscriptionState) -> None:
        if state.data is not None:
            self._observed[source] = next(self._sequence)

    def _on_own(self, state: SubscriptionState) -> None:
        if self._viewer_uid is None:
            return
        self._observe(self._viewer_uid, state)
        self._recompute()

    def _on_peer(self, peer_id: str, state: SubscriptionState) -> None:
        self._observe(peer_id, state)
        self._recompute()

    def _on_directory(self, state: SubscriptionState) -> None:
        if self._viewer_uid is None:
            return
        if state.data is not None:
            elevated = frozenset(
                profile.id for profile in state.data
                if profile.is_elevated and profile.id != self._viewer_uid
            )
            if elevated != self._elevated:
                logger.info(
                    "elevated_set_changed",
                    kind=self.kind.value,
                    peers=len(elevated),
                )
                self._elevated = elevated
                for peer_id in list(self._observed):
                    if peer_id != self._viewer_uid:
                        del self._observed[peer_id]
                self._supervisor.replace(elevated)
        self._recompute()

    # =========================================================================
    # MERGE
    # =========================================================================

    def _recompute(self) -> None:
        if self._viewer_uid is None:
            return
        own = self._own.state
        directory = self._directory.state
        peers = self._supervisor.states()

        if not peers and not directory.is_loading and directory.error is None:
            self._set_state(own)
            return

        is_loading = (
            directory.is_loading
            or own.is_loading
            or any(s.is_loading for s in peers.values())
        )
        error = own.error or directory.error or next(
            (s.error for s in peers.values() if s.error is not None),
            None,
        )

        available = {self._viewer_uid: own} if own.data is not None else {}
        available.update({pid: s for pid, s in peers.items() if s.data is not None})
        if not available:
            data = None
        else:
            ordered = sorted(available, key=lambda source: self._observed.get(source, 0))
            data = merge_records((available[source].data for source in ordered), self.ordering)

        self._set_state(SubscriptionState(data=data, is_loading=is_loading, error=error))

    def _set_state(self, state: SubscriptionState) -> None:
        self._state = state
        for listener in list(self._listeners.values()):
            listener(state)
