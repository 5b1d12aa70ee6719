"""
Data-Access Facade

Live watchers that expose {data, is_loading, error} per query or
document, and a dispatcher for fire-and-forget writes.
"""

from biztrack.data.watchers import (
    CollectionWatcher,
    DocumentWatcher,
    SubscriptionState,
    parser_for,
)
from biztrack.data.mutations import MutationDispatcher, MutationTicket
from biztrack.services.storage import QuerySpec

__all__ = [
    "CollectionWatcher",
    "DocumentWatcher",
    "MutationDispatcher",
    "MutationTicket",
    "QuerySpec",
    "SubscriptionState",
    "parser_for",
]
