"""Aggregation of a viewer's records with the records of elevated accounts."""

from biztrack.aggregation.merger import (
    ORDERINGS,
    AggregationMerger,
    Ordering,
    PeerSubscriptionSupervisor,
    merge_records,
)

__all__ = [
    "ORDERINGS",
    "AggregationMerger",
    "Ordering",
    "PeerSubscriptionSupervisor",
    "merge_records",
]
