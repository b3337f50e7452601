"""Activity feed aggregation."""

from .aggregator import ActivityFeedAggregator

__all__ = ["ActivityFeedAggregator"]
