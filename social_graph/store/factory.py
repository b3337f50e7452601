"""Factory helpers for constructing the social graph service façade."""

from __future__ import annotations

import time
from collections.abc import Callable

from sqlalchemy.orm import Session, sessionmaker

from social_graph.cache.relationship_cache import Clock, RelationshipCache
from social_graph.config import SocialGraphSettings, get_settings
from social_graph.feed.aggregator import ActivityFeedAggregator
from social_graph.notifications import Notifier, NullNotifier
from social_graph.privacy.filter import PrivacyFilterEngine
from social_graph.repositories.content_repository import ContentRepository
from social_graph.repositories.graph_repository import RelationshipGraphStore

from .social_service import SocialGraphService


def create_social_graph_service(
    session_factory: sessionmaker[Session],
    *,
    settings: SocialGraphSettings | None = None,
    notifier: Notifier | None = None,
    clock: Clock = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> SocialGraphService:
    """Build a SocialGraphService with the default repository implementations.

    The cache is registered as a mutation listener on the graph store, and the
    privacy filter and feed read relationships through the cache.
    """
    settings = settings or get_settings()
    graph = RelationshipGraphStore(session_factory)
    content = ContentRepository(session_factory)
    cache = RelationshipCache(graph, settings=settings, clock=clock)
    graph.add_mutation_listener(cache.handle_mutation)
    privacy = PrivacyFilterEngine(cache, settings=cache)
    feed = ActivityFeedAggregator(content, cache, privacy, sleep=sleep)
    return SocialGraphService(graph, content, cache, privacy, feed, notifier or NullNotifier())


__all__ = ["create_social_graph_service"]
