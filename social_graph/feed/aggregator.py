"""Privacy-filtered activity feed assembled from the viewer's social circle."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Protocol

from social_graph.errors import FeedUnavailableError, StoreUnavailableError
from social_graph.models.content import ActivityEntry, FeedFilter, FeedPage
from social_graph.privacy.filter import PrivacyFilterEngine
from social_graph.repositories.content_repository import ContentRepository, FeedCursor

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50
DEFAULT_MAX_ATTEMPTS = 2
DEFAULT_BASE_DELAY_SECONDS = 0.05
DEFAULT_OVERFETCH_FACTOR = 3


class FeedRelationships(Protocol):
    def friend_ids(self, user_id: str) -> list[str]: ...

    def following_ids(self, user_id: str) -> list[str]: ...

    def block_set(self, user_id: str) -> frozenset[str]: ...


def calculate_backoff_delay(attempt: int, base_delay: float = DEFAULT_BASE_DELAY_SECONDS) -> float:
    """Exponential backoff: ``base_delay * 2 ** (attempt - 1)`` for 1-indexed attempts."""
    if attempt < 1:
        raise ValueError("Attempt number must be 1 or greater")
    return base_delay * (2 ** (attempt - 1))


class ActivityFeedAggregator:
    """Build feed pages ordered by ``(created_time DESC, id DESC)``.

    Candidates come from the viewer, their friends and the users they follow.
    Each candidate is authorized before the type filter is applied, and the
    candidate window keeps growing until the page can be filled or the
    candidates run out, so a short page always means ``has_more`` is false.
    """

    def __init__(
        self,
        content: ContentRepository,
        relationships: FeedRelationships,
        privacy: PrivacyFilterEngine,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY_SECONDS,
        overfetch_factor: int = DEFAULT_OVERFETCH_FACTOR,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if overfetch_factor < 1:
            raise ValueError("overfetch_factor must be at least 1")
        self._content = content
        self._relationships = relationships
        self._privacy = privacy
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._overfetch_factor = overfetch_factor
        self._sleep = sleep

    def get_feed(
        self,
        viewer_id: str,
        *,
        limit: int = DEFAULT_LIMIT,
        offset: int = 0,
        type_filter: FeedFilter | str = FeedFilter.ALL,
    ) -> FeedPage:
        if limit <= 0:
            raise ValueError("limit must be positive")
        if offset < 0:
            raise ValueError("offset must not be negative")
        feed_filter = FeedFilter(type_filter)

        last_error: StoreUnavailableError | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                return self._build_page(viewer_id, limit=limit, offset=offset, feed_filter=feed_filter)
            except StoreUnavailableError as exc:
                last_error = exc
                if attempt < self._max_attempts:
                    delay = calculate_backoff_delay(attempt, self._base_delay)
                    logger.warning(
                        "Feed read for %s failed (attempt %s/%s); retrying in %.3fs: %s",
                        viewer_id,
                        attempt,
                        self._max_attempts,
                        delay,
                        exc,
                    )
                    self._sleep(delay)

        logger.error("Feed for %s unavailable after %s attempts", viewer_id, self._max_attempts)
        raise FeedUnavailableError(f"Feed for {viewer_id} is temporarily unavailable.") from last_error

    # ----------------------------------------------------------------- Helpers
    def _build_page(self, viewer_id: str, *, limit: int, offset: int, feed_filter: FeedFilter) -> FeedPage:
        owners = self._owner_ids(viewer_id)
        allowed_types = feed_filter.activity_types()
        needed = offset + limit + 1
        window = needed * self._overfetch_factor

        visible: list[ActivityEntry] = []
        cursor: FeedCursor | None = None
        while len(visible) < needed:
            batch = self._content.fetch_candidates(owners, limit=window, after=cursor)
            for item in batch:
                if not self._privacy.can_view_item(viewer_id, item):
                    continue
                if allowed_types is not None and item.activity_type not in allowed_types:
                    continue
                visible.append(item)
                if len(visible) == needed:
                    break
            if len(batch) < window:
                break
            cursor = (batch[-1].created_time, batch[-1].id)
            window *= 2

        return FeedPage(items=visible[offset : offset + limit], has_more=len(visible) > offset + limit)

    def _owner_ids(self, viewer_id: str) -> set[str]:
        owners = {viewer_id}
        owners.update(self._relationships.friend_ids(viewer_id))
        owners.update(self._relationships.following_ids(viewer_id))
        owners.difference_update(self._relationships.block_set(viewer_id))
        owners.add(viewer_id)
        return owners


__all__ = ["ActivityFeedAggregator", "FeedRelationships", "calculate_backoff_delay"]
