"""Feed assembly: authorization, ordering, pagination and retry."""

from __future__ import annotations

import pytest

from social_graph.errors import FeedUnavailableError, StoreUnavailableError
from social_graph.feed.aggregator import ActivityFeedAggregator, calculate_backoff_delay
from social_graph.models.content import ActivityType, FeedFilter
from social_graph.models.privacy import PrivacyLevel


@pytest.fixture
def feed(content, cache, privacy, sleeps) -> ActivityFeedAggregator:
    return ActivityFeedAggregator(content, cache, privacy, sleep=sleeps.append)


class FlakyContent:
    """Wrap a repository so the first ``failures`` candidate reads raise."""

    def __init__(self, inner, failures: int):
        self._inner = inner
        self.failures = failures
        self.calls = 0

    def fetch_candidates(self, owner_ids, *, limit, after=None):
        self.calls += 1
        if self.calls <= self.failures:
            raise StoreUnavailableError("connection reset")
        return self._inner.fetch_candidates(owner_ids, limit=limit, after=after)


def test_follower_sees_only_public_items(graph, feed, activity_factory):
    graph.create_follow("viewer", "owner")
    public = activity_factory("owner", PrivacyLevel.PUBLIC, minutes=1)
    activity_factory("owner", PrivacyLevel.FRIENDS, minutes=2)
    activity_factory("owner", PrivacyLevel.PRIVATE, minutes=3)

    page = feed.get_feed("viewer")

    assert [item.id for item in page.items] == [public.id]
    assert page.has_more is False


def test_close_friend_item_visible_only_to_designated_friend(graph, feed, activity_factory):
    graph.create_friendship("owner", "close")
    graph.create_friendship("owner", "friend")
    graph.set_close_friend_flag("owner", "close", True)
    item = activity_factory("owner", PrivacyLevel.CLOSE_FRIENDS)

    assert [entry.id for entry in feed.get_feed("close").items] == [item.id]
    assert feed.get_feed("friend").items == []


def test_strangers_content_is_not_candidate(feed, activity_factory):
    activity_factory("stranger", PrivacyLevel.PUBLIC)

    assert feed.get_feed("viewer").items == []


def test_viewer_sees_own_private_items(feed, activity_factory):
    item = activity_factory("viewer", PrivacyLevel.PRIVATE)

    assert [entry.id for entry in feed.get_feed("viewer").items] == [item.id]


def test_block_removes_owner_from_feed(graph, feed, activity_factory):
    graph.create_friendship("viewer", "owner")
    activity_factory("owner", PrivacyLevel.PUBLIC)
    assert len(feed.get_feed("viewer").items) == 1

    graph.create_block("owner", "viewer")

    assert feed.get_feed("viewer").items == []


def test_items_are_newest_first(graph, feed, activity_factory):
    graph.create_friendship("viewer", "owner")
    older = activity_factory("owner", minutes=1)
    newest = activity_factory("viewer", minutes=3)
    middle = activity_factory("owner", minutes=2)

    items = feed.get_feed("viewer").items

    assert [item.id for item in items] == [newest.id, middle.id, older.id]


def test_pagination_with_tied_timestamps(graph, feed, activity_factory):
    """Consecutive pages never duplicate or skip items sharing a timestamp."""
    graph.create_follow("viewer", "owner")
    ids = [activity_factory("owner", minutes=5, activity_id=f"act-{index:02d}").id for index in range(7)]
    ids += [activity_factory("owner", minutes=1, activity_id=f"old-{index:02d}").id for index in range(3)]

    seen: list[str] = []
    offset = 0
    while True:
        page = feed.get_feed("viewer", limit=3, offset=offset)
        seen.extend(item.id for item in page.items)
        offset += 3
        if not page.has_more:
            break

    assert len(seen) == len(set(seen)) == 10
    assert seen[:7] == sorted(ids[:7], reverse=True)
    assert set(seen) == set(ids)


def test_has_more_reports_remaining_items(graph, feed, activity_factory):
    graph.create_follow("viewer", "owner")
    for minute in range(4):
        activity_factory("owner", minutes=minute)

    assert feed.get_feed("viewer", limit=3).has_more is True
    assert feed.get_feed("viewer", limit=4).has_more is False
    last = feed.get_feed("viewer", limit=3, offset=3)
    assert len(last.items) == 1
    assert last.has_more is False


def test_window_grows_when_filtering_rejects_candidates(content, cache, privacy, graph, activity_factory):
    graph.create_follow("viewer", "owner")
    visible = activity_factory("owner", PrivacyLevel.PUBLIC, minutes=0)
    for minute in range(1, 21):
        activity_factory("owner", PrivacyLevel.PRIVATE, minutes=minute)
    feed = ActivityFeedAggregator(content, cache, privacy, overfetch_factor=1)

    page = feed.get_feed("viewer", limit=1)

    assert [item.id for item in page.items] == [visible.id]
    assert page.has_more is False


def test_type_filter_applies_after_authorization(graph, feed, activity_factory):
    graph.create_follow("viewer", "owner")
    checkin = activity_factory("owner", PrivacyLevel.PUBLIC, minutes=1)
    activity_factory("owner", PrivacyLevel.PUBLIC, minutes=2, activity_type=ActivityType.FAVORITE)
    activity_factory("owner", PrivacyLevel.FRIENDS, minutes=3)
    collection = activity_factory(
        "owner", PrivacyLevel.PUBLIC, minutes=4, activity_type=ActivityType.COLLECTION_UPDATED
    )

    assert [item.id for item in feed.get_feed("viewer", type_filter=FeedFilter.CHECKINS).items] == [checkin.id]
    assert [item.id for item in feed.get_feed("viewer", type_filter="collections").items] == [collection.id]
    assert len(feed.get_feed("viewer", type_filter=FeedFilter.ALL).items) == 3


@pytest.mark.parametrize("limit, offset", [(0, 0), (-1, 0), (10, -1)])
def test_invalid_paging_arguments(feed, limit: int, offset: int):
    with pytest.raises(ValueError):
        feed.get_feed("viewer", limit=limit, offset=offset)


def test_transient_failure_is_retried(content, cache, privacy, sleeps, activity_factory):
    item = activity_factory("viewer")
    flaky = FlakyContent(content, failures=1)
    feed = ActivityFeedAggregator(flaky, cache, privacy, sleep=sleeps.append)

    page = feed.get_feed("viewer")

    assert [entry.id for entry in page.items] == [item.id]
    assert flaky.calls == 2
    assert sleeps == [0.05]


def test_exhausted_retries_raise_feed_unavailable(content, cache, privacy, sleeps):
    flaky = FlakyContent(content, failures=10)
    feed = ActivityFeedAggregator(flaky, cache, privacy, sleep=sleeps.append)

    with pytest.raises(FeedUnavailableError) as excinfo:
        feed.get_feed("viewer")

    assert isinstance(excinfo.value.__cause__, StoreUnavailableError)
    assert isinstance(excinfo.value, StoreUnavailableError)
    assert flaky.calls == 2


def test_backoff_delay_doubles():
    assert calculate_backoff_delay(1, 0.05) == pytest.approx(0.05)
    assert calculate_backoff_delay(3, 0.05) == pytest.approx(0.2)
    with pytest.raises(ValueError):
        calculate_backoff_delay(0)
