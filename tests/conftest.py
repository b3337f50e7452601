from __future__ import annotations

import os
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from social_graph.cache.relationship_cache import RelationshipCache
from social_graph.config import SocialGraphSettings
from social_graph.db.engine import create_engine, create_session_factory
from social_graph.db.schema import Base, create_all
from social_graph.models.content import ActivityEntry, ActivityType
from social_graph.models.privacy import PrivacyLevel
from social_graph.notifications import NotificationEvent
from social_graph.privacy.filter import PrivacyFilterEngine
from social_graph.repositories.content_repository import ContentRepository
from social_graph.repositories.graph_repository import RelationshipGraphStore
from social_graph.store import SocialGraphService, create_social_graph_service


@pytest.fixture(scope="session")
def postgres_url() -> str | None:
    """Return the Postgres test URL if provided via env."""
    return os.getenv("POSTGRES_TEST_URL") or os.getenv("DATABASE_URL")


@pytest.fixture
def engine(postgres_url: str | None) -> Iterator[Engine]:
    """Yield an engine targeting Postgres when configured; otherwise SQLite in-memory."""
    engine = create_engine(postgres_url) if postgres_url else create_engine()
    create_all(engine)
    try:
        yield engine
    finally:
        with engine.begin() as connection:
            if engine.dialect.name == "sqlite":
                Base.metadata.drop_all(bind=connection)
            else:
                for table in reversed(Base.metadata.sorted_tables):
                    connection.execute(table.delete())
        engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(engine)


@pytest.fixture
def settings() -> SocialGraphSettings:
    return SocialGraphSettings(
        friends_list_ttl=300,
        collections_ttl=300,
        privacy_settings_ttl=600,
        pending_requests_ttl=60,
    )


@pytest.fixture
def graph(session_factory) -> RelationshipGraphStore:
    return RelationshipGraphStore(session_factory)


@pytest.fixture
def content(session_factory) -> ContentRepository:
    return ContentRepository(session_factory)


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(graph: RelationshipGraphStore, settings: SocialGraphSettings, clock: FakeClock) -> RelationshipCache:
    cache = RelationshipCache(graph, settings=settings, clock=clock)
    graph.add_mutation_listener(cache.handle_mutation)
    return cache


@pytest.fixture
def privacy(cache: RelationshipCache) -> PrivacyFilterEngine:
    return PrivacyFilterEngine(cache, settings=cache)


@dataclass
class RecordingNotifier:
    sent: list[tuple[str, NotificationEvent, dict[str, Any]]] = field(default_factory=list)
    fail: bool = False

    def notify(self, recipient_id: str, event: NotificationEvent, payload: Mapping[str, Any]) -> None:
        if self.fail:
            raise ConnectionError("notification backend down")
        self.sent.append((recipient_id, event, dict(payload)))

    def events_for(self, recipient_id: str) -> list[NotificationEvent]:
        return [event for recipient, event, _ in self.sent if recipient == recipient_id]


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def service(session_factory, settings, notifier, clock, sleeps) -> SocialGraphService:
    return create_social_graph_service(
        session_factory,
        settings=settings,
        notifier=notifier,
        clock=clock,
        sleep=sleeps.append,
    )


@pytest.fixture
def activity_factory(content: ContentRepository) -> Callable[..., ActivityEntry]:
    """Persist an activity entry with an explicit timestamp."""
    base = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def _factory(
        owner_id: str,
        privacy_level: PrivacyLevel = PrivacyLevel.PUBLIC,
        *,
        minutes: int = 0,
        activity_type: ActivityType = ActivityType.CHECKIN,
        activity_id: str | None = None,
        venue_id: str | None = "venue-1",
    ) -> ActivityEntry:
        values: dict[str, Any] = {}
        if activity_id is not None:
            values["id"] = activity_id
        entry = ActivityEntry(
            owner_id=owner_id,
            activity_type=activity_type,
            privacy_level=privacy_level,
            venue_id=venue_id,
            created_time=base + timedelta(minutes=minutes),
            **values,
        )
        return content.add_activity(entry)

    return _factory
