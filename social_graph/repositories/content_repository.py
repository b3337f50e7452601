"""SQLAlchemy-backed repository for activity entries, collections and venue shares.

These tables belong to the content schema; the engine only reads them by
owner id and privacy level, plus the few writes the service layer performs.
"""

from __future__ import annotations

from collections.abc import Callable, Collection as CollectionOf
from contextlib import AbstractContextManager
from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.orm import Session, sessionmaker

from social_graph.db.engine import unit_of_work
from social_graph.db.schema import DbActivity, DbCollection, DbVenueShare
from social_graph.errors import ConflictError, NotFoundError
from social_graph.models.content import (
    ActivityEntry,
    Collection,
    CollectionUpdate,
    VenueShare,
)

FeedCursor = tuple[datetime, str]


class ContentRepository:
    """Repository that persists and hydrates content items."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    # --------------------------------------------------------------- Activity
    def add_activity(self, entry: ActivityEntry) -> ActivityEntry:
        with self._unit_of_work() as session:
            session.add(self._activity_record(entry))
        return entry

    def get_activity(self, activity_id: str) -> ActivityEntry | None:
        with self._unit_of_work() as session:
            row = session.get(DbActivity, activity_id)
            return self._to_activity(row) if row is not None else None

    def fetch_candidates(
        self,
        owner_ids: CollectionOf[str],
        *,
        limit: int,
        after: FeedCursor | None = None,
    ) -> list[ActivityEntry]:
        """Return up to ``limit`` entries by ``owner_ids``, newest first.

        Ordering is ``(created_time DESC, id DESC)``; ``after`` continues the
        walk strictly past a previously returned ``(created_time, id)``.
        """
        if not owner_ids or limit <= 0:
            return []

        query = select(DbActivity).where(DbActivity.user_id.in_(sorted(owner_ids)))
        if after is not None:
            created_time, activity_id = after
            query = query.where(
                or_(
                    DbActivity.created_time < created_time,
                    and_(DbActivity.created_time == created_time, DbActivity.id < activity_id),
                )
            )
        query = query.order_by(DbActivity.created_time.desc(), DbActivity.id.desc()).limit(limit)

        with self._unit_of_work() as session:
            return [self._to_activity(row) for row in session.scalars(query).all()]

    # ------------------------------------------------------------- Collections
    def create_collection(self, collection: Collection) -> Collection:
        now = _now()
        stored = collection.model_copy(
            update={
                "created_time": collection.created_time or now,
                "updated_time": collection.updated_time or now,
            }
        )
        with self._unit_of_work() as session:
            session.add(
                DbCollection(
                    id=stored.id,
                    user_id=stored.owner_id,
                    name=stored.name,
                    description=stored.description,
                    privacy_level=stored.privacy_level.value,
                    venue_ids=list(stored.venue_ids),
                    created_time=stored.created_time,
                    updated_time=stored.updated_time,
                )
            )
        return stored

    def get_collection(self, collection_id: str) -> Collection | None:
        with self._unit_of_work() as session:
            row = session.get(DbCollection, collection_id)
            return self._to_collection(row) if row is not None else None

    def list_collections(self, owner_id: str) -> list[Collection]:
        """Every collection owned by ``owner_id`` regardless of privacy, newest first."""
        with self._unit_of_work() as session:
            rows = session.scalars(
                select(DbCollection)
                .where(DbCollection.user_id == owner_id)
                .order_by(DbCollection.created_time.desc(), DbCollection.id.desc())
            ).all()
            return [self._to_collection(row) for row in rows]

    def update_collection(self, collection_id: str, changes: CollectionUpdate) -> Collection:
        with self._unit_of_work() as session:
            row = session.get(DbCollection, collection_id)
            if row is None:
                raise NotFoundError(f"Collection {collection_id} does not exist.")
            values = changes.model_dump(exclude_unset=True)
            if "name" in values:
                row.name = values["name"]
            if "description" in values:
                row.description = values["description"]
            if "privacy_level" in values:
                row.privacy_level = changes.privacy_level.value
            if "venue_ids" in values:
                row.venue_ids = list(values["venue_ids"])
            row.updated_time = _now()
            session.flush()
            return self._to_collection(row)

    def add_venue_to_collection(
        self, collection_id: str, venue_id: str, *, position: int | None = None
    ) -> Collection:
        """Insert ``venue_id`` at ``position``; by default it goes after the last venue."""
        if position is not None and position < 0:
            raise ValueError("position must be non-negative")

        def edit(venue_ids: list[str]) -> list[str]:
            if venue_id in venue_ids:
                raise ConflictError(f"Venue {venue_id} is already in collection {collection_id}.")
            if position is None:
                return [*venue_ids, venue_id]
            return [*venue_ids[:position], venue_id, *venue_ids[position:]]

        return self._edit_venues(collection_id, edit)

    def remove_venue_from_collection(self, collection_id: str, venue_id: str) -> Collection:
        def edit(venue_ids: list[str]) -> list[str]:
            if venue_id not in venue_ids:
                raise NotFoundError(f"Venue {venue_id} is not in collection {collection_id}.")
            return [item for item in venue_ids if item != venue_id]

        return self._edit_venues(collection_id, edit)

    def reorder_collection_venues(self, collection_id: str, venue_ids: Sequence[str]) -> Collection:
        """Replace the venue order; ``venue_ids`` must hold exactly the collection's venues."""
        ordered = list(venue_ids)

        def edit(current: list[str]) -> list[str]:
            if len(ordered) != len(set(ordered)) or set(ordered) != set(current):
                raise ValueError(f"New order must list each venue of collection {collection_id} once.")
            return ordered

        return self._edit_venues(collection_id, edit)

    def delete_collection(self, collection_id: str) -> bool:
        with self._unit_of_work() as session:
            deleted = session.execute(
                delete(DbCollection).where(DbCollection.id == collection_id)
            ).rowcount
        return bool(deleted)

    # ------------------------------------------------------------ Venue shares
    def add_venue_shares(self, shares: Sequence[VenueShare]) -> list[VenueShare]:
        if not shares:
            return []

        now = _now()
        stored = [share.model_copy(update={"created_time": share.created_time or now}) for share in shares]
        with self._unit_of_work() as session:
            session.add_all(
                DbVenueShare(
                    id=share.id,
                    from_user_id=share.from_user_id,
                    to_user_id=share.to_user_id,
                    venue_id=share.venue_id,
                    message=share.message,
                    viewed=share.viewed,
                    viewed_time=share.viewed_time,
                    created_time=share.created_time,
                )
                for share in stored
            )
        return stored

    def received_shares(self, user_id: str) -> list[VenueShare]:
        with self._unit_of_work() as session:
            rows = session.scalars(
                select(DbVenueShare)
                .where(DbVenueShare.to_user_id == user_id)
                .order_by(DbVenueShare.created_time.desc(), DbVenueShare.id.desc())
            ).all()
            return [VenueShare.model_validate(row) for row in rows]

    def sent_shares(self, user_id: str) -> list[VenueShare]:
        with self._unit_of_work() as session:
            rows = session.scalars(
                select(DbVenueShare)
                .where(DbVenueShare.from_user_id == user_id)
                .order_by(DbVenueShare.created_time.desc(), DbVenueShare.id.desc())
            ).all()
            return [VenueShare.model_validate(row) for row in rows]

    def venue_share_count(self, venue_id: str) -> int:
        with self._unit_of_work() as session:
            return session.scalar(
                select(func.count()).select_from(DbVenueShare).where(DbVenueShare.venue_id == venue_id)
            ) or 0

    def get_venue_share(self, share_id: str) -> VenueShare | None:
        with self._unit_of_work() as session:
            row = session.get(DbVenueShare, share_id)
            return VenueShare.model_validate(row) if row is not None else None

    def mark_share_viewed(self, share_id: str) -> VenueShare:
        with self._unit_of_work() as session:
            row = session.get(DbVenueShare, share_id)
            if row is None:
                raise NotFoundError(f"Venue share {share_id} does not exist.")
            if not row.viewed:
                row.viewed = True
                row.viewed_time = _now()
                session.flush()
            return VenueShare.model_validate(row)

    # ----------------------------------------------------------------- Helpers
    def _unit_of_work(self) -> AbstractContextManager[Session]:
        return unit_of_work(self._session_factory)

    def _edit_venues(self, collection_id: str, edit: Callable[[list[str]], list[str]]) -> Collection:
        with self._unit_of_work() as session:
            row = session.get(DbCollection, collection_id, with_for_update=True)
            if row is None:
                raise NotFoundError(f"Collection {collection_id} does not exist.")
            row.venue_ids = edit(list(row.venue_ids or ()))
            row.updated_time = _now()
            session.flush()
            return self._to_collection(row)

    @staticmethod
    def _activity_record(entry: ActivityEntry) -> DbActivity:
        return DbActivity(
            id=entry.id,
            user_id=entry.owner_id,
            activity_type=entry.activity_type.value,
            venue_id=entry.venue_id,
            collection_id=entry.collection_id,
            privacy_level=entry.privacy_level.value,
            metadata_json=entry.metadata,
            created_time=entry.created_time,
        )

    @staticmethod
    def _to_activity(record: DbActivity) -> ActivityEntry:
        return ActivityEntry(
            id=record.id,
            owner_id=record.user_id,
            activity_type=record.activity_type,
            privacy_level=record.privacy_level,
            venue_id=record.venue_id,
            collection_id=record.collection_id,
            metadata=record.metadata_json or {},
            created_time=record.created_time,
        )

    @staticmethod
    def _to_collection(record: DbCollection) -> Collection:
        return Collection(
            id=record.id,
            owner_id=record.user_id,
            name=record.name,
            description=record.description,
            privacy_level=record.privacy_level,
            venue_ids=tuple(record.venue_ids or ()),
            created_time=record.created_time,
            updated_time=record.updated_time,
        )


def _now() -> datetime:
    return datetime.now(timezone.utc)


__all__ = ["ContentRepository", "FeedCursor"]
