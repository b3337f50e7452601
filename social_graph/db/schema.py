"""SQLAlchemy declarative schema for the relationship graph and content tables."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql.sqltypes import JSON

JSON_TYPE = JSON().with_variant(JSONB, "postgresql")

# Byte-order collation on Postgres so "user_id_1 < user_id_2" agrees with Python's str ordering.
USER_ID = String(64).with_variant(String(64, collation="C"), "postgresql")
PRIVACY_LEVELS = "('public', 'friends', 'close_friends', 'private')"
PENDING_ONLY = text("status = 'pending'")


class Base(DeclarativeBase):
    """Base class for SQLAlchemy declarative mappings."""


class DbFriendship(Base):
    """Undirected friendship stored once per canonical (smaller, larger) pair."""

    __tablename__ = "friendships"
    __table_args__ = (
        Index("ux_friendships_pair", "user_id_1", "user_id_2", unique=True),
        Index("ix_friendships_user_2", "user_id_2"),
        CheckConstraint("user_id_1 < user_id_2", name="ck_friendships_canonical_pair"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id_1: Mapped[str] = mapped_column(USER_ID, nullable=False)
    user_id_2: Mapped[str] = mapped_column(USER_ID, nullable=False)
    # is_close_friend_1: user_id_1 designated user_id_2 as close, and vice versa.
    is_close_friend_1: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_close_friend_2: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class DbFriendRequest(Base):
    """Directed friend request; only one pending row per ordered pair."""

    __tablename__ = "friend_requests"
    __table_args__ = (
        Index(
            "ux_friend_requests_pending_pair",
            "from_user_id",
            "to_user_id",
            unique=True,
            postgresql_where=PENDING_ONLY,
            sqlite_where=PENDING_ONLY,
        ),
        Index("ix_friend_requests_to", "to_user_id"),
        CheckConstraint("from_user_id <> to_user_id", name="ck_friend_requests_not_self"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    from_user_id: Mapped[str] = mapped_column(USER_ID, nullable=False)
    to_user_id: Mapped[str] = mapped_column(USER_ID, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    created_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class DbFollow(Base):
    """Directed follow edge follower -> followee."""

    __tablename__ = "follows"
    __table_args__ = (
        Index("ux_follows_pair", "follower_id", "followee_id", unique=True),
        Index("ix_follows_followee", "followee_id"),
        CheckConstraint("follower_id <> followee_id", name="ck_follows_not_self"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    follower_id: Mapped[str] = mapped_column(USER_ID, nullable=False)
    followee_id: Mapped[str] = mapped_column(USER_ID, nullable=False)
    created_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class DbFollowRequest(Base):
    """Follow request awaiting the followee's approval."""

    __tablename__ = "follow_requests"
    __table_args__ = (
        Index(
            "ux_follow_requests_pending_pair",
            "follower_id",
            "followee_id",
            unique=True,
            postgresql_where=PENDING_ONLY,
            sqlite_where=PENDING_ONLY,
        ),
        Index("ix_follow_requests_followee", "followee_id"),
        CheckConstraint("follower_id <> followee_id", name="ck_follow_requests_not_self"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    follower_id: Mapped[str] = mapped_column(USER_ID, nullable=False)
    followee_id: Mapped[str] = mapped_column(USER_ID, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    created_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class DbUserBlock(Base):
    """Directed block edge blocker -> blocked."""

    __tablename__ = "user_blocks"
    __table_args__ = (
        Index("ux_user_blocks_pair", "blocker_id", "blocked_id", unique=True),
        Index("ix_user_blocks_blocked", "blocked_id"),
        CheckConstraint("blocker_id <> blocked_id", name="ck_user_blocks_not_self"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    blocker_id: Mapped[str] = mapped_column(USER_ID, nullable=False)
    blocked_id: Mapped[str] = mapped_column(USER_ID, nullable=False)
    created_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class DbPrivacySettings(Base):
    """One row per user holding visibility defaults and follow mode."""

    __tablename__ = "privacy_settings"

    user_id: Mapped[str] = mapped_column(USER_ID, primary_key=True)
    profile_visibility: Mapped[str] = mapped_column(String(16), nullable=False, default="friends")
    checkin_visibility: Mapped[str] = mapped_column(String(16), nullable=False, default="friends")
    favorite_visibility: Mapped[str] = mapped_column(String(16), nullable=False, default="friends")
    default_collection_visibility: Mapped[str] = mapped_column(
        String(16), nullable=False, default="friends"
    )
    open_follows: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    show_activity_status: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class DbActivity(Base):
    """Activity feed entry (check-in, favorite, collection activity)."""

    __tablename__ = "activity_feed"
    __table_args__ = (
        # Keyset pagination walks (created_time DESC, id DESC) per owner.
        Index("ix_activity_feed_owner_created", "user_id", "created_time", "id"),
        CheckConstraint(f"privacy_level IN {PRIVACY_LEVELS}", name="ck_activity_privacy_level"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(USER_ID, nullable=False)
    activity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    venue_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    collection_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    privacy_level: Mapped[str] = mapped_column(String(16), nullable=False)
    metadata_json: Mapped[dict[str, Any]] = mapped_column("metadata", JSON_TYPE, default=dict, nullable=False)
    created_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class DbCollection(Base):
    """Curated venue collection owned by a user."""

    __tablename__ = "collections"
    __table_args__ = (
        Index("ix_collections_owner", "user_id"),
        CheckConstraint(f"privacy_level IN {PRIVACY_LEVELS}", name="ck_collections_privacy_level"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(USER_ID, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    privacy_level: Mapped[str] = mapped_column(String(16), nullable=False)
    venue_ids: Mapped[list[str]] = mapped_column(JSON_TYPE, default=list, nullable=False)
    created_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class DbVenueShare(Base):
    """Direct venue recommendation from one user to another."""

    __tablename__ = "venue_shares"
    __table_args__ = (
        Index("ix_venue_shares_to", "to_user_id", "created_time"),
        Index("ix_venue_shares_from", "from_user_id"),
        CheckConstraint("from_user_id <> to_user_id", name="ck_venue_shares_not_self"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    from_user_id: Mapped[str] = mapped_column(USER_ID, nullable=False)
    to_user_id: Mapped[str] = mapped_column(USER_ID, nullable=False)
    venue_id: Mapped[str] = mapped_column(String(64), nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    viewed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    viewed_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


def create_all(engine: Engine) -> None:
    """Create database tables for the schema."""
    Base.metadata.create_all(engine, checkfirst=True)


__all__ = [
    "Base",
    "DbActivity",
    "DbCollection",
    "DbFollow",
    "DbFollowRequest",
    "DbFriendRequest",
    "DbFriendship",
    "DbPrivacySettings",
    "DbUserBlock",
    "DbVenueShare",
    "create_all",
]
