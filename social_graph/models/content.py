"""Content items the visibility engine evaluates: activities, collections, shares."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Protocol
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from social_graph.models.privacy import PrivacyLevel


class ContentItem(Protocol):
    """Anything carrying an owner and a privacy tier."""

    @property
    def owner_id(self) -> str: ...

    @property
    def privacy_level(self) -> PrivacyLevel: ...


class ActivityType(str, Enum):
    CHECKIN = "checkin"
    FAVORITE = "favorite"
    COLLECTION_CREATED = "collection_created"
    COLLECTION_UPDATED = "collection_updated"


class FeedFilter(str, Enum):
    """Activity-type filter applied after authorization."""

    ALL = "all"
    CHECKINS = "checkins"
    FAVORITES = "favorites"
    COLLECTIONS = "collections"

    def activity_types(self) -> frozenset[ActivityType] | None:
        if self is FeedFilter.ALL:
            return None
        return _FILTER_TYPES[self]


_FILTER_TYPES: dict[FeedFilter, frozenset[ActivityType]] = {
    FeedFilter.CHECKINS: frozenset({ActivityType.CHECKIN}),
    FeedFilter.FAVORITES: frozenset({ActivityType.FAVORITE}),
    FeedFilter.COLLECTIONS: frozenset(
        {ActivityType.COLLECTION_CREATED, ActivityType.COLLECTION_UPDATED}
    ),
}


class ActivityEntry(BaseModel):
    """Feed entry. ``metadata`` is opaque to the engine."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    owner_id: str
    activity_type: ActivityType
    privacy_level: PrivacyLevel
    venue_id: str | None = None
    collection_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_time: datetime

    model_config = ConfigDict(from_attributes=True, frozen=True)


class Collection(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    owner_id: str
    name: str
    description: str | None = None
    privacy_level: PrivacyLevel
    venue_ids: tuple[str, ...] = ()
    created_time: datetime | None = None
    updated_time: datetime | None = None

    model_config = ConfigDict(from_attributes=True, frozen=True)


class CollectionUpdate(BaseModel):
    """Partial update; only explicitly supplied fields change.

    ``description=None`` clears the description. ``name``, ``privacy_level``
    and ``venue_ids`` cannot be null; pass ``venue_ids=()`` to empty a collection.
    """

    name: str | None = None
    description: str | None = None
    privacy_level: PrivacyLevel | None = None
    venue_ids: tuple[str, ...] | None = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("name", "privacy_level", "venue_ids")
    @classmethod
    def _reject_null(cls, value):
        if value is None:
            raise ValueError("field cannot be cleared")
        return value


class VenueShare(BaseModel):
    """Direct share; the recipient is the only non-owner allowed to see it."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    from_user_id: str
    to_user_id: str
    venue_id: str
    message: str | None = None
    viewed: bool = False
    viewed_time: datetime | None = None
    created_time: datetime | None = None

    model_config = ConfigDict(from_attributes=True, frozen=True)


class FeedPage(BaseModel):
    items: list[ActivityEntry]
    has_more: bool

    model_config = ConfigDict(frozen=True)


__all__ = [
    "ActivityEntry",
    "ActivityType",
    "Collection",
    "CollectionUpdate",
    "ContentItem",
    "FeedFilter",
    "FeedPage",
    "VenueShare",
]
