"""Privacy tiers and per-user privacy settings."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class PrivacyLevel(str, Enum):
    """Visibility tier attached to every content item."""

    PUBLIC = "public"
    FRIENDS = "friends"
    CLOSE_FRIENDS = "close_friends"
    PRIVATE = "private"


class ProfileVisibility(str, Enum):
    PUBLIC = "public"
    FRIENDS = "friends"
    PRIVATE = "private"

    def as_privacy_level(self) -> PrivacyLevel:
        return PrivacyLevel(self.value)


class PrivacySettings(BaseModel):
    """Per-user privacy record. Created with friends-only defaults."""

    user_id: str
    profile_visibility: ProfileVisibility = ProfileVisibility.FRIENDS
    checkin_visibility: PrivacyLevel = PrivacyLevel.FRIENDS
    favorite_visibility: PrivacyLevel = PrivacyLevel.FRIENDS
    default_collection_visibility: PrivacyLevel = PrivacyLevel.FRIENDS
    # True: anyone may follow immediately. False: follows go through a FollowRequest.
    open_follows: bool = True
    show_activity_status: bool = True
    created_time: datetime | None = None
    updated_time: datetime | None = None

    model_config = ConfigDict(from_attributes=True, frozen=True)


class PrivacySettingsUpdate(BaseModel):
    """Partial update; unset fields are left untouched."""

    profile_visibility: ProfileVisibility | None = None
    checkin_visibility: PrivacyLevel | None = None
    favorite_visibility: PrivacyLevel | None = None
    default_collection_visibility: PrivacyLevel | None = None
    open_follows: bool | None = None
    show_activity_status: bool | None = None

    model_config = ConfigDict(extra="forbid")

    def changes(self) -> dict[str, object]:
        """Return the explicitly supplied, non-null fields as column values."""
        values = self.model_dump(exclude_unset=True, exclude_none=True)
        return {key: value.value if isinstance(value, Enum) else value for key, value in values.items()}


__all__ = ["PrivacyLevel", "PrivacySettings", "PrivacySettingsUpdate", "ProfileVisibility"]
