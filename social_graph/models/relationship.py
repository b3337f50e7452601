"""Pydantic models for relationship graph edges."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def canonical_pair(user_a: str, user_b: str) -> tuple[str, str]:
    """Order two user ids so an undirected edge always maps to one key."""
    return (user_a, user_b) if user_a < user_b else (user_b, user_a)


class RequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class FollowRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class Friendship(BaseModel):
    """Undirected friendship stored once with ``user_id_1 < user_id_2``.

    ``is_close_friend_1`` records whether ``user_id_1`` designated ``user_id_2``
    as a close friend; ``is_close_friend_2`` is the reverse designation.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id_1: str
    user_id_2: str
    is_close_friend_1: bool = False
    is_close_friend_2: bool = False
    created_time: datetime | None = None

    model_config = ConfigDict(from_attributes=True, frozen=True)

    def other(self, user_id: str) -> str:
        if user_id == self.user_id_1:
            return self.user_id_2
        if user_id == self.user_id_2:
            return self.user_id_1
        raise ValueError(f"User {user_id} is not part of friendship {self.id}.")

    def designated_close_by(self, owner_id: str) -> bool:
        """Return True when ``owner_id`` flagged the other member as close."""
        if owner_id == self.user_id_1:
            return self.is_close_friend_1
        if owner_id == self.user_id_2:
            return self.is_close_friend_2
        return False


class FriendRequest(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    from_user_id: str
    to_user_id: str
    status: RequestStatus = RequestStatus.PENDING
    created_time: datetime | None = None
    updated_time: datetime | None = None

    model_config = ConfigDict(from_attributes=True, frozen=True)


class Follow(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    follower_id: str
    followee_id: str
    created_time: datetime | None = None

    model_config = ConfigDict(from_attributes=True, frozen=True)


class FollowRequest(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    follower_id: str
    followee_id: str
    status: FollowRequestStatus = FollowRequestStatus.PENDING
    created_time: datetime | None = None
    updated_time: datetime | None = None

    model_config = ConfigDict(from_attributes=True, frozen=True)


class UserBlock(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    blocker_id: str
    blocked_id: str
    created_time: datetime | None = None

    model_config = ConfigDict(from_attributes=True, frozen=True)


class FriendshipState(str, Enum):
    NONE = "none"
    PENDING_SENT = "pending_sent"
    PENDING_RECEIVED = "pending_received"
    FRIENDS = "friends"


class FriendshipStatus(BaseModel):
    """Friendship state between two users from the first user's perspective."""

    state: FriendshipState
    is_close_friend: bool = False

    model_config = ConfigDict(frozen=True)


class FollowStatus(str, Enum):
    NOT_FOLLOWING = "not_following"
    PENDING = "pending"
    FOLLOWING = "following"


class SocialStats(BaseModel):
    friend_count: int = 0
    follower_count: int = 0
    following_count: int = 0

    model_config = ConfigDict(frozen=True)


__all__ = [
    "Follow",
    "FollowRequest",
    "FollowRequestStatus",
    "FollowStatus",
    "FriendRequest",
    "Friendship",
    "FriendshipState",
    "FriendshipStatus",
    "RequestStatus",
    "SocialStats",
    "UserBlock",
    "canonical_pair",
]
