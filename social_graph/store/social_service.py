"""Presentation-facing façade over the graph store, cache, privacy filter and feed."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

from social_graph.cache.relationship_cache import CacheScope, RelationshipCache
from social_graph.errors import (
    InvalidRelationshipError,
    NotFoundError,
    UnauthorizedError,
)
from social_graph.feed.aggregator import ActivityFeedAggregator
from social_graph.models.content import (
    ActivityEntry,
    ActivityType,
    Collection,
    CollectionUpdate,
    FeedFilter,
    FeedPage,
    VenueShare,
)
from social_graph.models.privacy import PrivacyLevel, PrivacySettings, PrivacySettingsUpdate
from social_graph.models.relationship import (
    Follow,
    FollowRequest,
    FollowStatus,
    FriendRequest,
    Friendship,
    FriendshipState,
    FriendshipStatus,
    SocialStats,
    UserBlock,
)
from social_graph.notifications import NotificationEvent, Notifier, dispatch_notification
from social_graph.privacy.filter import PrivacyFilterEngine
from social_graph.repositories.content_repository import ContentRepository
from social_graph.repositories.graph_repository import RelationshipGraphStore

logger = logging.getLogger(__name__)


class SocialGraphService:
    """Single entry point for every read and write the presentation layer performs.

    Callers never reach the durable store or the cache directly. Reads go
    through the cache; writes go to the graph store, whose committed
    mutations evict the cache before the call returns.
    """

    def __init__(
        self,
        graph: RelationshipGraphStore,
        content: ContentRepository,
        cache: RelationshipCache,
        privacy: PrivacyFilterEngine,
        feed: ActivityFeedAggregator,
        notifier: Notifier,
    ):
        """Internal constructor; prefer ``create_social_graph_service`` for public use."""
        self._graph = graph
        self._content = content
        self._cache = cache
        self._privacy = privacy
        self._feed = feed
        self._notifier = notifier

    # ------------------------------------------------------------------ Queries
    def get_feed(
        self,
        viewer_id: str,
        *,
        limit: int = 50,
        offset: int = 0,
        type_filter: FeedFilter | str = FeedFilter.ALL,
    ) -> FeedPage:
        return self._feed.get_feed(viewer_id, limit=limit, offset=offset, type_filter=type_filter)

    def get_friends(self, user_id: str) -> list[str]:
        return self._cache.friend_ids(user_id)

    def get_close_friends(self, user_id: str) -> list[str]:
        """Friends ``user_id`` has designated as close."""
        return self._cache.close_friend_ids(user_id)

    def get_followers(self, user_id: str) -> list[str]:
        return self._cache.follower_ids(user_id)

    def get_following(self, user_id: str) -> list[str]:
        return self._cache.following_ids(user_id)

    def get_blocked_users(self, user_id: str) -> list[str]:
        return self._graph.blocked_ids(user_id)

    def get_mutual_friends(self, user_id: str, other_user_id: str) -> list[str]:
        other_friends = set(self._cache.friend_ids(other_user_id))
        return [friend_id for friend_id in self._cache.friend_ids(user_id) if friend_id in other_friends]

    def can_view(self, viewer_id: str, owner_id: str, privacy_level: PrivacyLevel | str) -> bool:
        return self._privacy.can_view(viewer_id, owner_id, privacy_level)

    def can_view_profile(self, viewer_id: str, owner_id: str) -> bool:
        return self._privacy.can_view_profile(viewer_id, owner_id)

    def friendship_status(self, user_id: str, other_user_id: str) -> FriendshipStatus:
        return self._graph.friendship_status(user_id, other_user_id)

    def follow_status(self, follower_id: str, followee_id: str) -> FollowStatus:
        return self._graph.follow_status(follower_id, followee_id)

    def pending_friend_requests(self, user_id: str) -> list[FriendRequest]:
        return self._cache.pending_friend_requests(user_id)

    def pending_follow_requests(self, user_id: str) -> list[FollowRequest]:
        return self._graph.pending_follow_requests(user_id)

    def get_privacy_settings(self, user_id: str) -> PrivacySettings:
        return self._cache.privacy_settings(user_id)

    def get_social_stats(self, viewer_id: str, owner_id: str) -> SocialStats:
        if not self._privacy.can_view_profile(viewer_id, owner_id):
            raise NotFoundError(f"User {owner_id} not found.")
        return self._cache.social_stats(owner_id)

    def get_activity(self, viewer_id: str, activity_id: str) -> ActivityEntry:
        entry = self._content.get_activity(activity_id)
        if entry is None or not self._privacy.can_view_item(viewer_id, entry):
            raise NotFoundError(f"Activity {activity_id} not found.")
        return entry

    def get_collection(self, viewer_id: str, collection_id: str) -> Collection:
        """Return a collection the viewer may see; hidden ones look missing."""
        collection = self._content.get_collection(collection_id)
        if collection is None or not self._privacy.can_view_item(viewer_id, collection):
            raise NotFoundError(f"Collection {collection_id} not found.")
        return collection

    def get_user_collections(self, viewer_id: str, owner_id: str) -> list[Collection]:
        collections = self._cache.get_or_load(
            CacheScope.COLLECTIONS,
            owner_id,
            lambda: tuple(self._content.list_collections(owner_id)),
        )
        return self._privacy.filter_visible(viewer_id, collections)

    def received_shares(self, user_id: str) -> list[VenueShare]:
        """Shares sent to ``user_id``, minus those from users in a block relationship."""
        blocked = self._cache.block_set(user_id)
        return [share for share in self._content.received_shares(user_id) if share.from_user_id not in blocked]

    def sent_shares(self, user_id: str) -> list[VenueShare]:
        return self._content.sent_shares(user_id)

    # ----------------------------------------------------------- Mutating ops
    def send_friend_request(self, from_user_id: str, to_user_id: str) -> FriendRequest | Friendship:
        before = self._graph.friendship_status(from_user_id, to_user_id)
        result = self._graph.send_friend_request(from_user_id, to_user_id)
        if isinstance(result, Friendship):
            if before.state is FriendshipState.PENDING_RECEIVED:
                self._notify(to_user_id, NotificationEvent.FRIEND_ACCEPTED, {"user_id": from_user_id})
        elif before.state is not FriendshipState.PENDING_SENT:
            self._notify(
                to_user_id,
                NotificationEvent.FRIEND_REQUEST,
                {"user_id": from_user_id, "request_id": result.id},
            )
        return result

    def accept_friend_request(self, user_id: str, request_id: str) -> Friendship:
        """Accept a request addressed to ``user_id``; anyone else gets ``NotFoundError``."""
        request = self._graph.get_friend_request(request_id)
        friendship = self._graph.accept_friend_request(request_id, acting_user_id=user_id)
        if request is not None:
            self._notify(request.from_user_id, NotificationEvent.FRIEND_ACCEPTED, {"user_id": user_id})
        return friendship

    def decline_friend_request(self, user_id: str, request_id: str) -> FriendRequest:
        return self._graph.decline_friend_request(request_id, acting_user_id=user_id)

    def cancel_friend_request(self, user_id: str, request_id: str) -> None:
        self._graph.cancel_friend_request(request_id, user_id)

    def remove_friendship(self, user_id: str, friend_id: str) -> bool:
        return self._graph.remove_friendship(user_id, friend_id)

    def set_close_friend(self, owner_id: str, friend_id: str, is_close: bool = True) -> Friendship:
        return self._graph.set_close_friend_flag(owner_id, friend_id, is_close)

    def follow(self, follower_id: str, followee_id: str) -> Follow | FollowRequest:
        """Follow immediately when the followee allows open follows, otherwise request approval."""
        before = self._graph.follow_status(follower_id, followee_id)
        if before is FollowStatus.FOLLOWING or self._cache.privacy_settings(followee_id).open_follows:
            follow = self._graph.create_follow(follower_id, followee_id)
            if before is not FollowStatus.FOLLOWING:
                self._notify(followee_id, NotificationEvent.NEW_FOLLOWER, {"user_id": follower_id})
            return follow

        request = self._graph.create_follow_request(follower_id, followee_id)
        if before is not FollowStatus.PENDING:
            self._notify(
                followee_id,
                NotificationEvent.FOLLOW_REQUEST,
                {"user_id": follower_id, "request_id": request.id},
            )
        return request

    def unfollow(self, follower_id: str, followee_id: str) -> bool:
        return self._graph.remove_follow(follower_id, followee_id)

    def approve_follow_request(self, user_id: str, request_id: str) -> Follow:
        return self._graph.approve_follow_request(request_id, acting_user_id=user_id)

    def deny_follow_request(self, user_id: str, request_id: str) -> FollowRequest:
        return self._graph.deny_follow_request(request_id, acting_user_id=user_id)

    def block(self, blocker_id: str, blocked_id: str) -> UserBlock:
        return self._graph.create_block(blocker_id, blocked_id)

    def unblock(self, blocker_id: str, blocked_id: str) -> bool:
        return self._graph.remove_block(blocker_id, blocked_id)

    def update_privacy_settings(
        self, user_id: str, changes: PrivacySettingsUpdate | Mapping[str, Any]
    ) -> PrivacySettings:
        update = changes if isinstance(changes, PrivacySettingsUpdate) else PrivacySettingsUpdate(**changes)
        return self._graph.update_privacy_settings(user_id, update)

    def record_activity(
        self,
        owner_id: str,
        activity_type: ActivityType | str,
        *,
        venue_id: str | None = None,
        collection_id: str | None = None,
        privacy_level: PrivacyLevel | str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> ActivityEntry:
        """Record a feed entry; without an explicit level the owner's default tier applies."""
        kind = ActivityType(activity_type)
        level = PrivacyLevel(privacy_level) if privacy_level is not None else self._default_level(owner_id, kind)
        entry = ActivityEntry(
            owner_id=owner_id,
            activity_type=kind,
            privacy_level=level,
            venue_id=venue_id,
            collection_id=collection_id,
            metadata=dict(metadata or {}),
            created_time=_now(),
        )
        return self._content.add_activity(entry)

    def create_collection(
        self,
        owner_id: str,
        name: str,
        *,
        description: str | None = None,
        privacy_level: PrivacyLevel | str | None = None,
        venue_ids: Sequence[str] = (),
    ) -> Collection:
        level = (
            PrivacyLevel(privacy_level)
            if privacy_level is not None
            else self._cache.privacy_settings(owner_id).default_collection_visibility
        )
        collection = self._content.create_collection(
            Collection(
                owner_id=owner_id,
                name=name,
                description=description,
                privacy_level=level,
                venue_ids=tuple(venue_ids),
            )
        )
        self._cache.invalidate_user(owner_id, [CacheScope.COLLECTIONS])
        self.record_activity(
            owner_id,
            ActivityType.COLLECTION_CREATED,
            collection_id=collection.id,
            privacy_level=collection.privacy_level,
            metadata={"name": collection.name},
        )
        return collection

    def update_collection(
        self, user_id: str, collection_id: str, changes: CollectionUpdate | Mapping[str, Any]
    ) -> Collection:
        update = changes if isinstance(changes, CollectionUpdate) else CollectionUpdate(**changes)
        self._require_owned_collection(user_id, collection_id)
        collection = self._content.update_collection(collection_id, update)
        self._cache.invalidate_user(user_id, [CacheScope.COLLECTIONS])
        self.record_activity(
            user_id,
            ActivityType.COLLECTION_UPDATED,
            collection_id=collection.id,
            privacy_level=collection.privacy_level,
            metadata={"name": collection.name},
        )
        return collection

    def delete_collection(self, user_id: str, collection_id: str) -> bool:
        self._require_owned_collection(user_id, collection_id)
        deleted = self._content.delete_collection(collection_id)
        self._cache.invalidate_user(user_id, [CacheScope.COLLECTIONS])
        return deleted

    def add_venue_to_collection(
        self, user_id: str, collection_id: str, venue_id: str, *, position: int | None = None
    ) -> Collection:
        """Add a venue to the owner's collection; a venue already present raises ``ConflictError``."""
        self._require_owned_collection(user_id, collection_id)
        collection = self._content.add_venue_to_collection(collection_id, venue_id, position=position)
        self._cache.invalidate_user(user_id, [CacheScope.COLLECTIONS])
        self.record_activity(
            user_id,
            ActivityType.COLLECTION_UPDATED,
            venue_id=venue_id,
            collection_id=collection.id,
            privacy_level=collection.privacy_level,
            metadata={"name": collection.name},
        )
        return collection

    def remove_venue_from_collection(self, user_id: str, collection_id: str, venue_id: str) -> Collection:
        self._require_owned_collection(user_id, collection_id)
        collection = self._content.remove_venue_from_collection(collection_id, venue_id)
        self._cache.invalidate_user(user_id, [CacheScope.COLLECTIONS])
        return collection

    def reorder_collection_venues(self, user_id: str, collection_id: str, venue_ids: Sequence[str]) -> Collection:
        self._require_owned_collection(user_id, collection_id)
        collection = self._content.reorder_collection_venues(collection_id, venue_ids)
        self._cache.invalidate_user(user_id, [CacheScope.COLLECTIONS])
        return collection

    def get_collection_venues(self, viewer_id: str, collection_id: str) -> list[str]:
        """Venue ids of a visible collection in display order."""
        return list(self.get_collection(viewer_id, collection_id).venue_ids)

    def venue_share_count(self, venue_id: str) -> int:
        return self._content.venue_share_count(venue_id)

    def share_venue(
        self,
        from_user_id: str,
        venue_id: str,
        recipient_ids: Sequence[str],
        *,
        message: str | None = None,
    ) -> list[VenueShare]:
        """Share a venue with each recipient; every recipient is validated before any write."""
        recipients = list(dict.fromkeys(recipient_ids))
        if not recipients:
            raise InvalidRelationshipError("A venue share needs at least one recipient.")
        blocked = self._cache.block_set(from_user_id)
        for recipient_id in recipients:
            if recipient_id == from_user_id:
                raise InvalidRelationshipError("Cannot share a venue with yourself.")
            if recipient_id in blocked:
                raise InvalidRelationshipError(f"Cannot share a venue with blocked user {recipient_id}.")

        shares = self._content.add_venue_shares(
            [
                VenueShare(from_user_id=from_user_id, to_user_id=recipient_id, venue_id=venue_id, message=message)
                for recipient_id in recipients
            ]
        )
        logger.info("User %s shared venue %s with %s users", from_user_id, venue_id, len(shares))
        for share in shares:
            self._notify(
                share.to_user_id,
                NotificationEvent.VENUE_SHARE,
                {"user_id": from_user_id, "venue_id": venue_id, "share_id": share.id, "message": message},
            )
        return shares

    def mark_share_viewed(self, user_id: str, share_id: str) -> VenueShare:
        share = self._content.get_venue_share(share_id)
        if share is None or share.to_user_id != user_id:
            raise NotFoundError(f"Venue share {share_id} not found.")
        return self._content.mark_share_viewed(share_id)

    # ----------------------------------------------------------------- Helpers
    def _default_level(self, owner_id: str, kind: ActivityType) -> PrivacyLevel:
        settings = self._cache.privacy_settings(owner_id)
        if kind is ActivityType.CHECKIN:
            return settings.checkin_visibility
        if kind is ActivityType.FAVORITE:
            return settings.favorite_visibility
        return settings.default_collection_visibility

    def _require_owned_collection(self, user_id: str, collection_id: str) -> Collection:
        collection = self._content.get_collection(collection_id)
        if collection is None or not self._privacy.can_view_item(user_id, collection):
            raise NotFoundError(f"Collection {collection_id} not found.")
        if collection.owner_id != user_id:
            raise UnauthorizedError(f"Only the owner can modify collection {collection_id}.")
        return collection

    def _notify(self, recipient_id: str, event: NotificationEvent, payload: Mapping[str, Any]) -> None:
        dispatch_notification(self._notifier, recipient_id, event, payload)


def _now() -> datetime:
    return datetime.now(timezone.utc)


__all__ = ["SocialGraphService"]
