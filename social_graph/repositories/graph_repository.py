"""SQLAlchemy-backed relationship graph: friendships, follows, blocks and privacy settings."""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import AbstractContextManager
from datetime import datetime, timezone
from enum import Enum
from typing import TypeVar
from uuid import uuid4

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from social_graph.db.engine import unit_of_work
from social_graph.db.schema import (
    DbFollow,
    DbFollowRequest,
    DbFriendRequest,
    DbFriendship,
    DbPrivacySettings,
    DbUserBlock,
)
from social_graph.errors import (
    ConflictError,
    InvalidRelationshipError,
    NotFoundError,
)
from social_graph.models.privacy import PrivacySettings, PrivacySettingsUpdate
from social_graph.models.relationship import (
    Follow,
    FollowRequest,
    FollowRequestStatus,
    FollowStatus,
    FriendRequest,
    Friendship,
    FriendshipState,
    FriendshipStatus,
    RequestStatus,
    SocialStats,
    UserBlock,
    canonical_pair,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GraphMutation(str, Enum):
    """Kinds of committed graph writes reported to mutation listeners."""

    FRIEND_REQUEST = "friend_request"
    CREATE_FRIENDSHIP = "create_friendship"
    REMOVE_FRIENDSHIP = "remove_friendship"
    SET_CLOSE_FRIEND = "set_close_friend"
    FOLLOW_REQUEST = "follow_request"
    CREATE_FOLLOW = "create_follow"
    REMOVE_FOLLOW = "remove_follow"
    CREATE_BLOCK = "create_block"
    REMOVE_BLOCK = "remove_block"
    UPDATE_PRIVACY = "update_privacy"


MutationListener = Callable[[GraphMutation, str, str | None], None]


class RelationshipGraphStore:
    """Durable read/write access to the relationship graph.

    Every mutation runs in a single transaction and, once committed, is
    reported to the registered mutation listeners before the call returns.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory
        self._listeners: list[MutationListener] = []

    def add_mutation_listener(self, listener: MutationListener) -> None:
        self._listeners.append(listener)

    # ------------------------------------------------------------------ Queries
    def are_friends(self, user_a: str, user_b: str) -> bool:
        if user_a == user_b:
            return False
        with self._unit_of_work() as session:
            return self._find_friendship(session, user_a, user_b) is not None

    def is_close_friend(self, owner_id: str, viewer_id: str) -> bool:
        """True only if ``owner_id`` has flagged ``viewer_id`` as close (not symmetric)."""
        if owner_id == viewer_id:
            return False
        with self._unit_of_work() as session:
            row = self._find_friendship(session, owner_id, viewer_id)
            return row is not None and self._to_friendship(row).designated_close_by(owner_id)

    def is_following(self, follower_id: str, followee_id: str) -> bool:
        with self._unit_of_work() as session:
            return self._find_follow(session, follower_id, followee_id) is not None

    def is_blocked(self, user_a: str, user_b: str) -> bool:
        """True if either user has blocked the other."""
        with self._unit_of_work() as session:
            return self._blocked_either_way(session, user_a, user_b)

    def has_blocked(self, blocker_id: str, blocked_id: str) -> bool:
        with self._unit_of_work() as session:
            return self._find_block(session, blocker_id, blocked_id) is not None

    def get_friendship(self, user_a: str, user_b: str) -> Friendship | None:
        with self._unit_of_work() as session:
            row = self._find_friendship(session, user_a, user_b)
            return self._to_friendship(row) if row is not None else None

    def friend_ids(self, user_id: str) -> list[str]:
        """Return the user's friends, most recent friendship first."""
        with self._unit_of_work() as session:
            rows = session.scalars(
                select(DbFriendship)
                .where(or_(DbFriendship.user_id_1 == user_id, DbFriendship.user_id_2 == user_id))
                .order_by(DbFriendship.created_time.desc(), DbFriendship.id.desc())
            ).all()
            return [self._to_friendship(row).other(user_id) for row in rows]

    def close_friend_ids(self, owner_id: str) -> list[str]:
        """Return the friends ``owner_id`` designated as close."""
        with self._unit_of_work() as session:
            rows = session.scalars(
                select(DbFriendship)
                .where(
                    or_(
                        and_(DbFriendship.user_id_1 == owner_id, DbFriendship.is_close_friend_1.is_(True)),
                        and_(DbFriendship.user_id_2 == owner_id, DbFriendship.is_close_friend_2.is_(True)),
                    )
                )
                .order_by(DbFriendship.created_time.desc(), DbFriendship.id.desc())
            ).all()
            return [self._to_friendship(row).other(owner_id) for row in rows]

    def follower_ids(self, user_id: str) -> list[str]:
        with self._unit_of_work() as session:
            return list(
                session.scalars(
                    select(DbFollow.follower_id)
                    .where(DbFollow.followee_id == user_id)
                    .order_by(DbFollow.created_time.desc(), DbFollow.id.desc())
                ).all()
            )

    def following_ids(self, user_id: str) -> list[str]:
        with self._unit_of_work() as session:
            return list(
                session.scalars(
                    select(DbFollow.followee_id)
                    .where(DbFollow.follower_id == user_id)
                    .order_by(DbFollow.created_time.desc(), DbFollow.id.desc())
                ).all()
            )

    def blocked_ids(self, user_id: str) -> list[str]:
        """Users that ``user_id`` has blocked."""
        with self._unit_of_work() as session:
            return list(
                session.scalars(
                    select(DbUserBlock.blocked_id).where(DbUserBlock.blocker_id == user_id)
                ).all()
            )

    def blocked_by_ids(self, user_id: str) -> list[str]:
        """Users that have blocked ``user_id``."""
        with self._unit_of_work() as session:
            return list(
                session.scalars(
                    select(DbUserBlock.blocker_id).where(DbUserBlock.blocked_id == user_id)
                ).all()
            )

    def mutual_friend_ids(self, user_a: str, user_b: str) -> list[str]:
        other_friends = set(self.friend_ids(user_b))
        return [friend_id for friend_id in self.friend_ids(user_a) if friend_id in other_friends]

    def social_stats(self, user_id: str) -> SocialStats:
        with self._unit_of_work() as session:
            friend_count = session.scalar(
                select(func.count())
                .select_from(DbFriendship)
                .where(or_(DbFriendship.user_id_1 == user_id, DbFriendship.user_id_2 == user_id))
            )
            follower_count = session.scalar(
                select(func.count()).select_from(DbFollow).where(DbFollow.followee_id == user_id)
            )
            following_count = session.scalar(
                select(func.count()).select_from(DbFollow).where(DbFollow.follower_id == user_id)
            )
        return SocialStats(
            friend_count=friend_count or 0,
            follower_count=follower_count or 0,
            following_count=following_count or 0,
        )

    def get_friend_request(self, request_id: str) -> FriendRequest | None:
        with self._unit_of_work() as session:
            row = session.get(DbFriendRequest, request_id)
            return self._to_friend_request(row) if row is not None else None

    def pending_friend_requests(self, user_id: str) -> list[FriendRequest]:
        """Pending requests sent or received by ``user_id``, newest first."""
        with self._unit_of_work() as session:
            rows = session.scalars(
                select(DbFriendRequest)
                .where(
                    or_(DbFriendRequest.from_user_id == user_id, DbFriendRequest.to_user_id == user_id),
                    DbFriendRequest.status == RequestStatus.PENDING.value,
                )
                .order_by(DbFriendRequest.created_time.desc(), DbFriendRequest.id.desc())
            ).all()
            return [self._to_friend_request(row) for row in rows]

    def get_follow_request(self, request_id: str) -> FollowRequest | None:
        with self._unit_of_work() as session:
            row = session.get(DbFollowRequest, request_id)
            return self._to_follow_request(row) if row is not None else None

    def pending_follow_requests(self, followee_id: str) -> list[FollowRequest]:
        with self._unit_of_work() as session:
            rows = session.scalars(
                select(DbFollowRequest)
                .where(
                    DbFollowRequest.followee_id == followee_id,
                    DbFollowRequest.status == FollowRequestStatus.PENDING.value,
                )
                .order_by(DbFollowRequest.created_time.desc(), DbFollowRequest.id.desc())
            ).all()
            return [self._to_follow_request(row) for row in rows]

    def friendship_status(self, user_id: str, other_user_id: str) -> FriendshipStatus:
        """Describe the friendship between two users from ``user_id``'s side."""
        with self._unit_of_work() as session:
            row = self._find_friendship(session, user_id, other_user_id)
            if row is not None:
                return FriendshipStatus(
                    state=FriendshipState.FRIENDS,
                    is_close_friend=self._to_friendship(row).designated_close_by(user_id),
                )
            if self._find_pending_friend_request(session, user_id, other_user_id) is not None:
                return FriendshipStatus(state=FriendshipState.PENDING_SENT)
            if self._find_pending_friend_request(session, other_user_id, user_id) is not None:
                return FriendshipStatus(state=FriendshipState.PENDING_RECEIVED)
            return FriendshipStatus(state=FriendshipState.NONE)

    def follow_status(self, follower_id: str, followee_id: str) -> FollowStatus:
        with self._unit_of_work() as session:
            if self._find_follow(session, follower_id, followee_id) is not None:
                return FollowStatus.FOLLOWING
            if self._find_pending_follow_request(session, follower_id, followee_id) is not None:
                return FollowStatus.PENDING
            return FollowStatus.NOT_FOLLOWING

    def get_privacy_settings(self, user_id: str) -> PrivacySettings:
        """Return the user's settings, creating friends-only defaults on first read."""
        with self._unit_of_work() as session:
            row = session.get(DbPrivacySettings, user_id)
            if row is None:
                row = self._insert_default_privacy_settings(session, user_id)
            return PrivacySettings.model_validate(row)

    # ----------------------------------------------------------- Mutating ops
    def send_friend_request(self, from_user_id: str, to_user_id: str) -> FriendRequest | Friendship:
        """Create a pending request, or accept the reverse one if it already exists.

        Sending an identical pending request again returns the existing one.
        """
        _require_distinct(from_user_id, to_user_id, "friend request")

        def find(session: Session) -> FriendRequest | Friendship | None:
            if self._blocked_either_way(session, from_user_id, to_user_id):
                raise InvalidRelationshipError("Cannot send a friend request to a blocked user.")
            if self._find_friendship(session, from_user_id, to_user_id) is not None:
                raise ConflictError(f"Users {from_user_id} and {to_user_id} are already friends.")
            reverse = self._find_pending_friend_request(session, to_user_id, from_user_id)
            if reverse is not None:
                return self._to_friend_request(reverse)
            existing = self._find_pending_friend_request(session, from_user_id, to_user_id)
            return self._to_friend_request(existing) if existing is not None else None

        def insert(session: Session) -> FriendRequest:
            now = _now()
            row = DbFriendRequest(
                id=str(uuid4()),
                from_user_id=from_user_id,
                to_user_id=to_user_id,
                status=RequestStatus.PENDING.value,
                created_time=now,
                updated_time=now,
            )
            session.add(row)
            session.flush()
            return self._to_friend_request(row)

        result, created = self._insert_or_get(find, insert)
        if isinstance(result, FriendRequest) and result.from_user_id == to_user_id:
            logger.info("Reverse friend request %s pending; accepting it", result.id)
            return self.accept_friend_request(result.id, acting_user_id=from_user_id)
        if created:
            logger.info("Friend request %s -> %s created", from_user_id, to_user_id)
            self._emit(GraphMutation.FRIEND_REQUEST, from_user_id, to_user_id)
        return result

    def accept_friend_request(self, request_id: str, *, acting_user_id: str | None = None) -> Friendship:
        """Delete the pending request and create the friendship in one transaction.

        A second accept of the same request raises ``NotFoundError``.
        """
        try:
            with self._unit_of_work() as session:
                request = self._claim_pending_friend_request(session, request_id, acting_user_id)
                friendship = self._find_friendship(session, request.from_user_id, request.to_user_id)
                if friendship is None:
                    friendship = self._insert_friendship(session, request.from_user_id, request.to_user_id)
                result = self._to_friendship(friendship)
        except IntegrityError as exc:
            # A concurrent writer created the same friendship first.
            with self._unit_of_work() as session:
                request = self._claim_pending_friend_request(session, request_id, acting_user_id)
                friendship = self._find_friendship(session, request.from_user_id, request.to_user_id)
                if friendship is None:
                    raise ConflictError(f"Could not accept friend request {request_id}.") from exc
                result = self._to_friendship(friendship)

        logger.info("Friend request %s accepted", request_id)
        self._emit(GraphMutation.FRIEND_REQUEST, request.from_user_id, request.to_user_id)
        self._emit(GraphMutation.CREATE_FRIENDSHIP, request.from_user_id, request.to_user_id)
        return result

    def decline_friend_request(self, request_id: str, *, acting_user_id: str | None = None) -> FriendRequest:
        with self._unit_of_work() as session:
            request = self._claim_pending_friend_request(session, request_id, acting_user_id)
        logger.info("Friend request %s declined", request_id)
        self._emit(GraphMutation.FRIEND_REQUEST, request.from_user_id, request.to_user_id)
        return request.model_copy(update={"status": RequestStatus.DECLINED})

    def cancel_friend_request(self, request_id: str, sender_id: str) -> None:
        with self._unit_of_work() as session:
            row = session.get(DbFriendRequest, request_id)
            if row is None or row.from_user_id != sender_id:
                raise NotFoundError(f"Friend request {request_id} does not exist.")
            request = self._to_friend_request(row)
            self._delete_pending(session, DbFriendRequest, request_id, RequestStatus.PENDING.value)
        self._emit(GraphMutation.FRIEND_REQUEST, request.from_user_id, request.to_user_id)

    def create_friendship(self, user_a: str, user_b: str) -> Friendship:
        """Create the canonical friendship row, returning the existing one on duplicates."""
        _require_distinct(user_a, user_b, "friendship")

        def find(session: Session) -> Friendship | None:
            if self._blocked_either_way(session, user_a, user_b):
                raise InvalidRelationshipError("Cannot befriend a blocked user.")
            row = self._find_friendship(session, user_a, user_b)
            return self._to_friendship(row) if row is not None else None

        def insert(session: Session) -> Friendship:
            return self._to_friendship(self._insert_friendship(session, user_a, user_b))

        friendship, created = self._insert_or_get(find, insert)
        if created:
            logger.info("Friendship %s <-> %s created", user_a, user_b)
            self._emit(GraphMutation.CREATE_FRIENDSHIP, user_a, user_b)
        return friendship

    def remove_friendship(self, user_a: str, user_b: str) -> bool:
        """Delete the single friendship row; removal applies to both users."""
        first, second = canonical_pair(user_a, user_b)
        with self._unit_of_work() as session:
            deleted = session.execute(
                delete(DbFriendship).where(
                    DbFriendship.user_id_1 == first, DbFriendship.user_id_2 == second
                )
            ).rowcount
        if deleted:
            logger.info("Friendship %s <-> %s removed", user_a, user_b)
            self._emit(GraphMutation.REMOVE_FRIENDSHIP, user_a, user_b)
        return bool(deleted)

    def set_close_friend_flag(self, owner_id: str, friend_id: str, value: bool) -> Friendship:
        """Set ``owner_id``'s close-friend designation of ``friend_id``.

        The flag lives on the friendship row, so the pair must already be friends.
        """
        _require_distinct(owner_id, friend_id, "close friend designation")
        with self._unit_of_work() as session:
            row = self._find_friendship(session, owner_id, friend_id)
            if row is None:
                raise NotFoundError(f"Users {owner_id} and {friend_id} are not friends.")
            if row.user_id_1 == owner_id:
                row.is_close_friend_1 = value
            else:
                row.is_close_friend_2 = value
            session.flush()
            result = self._to_friendship(row)
        self._emit(GraphMutation.SET_CLOSE_FRIEND, owner_id, friend_id)
        return result

    def create_follow(self, follower_id: str, followee_id: str) -> Follow:
        """Create the follow edge; a pending follow request for the pair is dropped with it."""
        _require_distinct(follower_id, followee_id, "follow")

        def find(session: Session) -> Follow | None:
            if self._blocked_either_way(session, follower_id, followee_id):
                raise InvalidRelationshipError("Cannot follow a blocked user.")
            row = self._find_follow(session, follower_id, followee_id)
            return self._to_follow(row) if row is not None else None

        def insert(session: Session) -> Follow:
            session.execute(
                delete(DbFollowRequest).where(
                    DbFollowRequest.follower_id == follower_id,
                    DbFollowRequest.followee_id == followee_id,
                    DbFollowRequest.status == FollowRequestStatus.PENDING.value,
                )
            )
            return self._to_follow(self._insert_follow(session, follower_id, followee_id))

        follow, created = self._insert_or_get(find, insert)
        if created:
            logger.info("Follow %s -> %s created", follower_id, followee_id)
            self._emit(GraphMutation.CREATE_FOLLOW, follower_id, followee_id)
        return follow

    def remove_follow(self, follower_id: str, followee_id: str) -> bool:
        with self._unit_of_work() as session:
            deleted = session.execute(
                delete(DbFollow).where(
                    DbFollow.follower_id == follower_id, DbFollow.followee_id == followee_id
                )
            ).rowcount
        if deleted:
            logger.info("Follow %s -> %s removed", follower_id, followee_id)
            self._emit(GraphMutation.REMOVE_FOLLOW, follower_id, followee_id)
        return bool(deleted)

    def create_follow_request(self, follower_id: str, followee_id: str) -> FollowRequest:
        _require_distinct(follower_id, followee_id, "follow request")

        def find(session: Session) -> FollowRequest | None:
            if self._blocked_either_way(session, follower_id, followee_id):
                raise InvalidRelationshipError("Cannot follow a blocked user.")
            if self._find_follow(session, follower_id, followee_id) is not None:
                raise ConflictError(f"{follower_id} already follows {followee_id}.")
            row = self._find_pending_follow_request(session, follower_id, followee_id)
            return self._to_follow_request(row) if row is not None else None

        def insert(session: Session) -> FollowRequest:
            now = _now()
            row = DbFollowRequest(
                id=str(uuid4()),
                follower_id=follower_id,
                followee_id=followee_id,
                status=FollowRequestStatus.PENDING.value,
                created_time=now,
                updated_time=now,
            )
            session.add(row)
            session.flush()
            return self._to_follow_request(row)

        request, created = self._insert_or_get(find, insert)
        if created:
            logger.info("Follow request %s -> %s created", follower_id, followee_id)
            self._emit(GraphMutation.FOLLOW_REQUEST, follower_id, followee_id)
        return request

    def approve_follow_request(self, request_id: str, *, acting_user_id: str | None = None) -> Follow:
        try:
            with self._unit_of_work() as session:
                request = self._claim_pending_follow_request(session, request_id, acting_user_id)
                row = self._find_follow(session, request.follower_id, request.followee_id)
                if row is None:
                    row = self._insert_follow(session, request.follower_id, request.followee_id)
                follow = self._to_follow(row)
        except IntegrityError as exc:
            with self._unit_of_work() as session:
                request = self._claim_pending_follow_request(session, request_id, acting_user_id)
                row = self._find_follow(session, request.follower_id, request.followee_id)
                if row is None:
                    raise ConflictError(f"Could not approve follow request {request_id}.") from exc
                follow = self._to_follow(row)

        logger.info("Follow request %s approved", request_id)
        self._emit(GraphMutation.FOLLOW_REQUEST, request.follower_id, request.followee_id)
        self._emit(GraphMutation.CREATE_FOLLOW, request.follower_id, request.followee_id)
        return follow

    def deny_follow_request(self, request_id: str, *, acting_user_id: str | None = None) -> FollowRequest:
        with self._unit_of_work() as session:
            request = self._claim_pending_follow_request(session, request_id, acting_user_id)
        logger.info("Follow request %s denied", request_id)
        self._emit(GraphMutation.FOLLOW_REQUEST, request.follower_id, request.followee_id)
        return request.model_copy(update={"status": FollowRequestStatus.DENIED})

    def create_block(self, blocker_id: str, blocked_id: str) -> UserBlock:
        """Block ``blocked_id`` and remove every friendship, follow and request between the pair.

        The block edge and the cascading deletes commit together or not at all.
        """
        _require_distinct(blocker_id, blocked_id, "block")
        first, second = canonical_pair(blocker_id, blocked_id)

        def find(session: Session) -> UserBlock | None:
            row = self._find_block(session, blocker_id, blocked_id)
            return self._to_block(row) if row is not None else None

        def insert(session: Session) -> UserBlock:
            session.execute(
                delete(DbFriendship).where(
                    DbFriendship.user_id_1 == first, DbFriendship.user_id_2 == second
                )
            )
            session.execute(
                delete(DbFollow).where(
                    _directed_pair(DbFollow.follower_id, DbFollow.followee_id, blocker_id, blocked_id)
                )
            )
            session.execute(
                delete(DbFriendRequest).where(
                    _directed_pair(DbFriendRequest.from_user_id, DbFriendRequest.to_user_id, blocker_id, blocked_id)
                )
            )
            session.execute(
                delete(DbFollowRequest).where(
                    _directed_pair(DbFollowRequest.follower_id, DbFollowRequest.followee_id, blocker_id, blocked_id)
                )
            )
            row = DbUserBlock(
                id=str(uuid4()),
                blocker_id=blocker_id,
                blocked_id=blocked_id,
                created_time=_now(),
            )
            session.add(row)
            session.flush()
            return self._to_block(row)

        block, created = self._insert_or_get(find, insert)
        if created:
            logger.info("User %s blocked %s", blocker_id, blocked_id)
            self._emit(GraphMutation.CREATE_BLOCK, blocker_id, blocked_id)
        return block

    def remove_block(self, blocker_id: str, blocked_id: str) -> bool:
        with self._unit_of_work() as session:
            deleted = session.execute(
                delete(DbUserBlock).where(
                    DbUserBlock.blocker_id == blocker_id, DbUserBlock.blocked_id == blocked_id
                )
            ).rowcount
        if deleted:
            logger.info("User %s unblocked %s", blocker_id, blocked_id)
            self._emit(GraphMutation.REMOVE_BLOCK, blocker_id, blocked_id)
        return bool(deleted)

    def update_privacy_settings(self, user_id: str, changes: PrivacySettingsUpdate) -> PrivacySettings:
        values = changes.changes()
        with self._unit_of_work() as session:
            row = session.get(DbPrivacySettings, user_id)
            if row is None:
                row = self._insert_default_privacy_settings(session, user_id)
            if values:
                session.execute(
                    update(DbPrivacySettings)
                    .where(DbPrivacySettings.user_id == user_id)
                    .values(**values, updated_time=_now())
                    .execution_options(synchronize_session=False)
                )
                session.refresh(row)
            result = PrivacySettings.model_validate(row)
        logger.info("Privacy settings for %s updated: %s", user_id, sorted(values))
        self._emit(GraphMutation.UPDATE_PRIVACY, user_id, None)
        return result

    # ----------------------------------------------------------------- Helpers
    def _unit_of_work(self) -> AbstractContextManager[Session]:
        return unit_of_work(self._session_factory)

    def _insert_or_get(
        self,
        find: Callable[[Session], T | None],
        insert: Callable[[Session], T],
    ) -> tuple[T, bool]:
        """Return ``(existing, False)`` or ``(inserted, True)``.

        When a concurrent writer wins the uniqueness race the insert fails with
        ``IntegrityError`` and the winner's row is returned instead.
        """
        try:
            with self._unit_of_work() as session:
                existing = find(session)
                if existing is not None:
                    return existing, False
                return insert(session), True
        except IntegrityError as exc:
            logger.debug("Uniqueness race lost; re-reading existing row: %s", exc.orig)
            with self._unit_of_work() as session:
                existing = find(session)
            if existing is None:
                raise ConflictError("Concurrent write conflict could not be resolved.") from exc
            return existing, False

    def _emit(self, mutation: GraphMutation, user_a: str, user_b: str | None) -> None:
        for listener in self._listeners:
            listener(mutation, user_a, user_b)

    def _claim_pending_friend_request(
        self, session: Session, request_id: str, acting_user_id: str | None
    ) -> FriendRequest:
        row = session.get(DbFriendRequest, request_id)
        if (
            row is None
            or row.status != RequestStatus.PENDING.value
            or (acting_user_id is not None and row.to_user_id != acting_user_id)
        ):
            raise NotFoundError(f"Friend request {request_id} not found or already processed.")
        request = self._to_friend_request(row)
        self._delete_pending(session, DbFriendRequest, request_id, RequestStatus.PENDING.value)
        return request

    def _claim_pending_follow_request(
        self, session: Session, request_id: str, acting_user_id: str | None
    ) -> FollowRequest:
        row = session.get(DbFollowRequest, request_id)
        if (
            row is None
            or row.status != FollowRequestStatus.PENDING.value
            or (acting_user_id is not None and row.followee_id != acting_user_id)
        ):
            raise NotFoundError(f"Follow request {request_id} not found or already processed.")
        request = self._to_follow_request(row)
        self._delete_pending(session, DbFollowRequest, request_id, FollowRequestStatus.PENDING.value)
        return request

    @staticmethod
    def _delete_pending(session: Session, model, request_id: str, pending: str) -> None:
        # Conditional delete: only one of two racing transactions sees a row to remove.
        deleted = session.execute(
            delete(model)
            .where(model.id == request_id, model.status == pending)
            .execution_options(synchronize_session=False)
        ).rowcount
        if not deleted:
            raise NotFoundError(f"Request {request_id} not found or already processed.")

    @staticmethod
    def _find_friendship(session: Session, user_a: str, user_b: str) -> DbFriendship | None:
        first, second = canonical_pair(user_a, user_b)
        return session.scalars(
            select(DbFriendship).where(DbFriendship.user_id_1 == first, DbFriendship.user_id_2 == second)
        ).one_or_none()

    @staticmethod
    def _find_follow(session: Session, follower_id: str, followee_id: str) -> DbFollow | None:
        return session.scalars(
            select(DbFollow).where(DbFollow.follower_id == follower_id, DbFollow.followee_id == followee_id)
        ).one_or_none()

    @staticmethod
    def _find_block(session: Session, blocker_id: str, blocked_id: str) -> DbUserBlock | None:
        return session.scalars(
            select(DbUserBlock).where(DbUserBlock.blocker_id == blocker_id, DbUserBlock.blocked_id == blocked_id)
        ).one_or_none()

    @staticmethod
    def _blocked_either_way(session: Session, user_a: str, user_b: str) -> bool:
        found = session.scalar(
            select(DbUserBlock.id)
            .where(_directed_pair(DbUserBlock.blocker_id, DbUserBlock.blocked_id, user_a, user_b))
            .limit(1)
        )
        return found is not None

    @staticmethod
    def _find_pending_friend_request(session: Session, from_user_id: str, to_user_id: str) -> DbFriendRequest | None:
        return session.scalars(
            select(DbFriendRequest).where(
                DbFriendRequest.from_user_id == from_user_id,
                DbFriendRequest.to_user_id == to_user_id,
                DbFriendRequest.status == RequestStatus.PENDING.value,
            )
        ).one_or_none()

    @staticmethod
    def _find_pending_follow_request(session: Session, follower_id: str, followee_id: str) -> DbFollowRequest | None:
        return session.scalars(
            select(DbFollowRequest).where(
                DbFollowRequest.follower_id == follower_id,
                DbFollowRequest.followee_id == followee_id,
                DbFollowRequest.status == FollowRequestStatus.PENDING.value,
            )
        ).one_or_none()

    @staticmethod
    def _insert_friendship(session: Session, user_a: str, user_b: str) -> DbFriendship:
        first, second = canonical_pair(user_a, user_b)
        row = DbFriendship(
            id=str(uuid4()),
            user_id_1=first,
            user_id_2=second,
            is_close_friend_1=False,
            is_close_friend_2=False,
            created_time=_now(),
        )
        session.add(row)
        session.flush()
        return row

    @staticmethod
    def _insert_follow(session: Session, follower_id: str, followee_id: str) -> DbFollow:
        row = DbFollow(
            id=str(uuid4()),
            follower_id=follower_id,
            followee_id=followee_id,
            created_time=_now(),
        )
        session.add(row)
        session.flush()
        return row

    @staticmethod
    def _insert_default_privacy_settings(session: Session, user_id: str) -> DbPrivacySettings:
        """Insert friends-only defaults, tolerating a concurrent creator."""
        defaults = PrivacySettings(user_id=user_id)
        now = _now()
        payload = {
            "user_id": user_id,
            "profile_visibility": defaults.profile_visibility.value,
            "checkin_visibility": defaults.checkin_visibility.value,
            "favorite_visibility": defaults.favorite_visibility.value,
            "default_collection_visibility": defaults.default_collection_visibility.value,
            "open_follows": defaults.open_follows,
            "show_activity_status": defaults.show_activity_status,
            "created_time": now,
            "updated_time": now,
        }
        bind = session.get_bind()
        if bind.dialect.name == "postgresql":
            stmt = pg_insert(DbPrivacySettings).values(payload).on_conflict_do_nothing(
                index_elements=["user_id"]
            )
        else:
            stmt = sqlite_insert(DbPrivacySettings).values(payload).on_conflict_do_nothing(
                index_elements=["user_id"]
            )
        session.execute(stmt)
        logger.debug("Ensured default privacy settings for %s", user_id)
        return session.get(DbPrivacySettings, user_id, populate_existing=True)

    @staticmethod
    def _to_friendship(record: DbFriendship) -> Friendship:
        return Friendship.model_validate(record)

    @staticmethod
    def _to_friend_request(record: DbFriendRequest) -> FriendRequest:
        return FriendRequest.model_validate(record)

    @staticmethod
    def _to_follow(record: DbFollow) -> Follow:
        return Follow.model_validate(record)

    @staticmethod
    def _to_follow_request(record: DbFollowRequest) -> FollowRequest:
        return FollowRequest.model_validate(record)

    @staticmethod
    def _to_block(record: DbUserBlock) -> UserBlock:
        return UserBlock.model_validate(record)


def _require_distinct(user_a: str, user_b: str, edge: str) -> None:
    if user_a == user_b:
        raise InvalidRelationshipError(f"A {edge} cannot reference the same user twice ({user_a}).")


def _directed_pair(source_column, target_column, user_a: str, user_b: str):
    """Match an edge between the two users in either direction."""
    return or_(
        and_(source_column == user_a, target_column == user_b),
        and_(source_column == user_b, target_column == user_a),
    )


def _now() -> datetime:
    return datetime.now(timezone.utc)


__all__ = [
    "GraphMutation",
    "MutationListener",
    "RelationshipGraphStore",
]
