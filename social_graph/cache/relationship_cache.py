"""Read-through cache over the relationship graph store."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from social_graph.config import SocialGraphSettings, get_settings
from social_graph.models.privacy import PrivacySettings
from social_graph.models.relationship import FriendRequest, SocialStats
from social_graph.repositories.graph_repository import GraphMutation, RelationshipGraphStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]


class CacheScope(str, Enum):
    """Operation class an entry belongs to; entries are keyed ``(scope, user_id)``."""

    FRIENDS = "friends"
    CLOSE_FRIENDS = "close_friends"
    FOLLOWERS = "followers"
    FOLLOWING = "following"
    BLOCKS = "blocks"
    PRIVACY = "privacy"
    PENDING_REQUESTS = "pending_requests"
    COLLECTIONS = "collections"
    COUNTS = "counts"


ALL_SCOPES: frozenset[CacheScope] = frozenset(CacheScope)

_FRIENDSHIP_SCOPES = frozenset(
    {CacheScope.FRIENDS, CacheScope.CLOSE_FRIENDS, CacheScope.COUNTS, CacheScope.PENDING_REQUESTS}
)
_FOLLOW_SCOPES = frozenset(
    {CacheScope.FOLLOWERS, CacheScope.FOLLOWING, CacheScope.COUNTS, CacheScope.PENDING_REQUESTS}
)

# Block cascades into friendship, follow and request removal.
INVALIDATION_SCOPES: dict[GraphMutation, frozenset[CacheScope]] = {
    GraphMutation.FRIEND_REQUEST: frozenset({CacheScope.PENDING_REQUESTS}),
    GraphMutation.CREATE_FRIENDSHIP: _FRIENDSHIP_SCOPES,
    GraphMutation.REMOVE_FRIENDSHIP: _FRIENDSHIP_SCOPES,
    GraphMutation.SET_CLOSE_FRIEND: frozenset({CacheScope.CLOSE_FRIENDS}),
    GraphMutation.FOLLOW_REQUEST: frozenset({CacheScope.PENDING_REQUESTS}),
    GraphMutation.CREATE_FOLLOW: _FOLLOW_SCOPES,
    GraphMutation.REMOVE_FOLLOW: _FOLLOW_SCOPES,
    GraphMutation.CREATE_BLOCK: _FRIENDSHIP_SCOPES | _FOLLOW_SCOPES | {CacheScope.BLOCKS},
    GraphMutation.REMOVE_BLOCK: frozenset({CacheScope.BLOCKS}),
    GraphMutation.UPDATE_PRIVACY: frozenset({CacheScope.PRIVACY}),
}


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    evictions: int
    discarded_loads: int
    size: int
    in_flight: int = 0
    generations: int = 0


@dataclass
class _Entry:
    value: Any
    expires_at: float


class RelationshipCache:
    """Process-wide read-through cache with per-scope TTLs.

    Entries are evicted by user id when the graph store reports a committed
    mutation. While a load for a ``(scope, user_id)`` key is in flight the key
    carries a generation counter that every eviction bumps; a load that
    started under an older generation is handed back to its caller but never
    stored, so an eviction always wins over a concurrent population. The
    counter is dropped once no load for the key is running, and expired
    entries are swept at most once per shortest TTL.

    The cache also satisfies the relationship-reader interface consumed by
    the privacy filter, so visibility checks can run against cached facts.
    """

    def __init__(
        self,
        store: RelationshipGraphStore,
        *,
        settings: SocialGraphSettings | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        settings = settings or get_settings()
        self._store = store
        self._clock = clock
        self._ttls: dict[CacheScope, float] = {
            CacheScope.FRIENDS: settings.friends_list_ttl,
            CacheScope.CLOSE_FRIENDS: settings.friends_list_ttl,
            CacheScope.FOLLOWERS: settings.friends_list_ttl,
            CacheScope.FOLLOWING: settings.friends_list_ttl,
            CacheScope.BLOCKS: settings.friends_list_ttl,
            CacheScope.COUNTS: settings.friends_list_ttl,
            CacheScope.COLLECTIONS: settings.collections_ttl,
            CacheScope.PRIVACY: settings.privacy_settings_ttl,
            CacheScope.PENDING_REQUESTS: settings.pending_requests_ttl,
        }
        self._lock = threading.RLock()
        self._entries: dict[tuple[CacheScope, str], _Entry] = {}
        self._generations: dict[tuple[CacheScope, str], int] = {}
        self._inflight: dict[tuple[CacheScope, str], int] = {}
        self._epoch = 0
        self._sweep_interval = min(self._ttls.values())
        self._next_sweep = clock() + self._sweep_interval
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._discarded_loads = 0

    def ttl_for(self, scope: CacheScope) -> float:
        return self._ttls[scope]

    # ---------------------------------------------------------------- Lookups
    def friend_ids(self, user_id: str) -> list[str]:
        return list(self.get_or_load(CacheScope.FRIENDS, user_id, lambda: tuple(self._store.friend_ids(user_id))))

    def close_friend_ids(self, owner_id: str) -> list[str]:
        return list(
            self.get_or_load(
                CacheScope.CLOSE_FRIENDS, owner_id, lambda: tuple(self._store.close_friend_ids(owner_id))
            )
        )

    def follower_ids(self, user_id: str) -> list[str]:
        return list(
            self.get_or_load(CacheScope.FOLLOWERS, user_id, lambda: tuple(self._store.follower_ids(user_id)))
        )

    def following_ids(self, user_id: str) -> list[str]:
        return list(
            self.get_or_load(CacheScope.FOLLOWING, user_id, lambda: tuple(self._store.following_ids(user_id)))
        )

    def block_set(self, user_id: str) -> frozenset[str]:
        """Users in a block relationship with ``user_id``, in either direction."""
        return self.get_or_load(
            CacheScope.BLOCKS,
            user_id,
            lambda: frozenset(self._store.blocked_ids(user_id)) | frozenset(self._store.blocked_by_ids(user_id)),
        )

    def privacy_settings(self, user_id: str) -> PrivacySettings:
        return self.get_or_load(CacheScope.PRIVACY, user_id, lambda: self._store.get_privacy_settings(user_id))

    def pending_friend_requests(self, user_id: str) -> list[FriendRequest]:
        return list(
            self.get_or_load(
                CacheScope.PENDING_REQUESTS,
                user_id,
                lambda: tuple(self._store.pending_friend_requests(user_id)),
            )
        )

    def social_stats(self, user_id: str) -> SocialStats:
        return self.get_or_load(CacheScope.COUNTS, user_id, lambda: self._store.social_stats(user_id))

    # ------------------------------------------------- Relationship reader API
    def are_friends(self, user_a: str, user_b: str) -> bool:
        return user_a != user_b and user_b in self.friend_ids(user_a)

    def is_close_friend(self, owner_id: str, viewer_id: str) -> bool:
        return owner_id != viewer_id and viewer_id in self.close_friend_ids(owner_id)

    def is_following(self, follower_id: str, followee_id: str) -> bool:
        return followee_id in self.following_ids(follower_id)

    def is_blocked(self, user_a: str, user_b: str) -> bool:
        return user_b in self.block_set(user_a)

    # -------------------------------------------------------------- Core ops
    def get_or_load(self, scope: CacheScope, user_id: str, loader: Callable[[], T]) -> T:
        """Return the fresh cached value for ``(scope, user_id)`` or load and store it.

        The loader runs outside the lock. Store failures raised by the loader
        propagate to the caller and nothing is cached.
        """
        key = (scope, user_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                if entry.expires_at > self._clock():
                    self._hits += 1
                    return entry.value
                del self._entries[key]
            self._misses += 1
            self._inflight[key] = self._inflight.get(key, 0) + 1
            generation = (self._epoch, self._generations.get(key, 0))

        try:
            value = loader()
            with self._lock:
                if generation == (self._epoch, self._generations.get(key, 0)):
                    now = self._clock()
                    self._sweep_expired(now)
                    self._entries[key] = _Entry(value=value, expires_at=now + self._ttls[scope])
                else:
                    self._discarded_loads += 1
                    logger.debug("Discarding stale %s load for %s", scope.value, user_id)
        finally:
            with self._lock:
                self._release(key)
        return value

    def invalidate_user(self, user_id: str, scopes: Iterable[CacheScope] | None = None) -> None:
        """Evict ``user_id``'s entries in ``scopes`` (every scope when omitted)."""
        targets = ALL_SCOPES if scopes is None else frozenset(scopes)
        with self._lock:
            for scope in targets:
                key = (scope, user_id)
                if key in self._inflight:
                    self._generations[key] = self._generations.get(key, 0) + 1
                if self._entries.pop(key, None) is not None:
                    self._evictions += 1
        logger.debug("Evicted %s for %s", sorted(scope.value for scope in targets), user_id)

    def handle_mutation(self, mutation: GraphMutation, user_a: str, user_b: str | None) -> None:
        """Mutation listener: evict the affected scopes for both participants."""
        scopes = INVALIDATION_SCOPES[mutation]
        self.invalidate_user(user_a, scopes)
        if user_b is not None and user_b != user_a:
            self.invalidate_user(user_b, scopes)

    def clear(self) -> None:
        with self._lock:
            self._evictions += len(self._entries)
            self._entries.clear()
            self._generations.clear()
            self._epoch += 1

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                discarded_loads=self._discarded_loads,
                size=len(self._entries),
                in_flight=sum(self._inflight.values()),
                generations=len(self._generations),
            )

    # ----------------------------------------------------------------- Helpers
    def _release(self, key: tuple[CacheScope, str]) -> None:
        remaining = self._inflight.get(key, 0) - 1
        if remaining > 0:
            self._inflight[key] = remaining
        else:
            self._inflight.pop(key, None)
            self._generations.pop(key, None)

    def _sweep_expired(self, now: float) -> None:
        if now < self._next_sweep:
            return
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]
        self._next_sweep = now + self._sweep_interval
        if expired:
            logger.debug("Swept %s expired cache entries", len(expired))


__all__ = ["ALL_SCOPES", "CacheScope", "CacheStats", "Clock", "INVALIDATION_SCOPES", "RelationshipCache"]
