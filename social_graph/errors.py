"""Error taxonomy shared by the graph store, cache, feed and service layers."""

from __future__ import annotations


class SocialGraphError(RuntimeError):
    """Base class for relationship engine errors."""


class InvalidRelationshipError(SocialGraphError):
    """Raised when a structurally illegal edge is requested (self-edge, blocked pair)."""


class ConflictError(SocialGraphError):
    """Raised when a uniqueness invariant would be violated and idempotent return is unsafe."""


class NotFoundError(SocialGraphError):
    """Raised when a relationship, request or content item does not exist (or is hidden)."""


class UnauthorizedError(SocialGraphError):
    """Raised when an actor may not perform a mutation on someone else's record."""


class StoreUnavailableError(SocialGraphError):
    """Raised when the durable store fails transiently; callers may retry."""


class FeedUnavailableError(StoreUnavailableError):
    """Raised by the feed aggregator once its bounded retries are exhausted."""


__all__ = [
    "ConflictError",
    "FeedUnavailableError",
    "InvalidRelationshipError",
    "NotFoundError",
    "SocialGraphError",
    "StoreUnavailableError",
    "UnauthorizedError",
]
