"""Relationship cache with per-scope TTLs and mutation-driven eviction."""

from .relationship_cache import CacheScope, CacheStats, RelationshipCache

__all__ = ["CacheScope", "CacheStats", "RelationshipCache"]
