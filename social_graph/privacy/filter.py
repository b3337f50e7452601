"""Visibility decisions for content owned by one user and viewed by another."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol, TypeVar

from social_graph.models.content import ContentItem
from social_graph.models.privacy import PrivacyLevel, PrivacySettings

ItemT = TypeVar("ItemT", bound=ContentItem)


class RelationshipReader(Protocol):
    """Relationship facts the filter needs; met by the graph store and the cache."""

    def are_friends(self, user_a: str, user_b: str) -> bool: ...

    def is_close_friend(self, owner_id: str, viewer_id: str) -> bool: ...

    def is_blocked(self, user_a: str, user_b: str) -> bool: ...


class PrivacySettingsReader(Protocol):
    def privacy_settings(self, user_id: str) -> PrivacySettings: ...


class PrivacyFilterEngine:
    """Evaluate a viewer against an owner and a privacy tier.

    Decisions read the relationship graph and never write. Checks run
    cheapest first: ownership, then blocks, then the tier itself.
    """

    def __init__(self, relationships: RelationshipReader, settings: PrivacySettingsReader | None = None):
        self._relationships = relationships
        self._settings = settings

    def can_view(self, viewer_id: str, owner_id: str, privacy_level: PrivacyLevel | str) -> bool:
        level = PrivacyLevel(privacy_level)
        if viewer_id == owner_id:
            return True
        if self._relationships.is_blocked(viewer_id, owner_id):
            return False

        # Follows grant nothing beyond PUBLIC.
        if level is PrivacyLevel.PUBLIC:
            return True
        if level is PrivacyLevel.FRIENDS:
            return self._relationships.are_friends(viewer_id, owner_id)
        if level is PrivacyLevel.CLOSE_FRIENDS:
            return self._relationships.is_close_friend(owner_id, viewer_id)
        if level is PrivacyLevel.PRIVATE:
            return False
        raise ValueError(f"Unhandled privacy level: {level!r}")

    def can_view_item(self, viewer_id: str, item: ContentItem) -> bool:
        return self.can_view(viewer_id, item.owner_id, item.privacy_level)

    def filter_visible(self, viewer_id: str, items: Iterable[ItemT]) -> list[ItemT]:
        """Keep the items ``viewer_id`` may see, preserving order."""
        return [item for item in items if self.can_view_item(viewer_id, item)]

    def can_view_profile(self, viewer_id: str, owner_id: str) -> bool:
        if self._settings is None:
            raise RuntimeError("Profile checks require a privacy settings reader.")
        if viewer_id == owner_id:
            return True
        visibility = self._settings.privacy_settings(owner_id).profile_visibility
        return self.can_view(viewer_id, owner_id, visibility.as_privacy_level())


__all__ = ["PrivacyFilterEngine", "PrivacySettingsReader", "RelationshipReader"]
