"""Privacy tier evaluation."""

from .filter import PrivacyFilterEngine, RelationshipReader

__all__ = ["PrivacyFilterEngine", "RelationshipReader"]
