"""Top-level package for the venue social graph engine."""

__version__ = "0.1.0"

from .store import SocialGraphService, create_social_graph_service  # noqa: E402

__all__ = ["__version__", "SocialGraphService", "create_social_graph_service"]
