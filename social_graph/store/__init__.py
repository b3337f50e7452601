"""Social graph service orchestration helpers."""

from .factory import create_social_graph_service
from .social_service import SocialGraphService

__all__ = ["SocialGraphService", "create_social_graph_service"]
