"""Environment-backed settings for the relationship engine."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SocialGraphSettings(BaseSettings):
    """Tunable parameters, read from ``SOCIAL_GRAPH_*`` environment variables.

    Cache TTLs are expressed in seconds.
    """

    database_url: str | None = None
    friends_list_ttl: float = Field(default=5 * 60, gt=0)
    collections_ttl: float = Field(default=5 * 60, gt=0)
    privacy_settings_ttl: float = Field(default=10 * 60, gt=0)
    pending_requests_ttl: float = Field(default=60, gt=0)

    model_config = SettingsConfigDict(env_prefix="SOCIAL_GRAPH_", env_file=".env", extra="ignore")


@lru_cache(maxsize=1)
def get_settings() -> SocialGraphSettings:
    return SocialGraphSettings()


__all__ = ["SocialGraphSettings", "get_settings"]
