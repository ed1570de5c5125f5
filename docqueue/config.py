"""
Queue configuration using Pydantic Settings.

Loaded from DOCQUEUE_* environment variables (or a .env file) with sensible
defaults. Only the queue defaults and the MongoDB connection live here; the
queue name is always chosen by the caller.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class QueueSettings(BaseSettings):
    """docqueue settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DOCQUEUE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Leases
    visibility: float = Field(default=30, gt=0)

    # Poller backoff
    poll_min_interval: float = Field(default=0.05, gt=0)
    poll_max_interval: float = Field(default=2.0, gt=0)

    # LeaseKeeper
    lease_keeper_interval: float = Field(default=10.0, gt=0)

    # MongoDB
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_database: str = "docqueue"


@lru_cache
def get_settings() -> QueueSettings:
    """Get cached settings instance."""
    return QueueSettings()
