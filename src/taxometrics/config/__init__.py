"""Application configuration helpers."""

from __future__ import annotations

from .env import env_number, optional_env
from .errors import ConfigurationError
from .feeds import FeedConfig, get_feed_config, get_feed_configs
from .http_resilience import (
    CacheConfig,
    PayloadCheck,
    RateLimit,
    ResilienceConfig,
    RetryablePayloadError,
    RetryPolicy,
)
from .logging import configure_logging
from .storage import StorageConfig, get_database_uri, get_storage_config
from .sync import SyncConfig, get_sync_config

__all__ = [
    "CacheConfig",
    "ConfigurationError",
    "FeedConfig",
    "PayloadCheck",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "RetryablePayloadError",
    "StorageConfig",
    "SyncConfig",
    "configure_logging",
    "env_number",
    "get_database_uri",
    "get_feed_config",
    "get_feed_configs",
    "get_storage_config",
    "get_sync_config",
    "optional_env",
]
