"""Sync run defaults, overridable through the environment."""

from __future__ import annotations

from dataclasses import dataclass

from .env import env_number

DEFAULT_MATCH_WORKERS = 4
DEFAULT_FETCH_TIMEOUT_SECONDS = 60.0
DEFAULT_FETCH_BACKOFF_SECONDS = 900.0
DEFAULT_FETCH_BACKOFF_MAX_SECONDS = 6 * 60 * 60.0
DEFAULT_UNMATCHED_LIMIT = 50


@dataclass(frozen=True, slots=True)
class SyncConfig:
    match_workers: int = DEFAULT_MATCH_WORKERS
    fetch_timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS
    fetch_backoff_seconds: float = DEFAULT_FETCH_BACKOFF_SECONDS
    fetch_backoff_max_seconds: float = DEFAULT_FETCH_BACKOFF_MAX_SECONDS
    unmatched_limit: int = DEFAULT_UNMATCHED_LIMIT


def get_sync_config() -> SyncConfig:
    return SyncConfig(
        match_workers=env_number(
            "TAXOMETRICS_MATCH_WORKERS", DEFAULT_MATCH_WORKERS, cast=int, minimum=1
        ),
        fetch_timeout_seconds=env_number(
            "TAXOMETRICS_FETCH_TIMEOUT_SECONDS",
            DEFAULT_FETCH_TIMEOUT_SECONDS,
            cast=float,
            minimum=0.1,
        ),
        fetch_backoff_seconds=env_number(
            "TAXOMETRICS_FETCH_BACKOFF_SECONDS",
            DEFAULT_FETCH_BACKOFF_SECONDS,
            cast=float,
            minimum=0.0,
        ),
        fetch_backoff_max_seconds=env_number(
            "TAXOMETRICS_FETCH_BACKOFF_MAX_SECONDS",
            DEFAULT_FETCH_BACKOFF_MAX_SECONDS,
            cast=float,
            minimum=0.0,
        ),
        unmatched_limit=env_number(
            "TAXOMETRICS_UNMATCHED_LIMIT", DEFAULT_UNMATCHED_LIMIT, cast=int, minimum=1
        ),
    )
