"""Metric feed endpoints, one per external source.

Each source is configured by ``TAXOMETRICS_<SOURCE>_FEED_*`` variables, ``<SOURCE>``
being ``GSC``, ``GA4`` or ``MARKET``:

- ``URL`` (required to enable the source) and ``TOKEN`` (bearer token)
- ``RETRIES``: retries per page on transient failures (default 3)
- ``RATE_LIMIT``: requests per second (default 5)
- ``CACHE_TTL_SECONDS``: page cache lifetime, ``0`` disables the cache (default 6h)
"""

from __future__ import annotations

from dataclasses import dataclass

from taxometrics.domain.model import Source

from .env import env_number, optional_env
from .http_resilience import (
    CacheConfig,
    PayloadCheck,
    RateLimit,
    ResilienceConfig,
    RetryPolicy,
    ShouldCacheHook,
)

FEED_TIMEOUT_SECONDS = 30.0
FEED_PAGE_SIZE = 500
DEFAULT_FEED_RETRIES = 3
DEFAULT_FEED_RATE_LIMIT = 5
DEFAULT_FEED_CACHE_TTL_SECONDS = 6 * 60 * 60.0

_ENV_PREFIX_BY_SOURCE = {
    Source.GSC: "TAXOMETRICS_GSC",
    Source.GA4: "TAXOMETRICS_GA4",
    Source.MARKET: "TAXOMETRICS_MARKET",
}


@dataclass(frozen=True, slots=True)
class FeedConfig:
    """Where and how to pull one source's daily metrics."""

    source: Source
    url: str
    resilience: ResilienceConfig
    token: str | None = None
    page_size: int = FEED_PAGE_SIZE


def _feed_resilience(
    source: Source,
    prefix: str,
    *,
    cache_predicate: ShouldCacheHook | None,
    payload_check: PayloadCheck | None,
) -> ResilienceConfig:
    retries = env_number(f"{prefix}_FEED_RETRIES", DEFAULT_FEED_RETRIES, cast=int, minimum=0)
    rate = env_number(f"{prefix}_FEED_RATE_LIMIT", DEFAULT_FEED_RATE_LIMIT, cast=int, minimum=1)
    ttl = env_number(
        f"{prefix}_FEED_CACHE_TTL_SECONDS",
        DEFAULT_FEED_CACHE_TTL_SECONDS,
        cast=float,
        minimum=0.0,
    )
    cache = CacheConfig(default_ttl_seconds=ttl, should_cache=cache_predicate) if ttl > 0 else None
    return ResilienceConfig(
        name=f"feed:{source}",
        timeout_seconds=FEED_TIMEOUT_SECONDS,
        retry=RetryPolicy(total=retries),
        ratelimit=RateLimit(max_calls=rate),
        cache=cache,
        payload_check=payload_check,
    )


def get_feed_config(
    source: Source,
    *,
    resilience: ResilienceConfig | None = None,
    cache_predicate: ShouldCacheHook | None = None,
    payload_check: PayloadCheck | None = None,
) -> FeedConfig | None:
    """Return the feed for ``source``, or ``None`` when no URL is configured."""

    prefix = _ENV_PREFIX_BY_SOURCE[source]
    url = optional_env(f"{prefix}_FEED_URL")
    if url is None:
        return None
    return FeedConfig(
        source=source,
        url=url,
        token=optional_env(f"{prefix}_FEED_TOKEN"),
        resilience=resilience
        or _feed_resilience(
            source,
            prefix,
            cache_predicate=cache_predicate,
            payload_check=payload_check,
        ),
    )


def get_feed_configs(
    *,
    cache_predicate: ShouldCacheHook | None = None,
    payload_check: PayloadCheck | None = None,
) -> list[FeedConfig]:
    configs = [
        get_feed_config(source, cache_predicate=cache_predicate, payload_check=payload_check)
        for source in Source
    ]
    return [config for config in configs if config is not None]
