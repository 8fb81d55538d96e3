"""Resilience settings for the HTTP clients that read metric feeds.

Feeds are read-only, so only ``GET``/``HEAD`` requests are retried. Besides transient
status codes and network errors, a feed may answer ``200`` with an error body that asks
the caller to come back later; a :data:`PayloadCheck` turns such bodies into
:class:`RetryablePayloadError` so they go through the same retry schedule.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final, Literal

import httpx

if TYPE_CHECKING:
    from collections.abc import Mapping

ShouldCacheHook = Callable[[object], bool]
PayloadCheck = Callable[[httpx.Response], None]

READ_METHODS: Final[frozenset[str]] = frozenset({"GET", "HEAD"})
TRANSIENT_STATUS_CODES: Final[frozenset[int]] = frozenset({408, 429, 500, 502, 503, 504})


class RetryablePayloadError(httpx.HTTPError):
    """A response whose body reports a transient failure, e.g. ``{"error": "rate_limited"}``."""

    def __init__(self, message: str, *, response: httpx.Response, code: str | None = None) -> None:
        super().__init__(message)
        self.response = response
        self.code = code


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    total: int = 3
    backoff_factor: float = 1.0
    max_backoff_wait: float = 60.0
    respect_retry_after_header: bool = True
    status_forcelist: frozenset[int] = TRANSIENT_STATUS_CODES
    retry_on_exceptions: tuple[type[httpx.HTTPError], ...] = (
        httpx.TimeoutException,
        httpx.NetworkError,
        httpx.RemoteProtocolError,
        RetryablePayloadError,
    )
    backoff_jitter: float = 1.0


@dataclass(slots=True, frozen=True)
class RateLimit:
    max_calls: int
    per_seconds: float = 1.0


@dataclass(slots=True, frozen=True)
class CacheConfig:
    """Response cache for feed pages.

    Pages for past dates rarely change, so a sqlite cache shared across runs saves
    quota. ``should_cache`` sees the decoded JSON body and keeps error or partial pages
    out of the cache.
    """

    enabled: bool = True
    backend: Literal["sqlite", "memory"] = "sqlite"
    sqlite_path: str | None = None
    default_ttl_seconds: float | None = None
    refresh_ttl_on_access: bool = False
    should_cache: ShouldCacheHook | None = None


@dataclass(slots=True, frozen=True)
class ResilienceConfig:
    name: str
    base_url: str | None = None
    timeout_seconds: float = 30.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    ratelimit: RateLimit | None = None
    cache: CacheConfig | None = field(default_factory=CacheConfig)
    payload_check: PayloadCheck | None = None
    default_headers: Mapping[str, str] | None = None
