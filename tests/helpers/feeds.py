"""Feed configurations and mocked HTTP clients for feed adapter tests."""

from __future__ import annotations

from collections.abc import Callable

import httpx

from taxometrics.adapters.http_resilience import ResilientClient
from taxometrics.config.feeds import FeedConfig
from taxometrics.config.http_resilience import PayloadCheck, ResilienceConfig, RetryPolicy
from taxometrics.domain.model import Source  # noqa: TC001

Handler = Callable[[httpx.Request], httpx.Response]
ClientFactory = Callable[[ResilienceConfig], ResilientClient]


def make_feed_config(
    source: Source,
    *,
    token: str | None = None,
    retries: int = 0,
    payload_check: PayloadCheck | None = None,
) -> FeedConfig:
    return FeedConfig(
        source=source,
        url=f"https://feeds.example.com/{source}",
        token=token,
        page_size=2,
        resilience=ResilienceConfig(
            name=f"feed:{source}",
            retry=RetryPolicy(total=retries, backoff_factor=0.0, backoff_jitter=0.0),
            cache=None,
            payload_check=payload_check,
        ),
    )


def mocked_client_factory(handler: Handler) -> ClientFactory:
    """Client factory whose clients answer every request through ``handler``."""

    def factory(config: ResilienceConfig) -> ResilientClient:
        return ResilientClient(config, transport=httpx.MockTransport(handler))

    return factory
