"""HTTP-backed metric sources.

Every feed serves one page of rows per request for a given date::

    GET <url>?date=2024-01-15&page=1&limit=500[&since=<iso timestamp>]
    {"rows": [...], "nextPage": 2, "partial": false}

Errors come back as ``{"error": "...", "message": "..."}``. The codes in
:data:`RETRYABLE_FEED_ERRORS` are transient and retried by the HTTP client through
:func:`check_feed_payload`; any other error code fails the fetch.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

import httpx

from taxometrics.adapters.http_resilience import ResilientClient
from taxometrics.config.http_resilience import RetryablePayloadError
from taxometrics.domain.model import Source

from .schema import AnalyticsPage, FeedErrorResponse, MarketPage, SearchConsolePage
from .translator import parse_analytics_row, parse_market_row, parse_search_row

if TYPE_CHECKING:
    from datetime import date, datetime

    from taxometrics.config import FeedConfig, ResilienceConfig
    from taxometrics.domain.model import ExternalRecord
    from taxometrics.domain.ports import MetricSource

    from .schema import FeedPage

log = getLogger(__name__)

_PAGE_MODEL_BY_SOURCE: dict[Source, type[SearchConsolePage | AnalyticsPage | MarketPage]] = {
    Source.GSC: SearchConsolePage,
    Source.GA4: AnalyticsPage,
    Source.MARKET: MarketPage,
}


class FeedAPIError(RuntimeError):
    """Raised when a feed answers with an application-level error payload."""

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


RETRYABLE_FEED_ERRORS = frozenset({"rate_limited", "unavailable", "timeout"})


def check_feed_payload(response: httpx.Response) -> None:
    """Raise :class:`RetryablePayloadError` for transient error payloads."""

    try:
        payload = response.json()
    except ValueError:
        return
    if not isinstance(payload, dict):
        return
    code = payload.get("error")
    if code in RETRYABLE_FEED_ERRORS:
        message = payload.get("message") or code
        raise RetryablePayloadError(f"Feed asked to retry: {message}", response=response, code=code)


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


def _translate(page: FeedPage, metrics_date: date) -> list[ExternalRecord]:
    records: list[ExternalRecord | None]
    match page:
        case SearchConsolePage():
            records = [parse_search_row(row, metrics_date) for row in page.rows]
        case AnalyticsPage():
            records = [parse_analytics_row(row, metrics_date) for row in page.rows]
        case MarketPage():
            records = [parse_market_row(row, metrics_date) for row in page.rows]
    return [record for record in records if record is not None]


@dataclass(slots=True)
class HttpMetricSource:
    config: FeedConfig
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=_default_client_factory
    )

    @property
    def source(self) -> Source:
        return self.config.source

    async def fetch(
        self,
        *,
        metrics_date: date,
        since: datetime | None = None,
    ) -> list[ExternalRecord]:
        records: list[ExternalRecord] = []
        page_number = 1
        async with self.client_factory(self.config.resilience) as client:
            while True:
                page = await self._request_page(
                    client=client,
                    metrics_date=metrics_date,
                    since=since,
                    page_number=page_number,
                )
                records.extend(_translate(page, metrics_date))
                if page.next_page is None or page.next_page <= page_number:
                    break
                page_number = page.next_page

        log.debug("Feed %s returned %s records for %s", self.source, len(records), metrics_date)
        return records

    async def _request_page(
        self,
        *,
        client: ResilientClient,
        metrics_date: date,
        since: datetime | None,
        page_number: int,
    ) -> FeedPage:
        params: dict[str, str | int] = {
            "date": metrics_date.isoformat(),
            "page": page_number,
            "limit": self.config.page_size,
        }
        if since is not None:
            params["since"] = since.isoformat()
        headers = {"Authorization": f"Bearer {self.config.token}"} if self.config.token else None

        response = await client.get(
            self.config.url,
            params=httpx.QueryParams(params),
            headers=headers,
        )
        response.raise_for_status()

        payload = response.json()
        if isinstance(payload, dict) and "error" in payload:
            error_payload = FeedErrorResponse.model_validate(payload)
            log.error(f"Feed {self.source} error {error_payload.error}: {error_payload.message}")
            raise FeedAPIError(
                error_payload.message or error_payload.error,
                code=error_payload.error,
            )
        if not isinstance(payload, dict) or "rows" not in payload:
            raise FeedAPIError(f"Unexpected {self.source} feed payload")

        return _PAGE_MODEL_BY_SOURCE[self.source].model_validate(payload)


def build_http_metric_sources(
    configs: list[FeedConfig],
    *,
    client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
) -> list[HttpMetricSource]:
    factory = client_factory or _default_client_factory
    return [HttpMetricSource(config=config, client_factory=factory) for config in configs]


if TYPE_CHECKING:
    from taxometrics.config.feeds import get_feed_config

    _source_check: MetricSource = HttpMetricSource(get_feed_config(Source.GSC))  # type: ignore[arg-type]
