"""Daily metric feeds served over HTTP."""

from __future__ import annotations

from .schema import (
    AnalyticsPage,
    AnalyticsRow,
    FeedErrorResponse,
    MarketPage,
    MarketRow,
    SearchConsolePage,
    SearchConsoleRow,
    should_cache_feed_page,
)
from .source import (
    RETRYABLE_FEED_ERRORS,
    FeedAPIError,
    HttpMetricSource,
    build_http_metric_sources,
    check_feed_payload,
)
from .translator import parse_analytics_row, parse_market_row, parse_search_row

__all__ = [
    "RETRYABLE_FEED_ERRORS",
    "AnalyticsPage",
    "AnalyticsRow",
    "FeedAPIError",
    "FeedErrorResponse",
    "HttpMetricSource",
    "MarketPage",
    "MarketRow",
    "SearchConsolePage",
    "SearchConsoleRow",
    "build_http_metric_sources",
    "check_feed_payload",
    "parse_analytics_row",
    "parse_market_row",
    "parse_search_row",
    "should_cache_feed_page",
]
