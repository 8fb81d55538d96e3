"""Pydantic models for the daily metric feed payloads."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class _FeedModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class FeedErrorResponse(_FeedModel):
    error: str
    message: str | None = None


class _FeedRow(_FeedModel):
    updated_at: datetime | None = Field(default=None, alias="updatedAt")


class SearchConsoleRow(_FeedRow):
    page: str
    clicks: int = 0
    impressions: int = 0
    ctr: float | None = None
    position: float | None = None


class AnalyticsRow(_FeedRow):
    page_path: str = Field(alias="pagePath")
    sessions: int = 0
    revenue: float = Field(default=0.0, alias="totalRevenue")
    transactions: int = 0
    conversion_rate: float | None = Field(default=None, alias="conversionRate")


class MarketRow(_FeedRow):
    gtin: str | None = None
    sku: str | None = None
    url: str | None = None
    price_median: float | None = Field(default=None, alias="medianPrice")
    competitor_count: int = Field(default=0, alias="competitorCount")
    lowest_price: float | None = Field(default=None, alias="lowestPrice")
    highest_price: float | None = Field(default=None, alias="highestPrice")
    price_position: str | None = Field(default=None, alias="pricePosition")


class _FeedPage(_FeedModel):
    next_page: int | None = Field(default=None, alias="nextPage")
    partial: bool = False


class SearchConsolePage(_FeedPage):
    rows: list[SearchConsoleRow] = Field(default_factory=list)


class AnalyticsPage(_FeedPage):
    rows: list[AnalyticsRow] = Field(default_factory=list)


class MarketPage(_FeedPage):
    rows: list[MarketRow] = Field(default_factory=list)


type FeedPage = SearchConsolePage | AnalyticsPage | MarketPage


def should_cache_feed_page(payload: object) -> bool:
    """Only complete days are cached; partial pages are still being filled upstream."""

    if not isinstance(payload, dict):
        return False
    return "error" not in payload and not payload.get("partial", False)
