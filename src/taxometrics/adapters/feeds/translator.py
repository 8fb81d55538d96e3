"""Translate feed rows into external records."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from taxometrics.domain.model import (
    AnalyticsMetrics,
    ExternalRecord,
    IdentifierType,
    MarketMetrics,
    SearchMetrics,
    Source,
)

if TYPE_CHECKING:
    from datetime import date

    from .schema import AnalyticsRow, MarketRow, SearchConsoleRow

log = getLogger(__name__)


def _location_type(value: str) -> IdentifierType:
    return IdentifierType.URL if "://" in value else IdentifierType.PATH


def parse_search_row(row: SearchConsoleRow, metrics_date: date) -> ExternalRecord | None:
    if not row.page.strip():
        return None
    return ExternalRecord(
        source=Source.GSC,
        identifier=row.page,
        identifier_type=_location_type(row.page),
        metrics=SearchMetrics(
            clicks=row.clicks,
            impressions=row.impressions,
            ctr=row.ctr,
            position=row.position,
        ),
        metrics_date=metrics_date,
        updated_at=row.updated_at,
    )


def parse_analytics_row(row: AnalyticsRow, metrics_date: date) -> ExternalRecord | None:
    if not row.page_path.strip():
        return None
    return ExternalRecord(
        source=Source.GA4,
        identifier=row.page_path,
        identifier_type=_location_type(row.page_path),
        metrics=AnalyticsMetrics(
            sessions=row.sessions,
            revenue=row.revenue,
            transactions=row.transactions,
            conversion_rate=row.conversion_rate,
        ),
        metrics_date=metrics_date,
        updated_at=row.updated_at,
    )


def parse_market_row(row: MarketRow, metrics_date: date) -> ExternalRecord | None:
    """Market rows are keyed by GTIN, then SKU, then URL; rows without any are dropped."""

    if row.gtin and row.gtin.strip():
        identifier, identifier_type = row.gtin, IdentifierType.GTIN
    elif row.sku and row.sku.strip():
        identifier, identifier_type = row.sku, IdentifierType.SKU
    elif row.url and row.url.strip():
        identifier, identifier_type = row.url, _location_type(row.url)
    else:
        log.debug("Dropping market row without identifier: %s", row)
        return None
    return ExternalRecord(
        source=Source.MARKET,
        identifier=identifier,
        identifier_type=identifier_type,
        metrics=MarketMetrics(
            price_median=row.price_median,
            competitor_count=row.competitor_count,
            lowest_price=row.lowest_price,
            highest_price=row.highest_price,
            price_position=row.price_position,
        ),
        metrics_date=metrics_date,
        updated_at=row.updated_at,
    )
