"""Builders for catalog snapshots and external records used across tests."""

from __future__ import annotations

from datetime import UTC, date, datetime
from typing import TYPE_CHECKING

from taxometrics.domain.model import (
    AnalyticsMetrics,
    CatalogNode,
    CatalogProduct,
    CatalogSnapshot,
    ExternalRecord,
    IdentifierType,
    MarketMetrics,
    SearchMetrics,
    Source,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

DAY = date(2024, 1, 15)
NOW = datetime(2024, 1, 16, 6, 0, tzinfo=UTC)
SHOP = "https://shop.example.com"


def make_node(
    node_id: str,
    parent_id: str | None = None,
    *,
    url: str | None = None,
    path: str | None = None,
) -> CatalogNode:
    return CatalogNode(id=node_id, parent_id=parent_id, url=url, path=path, title=node_id)


def make_product(
    product_id: str,
    category_id: str | None = None,
    *,
    url: str | None = None,
    gtin: str | None = None,
    sku: str | None = None,
) -> CatalogProduct:
    return CatalogProduct(
        id=product_id,
        category_id=category_id,
        url=url,
        gtin=gtin,
        sku=sku,
        title=product_id,
    )


def make_snapshot(
    nodes: Iterable[CatalogNode] = (),
    products: Iterable[CatalogProduct] = (),
) -> CatalogSnapshot:
    return CatalogSnapshot(nodes=tuple(nodes), products=tuple(products), taken_at=NOW)


def outerwear_catalog() -> CatalogSnapshot:
    """Outerwear with two categories and one product, plus an unrelated Garden root."""

    return make_snapshot(
        nodes=[
            make_node("outerwear", url=f"{SHOP}/outerwear"),
            make_node("winter-jackets", "outerwear", url=f"{SHOP}/outerwear/winter-jackets"),
            make_node("winter-boots", "outerwear", url=f"{SHOP}/outerwear/winter-boots"),
            make_node("garden", path="/garden"),
        ],
        products=[
            make_product(
                "parka-1",
                "winter-jackets",
                url=f"{SHOP}/product/parka-1",
                gtin="012345678905",
                sku="PK-1",
            ),
        ],
    )


def search_record(
    identifier: str,
    *,
    clicks: int = 0,
    impressions: int = 0,
    ctr: float | None = None,
    position: float | None = None,
    identifier_type: IdentifierType = IdentifierType.URL,
    metrics_date: date = DAY,
    updated_at: datetime | None = None,
) -> ExternalRecord:
    return ExternalRecord(
        source=Source.GSC,
        identifier=identifier,
        identifier_type=identifier_type,
        metrics=SearchMetrics(clicks=clicks, impressions=impressions, ctr=ctr, position=position),
        metrics_date=metrics_date,
        updated_at=updated_at,
    )


def analytics_record(
    identifier: str,
    *,
    sessions: int = 0,
    revenue: float = 0.0,
    transactions: int = 0,
    conversion_rate: float | None = None,
    identifier_type: IdentifierType = IdentifierType.PATH,
    metrics_date: date = DAY,
    updated_at: datetime | None = None,
) -> ExternalRecord:
    return ExternalRecord(
        source=Source.GA4,
        identifier=identifier,
        identifier_type=identifier_type,
        metrics=AnalyticsMetrics(
            sessions=sessions,
            revenue=revenue,
            transactions=transactions,
            conversion_rate=conversion_rate,
        ),
        metrics_date=metrics_date,
        updated_at=updated_at,
    )


def market_record(
    identifier: str,
    *,
    price_median: float | None = None,
    competitor_count: int = 0,
    price_position: str | None = None,
    identifier_type: IdentifierType = IdentifierType.GTIN,
    metrics_date: date = DAY,
) -> ExternalRecord:
    return ExternalRecord(
        source=Source.MARKET,
        identifier=identifier,
        identifier_type=identifier_type,
        metrics=MarketMetrics(
            price_median=price_median,
            competitor_count=competitor_count,
            price_position=price_position,
        ),
        metrics_date=metrics_date,
    )
