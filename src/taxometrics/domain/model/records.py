"""External records and their per-source metric payloads.

Each source carries a fixed set of numeric fields, so the payload is a closed union of
small dataclasses discriminated by ``kind`` rather than an open mapping.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from .enums import IdentifierType, Source

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import date, datetime


@dataclass(frozen=True, slots=True, kw_only=True)
class SearchMetrics:
    clicks: int = 0
    impressions: int = 0
    ctr: float | None = None
    position: float | None = None
    kind: Literal["search"] = field(default="search", init=False)


@dataclass(frozen=True, slots=True, kw_only=True)
class AnalyticsMetrics:
    sessions: int = 0
    revenue: float = 0.0
    transactions: int = 0
    conversion_rate: float | None = None
    kind: Literal["analytics"] = field(default="analytics", init=False)

    @property
    def avg_order_value(self) -> float | None:
        if self.transactions <= 0:
            return None
        return self.revenue / self.transactions


@dataclass(frozen=True, slots=True, kw_only=True)
class MarketMetrics:
    price_median: float | None = None
    competitor_count: int = 0
    lowest_price: float | None = None
    highest_price: float | None = None
    price_position: str | None = None
    kind: Literal["market"] = field(default="market", init=False)


type SourceMetrics = SearchMetrics | AnalyticsMetrics | MarketMetrics

METRICS_TYPE_BY_SOURCE: dict[Source, type[SearchMetrics | AnalyticsMetrics | MarketMetrics]] = {
    Source.GSC: SearchMetrics,
    Source.GA4: AnalyticsMetrics,
    Source.MARKET: MarketMetrics,
}

_METRICS_TYPE_BY_KIND: dict[str, type[SearchMetrics | AnalyticsMetrics | MarketMetrics]] = {
    "search": SearchMetrics,
    "analytics": AnalyticsMetrics,
    "market": MarketMetrics,
}


def metrics_to_payload(metrics: SourceMetrics) -> dict[str, Any]:
    return asdict(metrics)


def metrics_from_payload(payload: Mapping[str, Any]) -> SourceMetrics:
    kind = payload.get("kind")
    metrics_type = _METRICS_TYPE_BY_KIND.get(str(kind))
    if metrics_type is None:
        raise ValueError(f"Unknown metrics payload kind: {kind!r}")
    values = {key: value for key, value in payload.items() if key != "kind"}
    return metrics_type(**values)


@dataclass(frozen=True, slots=True, kw_only=True)
class ExternalRecord:
    """One signal emitted by an external metric source for a single date."""

    source: Source
    identifier: str
    identifier_type: IdentifierType
    metrics: SourceMetrics
    metrics_date: date
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        expected = METRICS_TYPE_BY_SOURCE[self.source]
        if not isinstance(self.metrics, expected):
            raise TypeError(
                f"{self.source} records carry {expected.__name__}, "
                f"got {type(self.metrics).__name__}"
            )
        if not self.identifier.strip():
            raise ValueError("External record identifier must not be blank")
