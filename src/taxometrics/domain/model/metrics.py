"""Persisted rows produced and consumed by sync runs."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING

from .catalog import EntityRef

if TYPE_CHECKING:
    from .enums import EntityType, IdentifierType, MatchStrategy, Source
    from .records import SourceMetrics


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(eq=False, kw_only=True)
class IntegratedMetric:
    """One row per (entity, date); per-source fields stay ``None`` when a source is absent.

    Each source keeps its own match confidence. They are never merged into one score.
    """

    entity_type: EntityType
    entity_id: str
    metrics_date: date

    gsc_clicks: int | None = None
    gsc_impressions: int | None = None
    gsc_ctr: float | None = None
    gsc_position: float | None = None
    gsc_match_confidence: float | None = None

    ga4_sessions: int | None = None
    ga4_revenue: float | None = None
    ga4_transactions: int | None = None
    ga4_conversion_rate: float | None = None
    ga4_match_confidence: float | None = None

    market_price_median: float | None = None
    market_competitor_count: int | None = None
    market_price_position: str | None = None
    market_match_confidence: float | None = None

    is_aggregated: bool = False
    child_count: int = 0
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def ref(self) -> EntityRef:
        return EntityRef(self.entity_type, self.entity_id)

    @property
    def ga4_avg_order_value(self) -> float | None:
        if not self.ga4_transactions or self.ga4_revenue is None:
            return None
        return self.ga4_revenue / self.ga4_transactions

    def values(self) -> tuple[object, ...]:
        """Every column except the bookkeeping timestamp, in a stable order."""

        return (
            self.entity_type,
            self.entity_id,
            self.metrics_date,
            self.gsc_clicks,
            self.gsc_impressions,
            self.gsc_ctr,
            self.gsc_position,
            self.gsc_match_confidence,
            self.ga4_sessions,
            self.ga4_revenue,
            self.ga4_transactions,
            self.ga4_conversion_rate,
            self.ga4_match_confidence,
            self.market_price_median,
            self.market_competitor_count,
            self.market_price_position,
            self.market_match_confidence,
            self.is_aggregated,
            self.child_count,
        )


@dataclass(eq=False, kw_only=True)
class UnmatchedMetric:
    source: Source
    identifier: str
    identifier_type: IdentifierType
    metrics: SourceMetrics
    attempt_count: int = 1
    resolved: bool = False
    resolved_entity_type: EntityType | None = None
    resolved_entity_id: str | None = None
    first_seen_at: datetime = field(default_factory=_utcnow)
    last_attempt_at: datetime = field(default_factory=_utcnow)
    resolved_at: datetime | None = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass(eq=False, kw_only=True)
class ManualMapping:
    """Human-provided binding of an external identifier to a catalog entity.

    ``identifier_type`` is optional; when given, the identifier is also matched in its
    normalized form (e.g. a URL mapping covers scheme and ``www.`` variants).
    """

    source_identifier: str
    entity_type: EntityType
    entity_id: str
    created_by: str
    identifier_type: IdentifierType | None = None
    active: bool = True
    created_at: datetime = field(default_factory=_utcnow)
    activated_at: datetime = field(default_factory=_utcnow)
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    @property
    def target(self) -> EntityRef:
        return EntityRef(self.entity_type, self.entity_id)

    def deactivate(self) -> None:
        self.active = False

    def activate(self, *, at: datetime | None = None) -> None:
        self.active = True
        self.activated_at = at or _utcnow()


@dataclass(eq=False, kw_only=True)
class MatchHistory:
    """Append-only audit entry for one match attempt."""

    source: Source
    identifier: str
    metrics_date: date
    success: bool
    strategy: MatchStrategy | None = None
    matched_entity_type: EntityType | None = None
    matched_entity_id: str | None = None
    confidence: float | None = None
    error_reason: str | None = None
    processing_time_ms: float = 0.0
    run_id: uuid.UUID | None = None
    attempted_at: datetime = field(default_factory=_utcnow)
    id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass(eq=False, kw_only=True)
class AttributedMetric:
    """A record's metrics attributed to the entity it matched, kept per (source, id, date)."""

    source: Source
    identifier: str
    metrics_date: date
    identifier_type: IdentifierType
    entity_type: EntityType
    entity_id: str
    confidence: float
    strategy: MatchStrategy
    metrics: SourceMetrics
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def target(self) -> EntityRef:
        return EntityRef(self.entity_type, self.entity_id)
