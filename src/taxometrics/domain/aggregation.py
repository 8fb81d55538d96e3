"""Bottom-up rollup of matched metrics over the validated catalog tree.

Responsibilities of this stage:
- combine the attributed records of one date into entity-level rows
- roll those rows up level by level, deepest first, so each node's row reflects its own
  matched metrics plus every direct child's row

Additive fields are summed. Rates are weighted averages (impressions for CTR and average
position, sessions for conversion rate), never plain means. Each source's confidence is
the lowest confidence among the rows that fed it. Market prices do not roll up and only
appear on the entity they were matched to. Nodes with nothing to report produce no row.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from taxometrics.domain.model import (
    AnalyticsMetrics,
    EntityRef,
    EntityType,
    IntegratedMetric,
    MarketMetrics,
    SearchMetrics,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from datetime import date

    from taxometrics.domain.cancellation import CancellationToken
    from taxometrics.domain.matching import CatalogTree
    from taxometrics.domain.model import AttributedMetric, SourceMetrics

log = getLogger(__name__)


@dataclass(slots=True)
class _WeightedMean:
    samples: list[tuple[float, float]] = field(default_factory=list)

    def add(self, value: float | None, weight: float | None) -> None:
        if value is None or weight is None or weight <= 0:
            return
        self.samples.append((value, weight))

    def value(self) -> float | None:
        if not self.samples:
            return None
        if len(self.samples) == 1:
            return self.samples[0][0]
        total = sum(weight for _, weight in self.samples)
        mean = sum(value * weight for value, weight in self.samples) / total
        values = [value for value, _ in self.samples]
        return min(max(mean, min(values)), max(values))


def _rolls_up(row: IntegratedMetric) -> bool:
    return row.gsc_match_confidence is not None or row.ga4_match_confidence is not None


def _lowest(current: float | None, candidate: float | None) -> float | None:
    if candidate is None:
        return current
    if current is None:
        return candidate
    return min(current, candidate)


@dataclass(slots=True)
class _Rollup:
    gsc_confidence: float | None = None
    clicks: int = 0
    impressions: int = 0
    ctr: _WeightedMean = field(default_factory=_WeightedMean)
    position: _WeightedMean = field(default_factory=_WeightedMean)

    ga4_confidence: float | None = None
    sessions: int = 0
    revenue: float = 0.0
    transactions: int = 0
    conversion_rate: _WeightedMean = field(default_factory=_WeightedMean)

    market_confidence: float | None = None
    market: MarketMetrics | None = None

    def add_metrics(self, metrics: SourceMetrics, confidence: float) -> None:
        match metrics:
            case SearchMetrics():
                ctr = metrics.ctr
                if ctr is None and metrics.impressions > 0:
                    ctr = metrics.clicks / metrics.impressions
                self._add_search(
                    metrics.clicks, metrics.impressions, ctr, metrics.position, confidence
                )
            case AnalyticsMetrics():
                rate = metrics.conversion_rate
                if rate is None and metrics.sessions > 0:
                    rate = metrics.transactions / metrics.sessions
                self._add_analytics(
                    metrics.sessions, metrics.revenue, metrics.transactions, rate, confidence
                )
            case MarketMetrics():
                if self.market_confidence is None or confidence > self.market_confidence:
                    self.market = metrics
                    self.market_confidence = confidence

    def add_row(self, row: IntegratedMetric, *, include_market: bool) -> None:
        if row.gsc_match_confidence is not None:
            self._add_search(
                row.gsc_clicks or 0,
                row.gsc_impressions or 0,
                row.gsc_ctr,
                row.gsc_position,
                row.gsc_match_confidence,
            )
        if row.ga4_match_confidence is not None:
            self._add_analytics(
                row.ga4_sessions or 0,
                row.ga4_revenue or 0.0,
                row.ga4_transactions or 0,
                row.ga4_conversion_rate,
                row.ga4_match_confidence,
            )
        if include_market and row.market_match_confidence is not None:
            self.market = MarketMetrics(
                price_median=row.market_price_median,
                competitor_count=row.market_competitor_count or 0,
                price_position=row.market_price_position,
            )
            self.market_confidence = row.market_match_confidence

    def _add_search(
        self,
        clicks: int,
        impressions: int,
        ctr: float | None,
        position: float | None,
        confidence: float,
    ) -> None:
        self.clicks += clicks
        self.impressions += impressions
        self.ctr.add(ctr, impressions)
        if position is not None and position > 0:
            self.position.add(position, impressions)
        self.gsc_confidence = _lowest(self.gsc_confidence, confidence)

    def _add_analytics(
        self,
        sessions: int,
        revenue: float,
        transactions: int,
        conversion_rate: float | None,
        confidence: float,
    ) -> None:
        self.sessions += sessions
        self.revenue += revenue
        self.transactions += transactions
        self.conversion_rate.add(conversion_rate, sessions)
        self.ga4_confidence = _lowest(self.ga4_confidence, confidence)

    def to_row(self, ref: EntityRef, metrics_date: date, *, child_count: int) -> IntegratedMetric:
        row = IntegratedMetric(
            entity_type=ref.entity_type,
            entity_id=ref.entity_id,
            metrics_date=metrics_date,
            is_aggregated=child_count > 0,
            child_count=child_count,
        )
        if self.gsc_confidence is not None:
            row.gsc_clicks = self.clicks
            row.gsc_impressions = self.impressions
            row.gsc_ctr = self.ctr.value()
            row.gsc_position = self.position.value()
            row.gsc_match_confidence = self.gsc_confidence
        if self.ga4_confidence is not None:
            row.ga4_sessions = self.sessions
            row.ga4_revenue = self.revenue
            row.ga4_transactions = self.transactions
            row.ga4_conversion_rate = self.conversion_rate.value()
            row.ga4_match_confidence = self.ga4_confidence
        if self.market is not None:
            row.market_price_median = self.market.price_median
            row.market_competitor_count = self.market.competitor_count
            row.market_price_position = self.market.price_position
            row.market_match_confidence = self.market_confidence
        return row


def combine_attributions(
    attributions: Iterable[AttributedMetric],
    metrics_date: date,
) -> dict[EntityRef, IntegratedMetric]:
    """Fold every attributed record into one unaggregated row per matched entity."""

    rollups: dict[EntityRef, _Rollup] = {}
    ordered = sorted(
        attributions,
        key=lambda item: (item.entity_type, item.entity_id, item.source, item.identifier),
    )
    for attribution in ordered:
        rollup = rollups.setdefault(attribution.target, _Rollup())
        rollup.add_metrics(attribution.metrics, attribution.confidence)
    return {
        ref: rollups[ref].to_row(ref, metrics_date, child_count=0) for ref in sorted(rollups)
    }


@dataclass(frozen=True, slots=True)
class AggregationResult:
    rows: tuple[IntegratedMetric, ...]
    excluded: tuple[EntityRef, ...] = ()
    levels: int = 0

    def row_for(self, ref: EntityRef) -> IntegratedMetric | None:
        for row in self.rows:
            if row.ref == ref:
                return row
        return None


def aggregate(
    entity_rows: Mapping[EntityRef, IntegratedMetric],
    tree: CatalogTree,
    *,
    metrics_date: date,
    cancel: CancellationToken | None = None,
) -> AggregationResult:
    """Roll ``entity_rows`` up ``tree``; raises ``RunCancelledError`` between levels."""

    rows: dict[EntityRef, IntegratedMetric] = {}
    excluded: list[EntityRef] = []
    for ref in sorted(entity_rows):
        if not tree.contains(ref):
            excluded.append(ref)
            continue
        if ref.entity_type is EntityType.PRODUCT:
            rows[ref] = dataclasses.replace(
                entity_rows[ref],
                metrics_date=metrics_date,
                is_aggregated=False,
                child_count=0,
            )

    if excluded:
        log.warning(
            "Excluded %s matched entities outside the valid tree: %s",
            len(excluded),
            ", ".join(str(ref) for ref in excluded[:10]),
        )

    levels = tree.levels()
    for level in levels:
        if cancel is not None:
            cancel.raise_if_cancelled()
        level_rows: dict[EntityRef, IntegratedMetric] = {}
        for node_id in level:
            ref = EntityRef(EntityType.NODE, node_id)
            rollup = _Rollup()
            child_count = 0
            children = [EntityRef(EntityType.NODE, child) for child in tree.child_ids(node_id)]
            children.extend(
                EntityRef(EntityType.PRODUCT, product) for product in tree.products_of(node_id)
            )
            for child in children:
                child_row = rows.get(child)
                if child_row is None or not _rolls_up(child_row):
                    continue
                rollup.add_row(child_row, include_market=False)
                child_count += 1

            direct = entity_rows.get(ref)
            if direct is not None:
                rollup.add_row(direct, include_market=True)
            elif child_count == 0:
                continue
            level_rows[ref] = rollup.to_row(ref, metrics_date, child_count=child_count)
        rows.update(level_rows)

    ordered = tuple(rows[ref] for ref in sorted(rows))
    log.info(
        "Aggregated %s rows over %s levels (%s aggregated)",
        len(ordered),
        len(levels),
        sum(1 for row in ordered if row.is_aggregated),
    )
    return AggregationResult(rows=ordered, excluded=tuple(excluded), levels=len(levels))


def affected_scope(tree: CatalogTree, touched: Iterable[EntityRef]) -> set[EntityRef]:
    """Entities whose rows must be recomputed when ``touched`` changed.

    Each touched entity is walked up to its root and the whole subtree under that root is
    included. Entities outside the valid tree only cover themselves.
    """

    scope: set[EntityRef] = set()
    roots: set[str] = set()
    for ref in touched:
        scope.add(ref)
        root = tree.root_of(ref)
        if root is not None:
            roots.add(root)
    for root in sorted(roots):
        scope.update(tree.subtree(root))
    return scope
