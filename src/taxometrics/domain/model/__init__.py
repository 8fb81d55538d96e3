"""Public domain model surface."""

from __future__ import annotations

from taxometrics.domain.model.catalog import (
    CatalogNode,
    CatalogProduct,
    CatalogSnapshot,
    EntityRef,
)
from taxometrics.domain.model.enums import (
    ConfidenceLevel,
    EntityType,
    IdentifierType,
    MatchStrategy,
    RunState,
    Source,
    SourceStatus,
    SyncMode,
)
from taxometrics.domain.model.metrics import (
    AttributedMetric,
    IntegratedMetric,
    ManualMapping,
    MatchHistory,
    UnmatchedMetric,
)
from taxometrics.domain.model.records import (
    METRICS_TYPE_BY_SOURCE,
    AnalyticsMetrics,
    ExternalRecord,
    MarketMetrics,
    SearchMetrics,
    SourceMetrics,
    metrics_from_payload,
    metrics_to_payload,
)
from taxometrics.domain.model.runs import SourceRun, SyncRun

__all__ = [
    "METRICS_TYPE_BY_SOURCE",
    "AnalyticsMetrics",
    "AttributedMetric",
    "CatalogNode",
    "CatalogProduct",
    "CatalogSnapshot",
    "ConfidenceLevel",
    "EntityRef",
    "EntityType",
    "ExternalRecord",
    "IdentifierType",
    "IntegratedMetric",
    "ManualMapping",
    "MarketMetrics",
    "MatchHistory",
    "MatchStrategy",
    "RunState",
    "SearchMetrics",
    "Source",
    "SourceMetrics",
    "SourceRun",
    "SourceStatus",
    "SyncMode",
    "SyncRun",
    "UnmatchedMetric",
    "metrics_from_payload",
    "metrics_to_payload",
]
