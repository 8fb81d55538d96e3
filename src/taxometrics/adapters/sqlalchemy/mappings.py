"""SQLAlchemy mapping metadata for the taxometrics domain model."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import UTC, datetime
from enum import StrEnum
from functools import cache
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Dialect,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    TypeDecorator,
    Uuid,
    false,
    orm,
)
from sqlalchemy.orm import configure_mappers, relationship

from taxometrics.domain.model import (
    AttributedMetric,
    EntityType,
    IdentifierType,
    IntegratedMetric,
    ManualMapping,
    MatchHistory,
    MatchStrategy,
    RunState,
    Source,
    SourceRun,
    SourceStatus,
    SyncMode,
    SyncRun,
    UnmatchedMetric,
    metrics_from_payload,
    metrics_to_payload,
)

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from taxometrics.domain.model import SourceMetrics

log = logging.getLogger(__name__)

UUIDColumnType = Uuid[uuid.UUID]


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


class SourceMetricsType(TypeDecorator["SourceMetrics"]):
    """Stores a per-source metric payload as JSON tagged with its ``kind``."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value: SourceMetrics | None, dialect: Dialect) -> str | None:
        _ = dialect
        if value is None:
            return None
        return json.dumps(metrics_to_payload(value), sort_keys=True)

    def process_result_value(self, value: str | None, dialect: Dialect) -> SourceMetrics | None:
        _ = dialect
        if value is None:
            return None
        loaded: Any = json.loads(value)
        if not isinstance(loaded, dict):
            raise ValueError(f"Malformed metric payload: {value!r}")
        return metrics_from_payload(loaded)


def _enum(enum_cls: type[StrEnum]) -> Enum:
    return Enum(
        enum_cls,
        native_enum=False,
        values_callable=lambda members: [member.value for member in members],
    )


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Catalog ---------------------------------------------------------------------

catalog_node_table = Table(
    "catalog_node",
    mapper_registry.metadata,
    Column("id", String, primary_key=True),
    # no foreign key: snapshots may reference parents that do not exist
    Column("parent_id", String, nullable=True, index=True),
    Column("url", String, nullable=True),
    Column("path", String, nullable=True),
    Column("title", String, nullable=True),
)

catalog_product_table = Table(
    "catalog_product",
    mapper_registry.metadata,
    Column("id", String, primary_key=True),
    Column("url", String, nullable=True),
    Column("gtin", String, nullable=True, index=True),
    Column("sku", String, nullable=True),
    Column("category_id", String, nullable=True, index=True),
    Column("title", String, nullable=True),
)

# Integration -----------------------------------------------------------------

integrated_metric_table = Table(
    "integrated_metric",
    mapper_registry.metadata,
    Column("entity_type", _enum(EntityType), primary_key=True),
    Column("entity_id", String, primary_key=True),
    Column("metrics_date", Date, primary_key=True),
    Column("gsc_clicks", Integer, nullable=True),
    Column("gsc_impressions", Integer, nullable=True),
    Column("gsc_ctr", Float, nullable=True),
    Column("gsc_position", Float, nullable=True),
    Column("gsc_match_confidence", Float, nullable=True),
    Column("ga4_sessions", Integer, nullable=True),
    Column("ga4_revenue", Float, nullable=True),
    Column("ga4_transactions", Integer, nullable=True),
    Column("ga4_conversion_rate", Float, nullable=True),
    Column("ga4_match_confidence", Float, nullable=True),
    Column("market_price_median", Float, nullable=True),
    Column("market_competitor_count", Integer, nullable=True),
    Column("market_price_position", String, nullable=True),
    Column("market_match_confidence", Float, nullable=True),
    Column("is_aggregated", Boolean, nullable=False, default=False),
    Column("child_count", Integer, nullable=False, default=0),
    Column("updated_at", UTCDateTime(), nullable=False),
    Index("ix_integrated_metric_date", "metrics_date"),
)

unmatched_metric_table = Table(
    "unmatched_metric",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("source", _enum(Source), nullable=False),
    Column("identifier", String, nullable=False),
    Column("identifier_type", _enum(IdentifierType), nullable=False),
    Column("metrics", SourceMetricsType(), nullable=False),
    Column("attempt_count", Integer, nullable=False, default=1),
    Column("resolved", Boolean, nullable=False, default=False),
    Column("resolved_entity_type", _enum(EntityType), nullable=True),
    Column("resolved_entity_id", String, nullable=True),
    Column("first_seen_at", UTCDateTime(), nullable=False),
    Column("last_attempt_at", UTCDateTime(), nullable=False),
    Column("resolved_at", UTCDateTime(), nullable=True),
)

# At most one unresolved row per (source, identifier); resolved rows are history.
UNMATCHED_ACTIVE_INDEX_ELEMENTS = (
    unmatched_metric_table.c.source,
    unmatched_metric_table.c.identifier,
)
UNMATCHED_ACTIVE_WHERE = unmatched_metric_table.c.resolved == false()
Index(
    "uq_unmatched_metric_active",
    *UNMATCHED_ACTIVE_INDEX_ELEMENTS,
    unique=True,
    sqlite_where=UNMATCHED_ACTIVE_WHERE,
    postgresql_where=UNMATCHED_ACTIVE_WHERE,
)

manual_mapping_table = Table(
    "manual_mapping",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("source_identifier", String, nullable=False, index=True),
    Column("identifier_type", _enum(IdentifierType), nullable=True),
    Column("entity_type", _enum(EntityType), nullable=False),
    Column("entity_id", String, nullable=False),
    Column("created_by", String, nullable=False),
    Column("active", Boolean, nullable=False, default=True),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("activated_at", UTCDateTime(), nullable=False),
)

match_history_table = Table(
    "match_history",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("source", _enum(Source), nullable=False),
    Column("identifier", String, nullable=False),
    Column("metrics_date", Date, nullable=False, index=True),
    Column("success", Boolean, nullable=False),
    Column("strategy", _enum(MatchStrategy), nullable=True),
    Column("matched_entity_type", _enum(EntityType), nullable=True),
    Column("matched_entity_id", String, nullable=True),
    Column("confidence", Float, nullable=True),
    Column("error_reason", String, nullable=True),
    Column("processing_time_ms", Float, nullable=False, default=0.0),
    # not a foreign key: history is written before the run row itself
    Column("run_id", UUIDColumnType, nullable=True, index=True),
    Column("attempted_at", UTCDateTime(), nullable=False),
)

attributed_metric_table = Table(
    "attributed_metric",
    mapper_registry.metadata,
    Column("source", _enum(Source), primary_key=True),
    Column("identifier", String, primary_key=True),
    Column("metrics_date", Date, primary_key=True),
    Column("identifier_type", _enum(IdentifierType), nullable=False),
    Column("entity_type", _enum(EntityType), nullable=False),
    Column("entity_id", String, nullable=False),
    Column("confidence", Float, nullable=False),
    Column("strategy", _enum(MatchStrategy), nullable=False),
    Column("metrics", SourceMetricsType(), nullable=False),
    Column("updated_at", UTCDateTime(), nullable=False),
    Index("ix_attributed_metric_date", "metrics_date"),
)

sync_run_table = Table(
    "sync_run",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("metrics_date", Date, nullable=False),
    Column("mode", _enum(SyncMode), nullable=False),
    Column("state", _enum(RunState), nullable=False),
    Column("partial", Boolean, nullable=False, default=False),
    Column("rows_written", Integer, nullable=False, default=0),
    Column("started_at", UTCDateTime(), nullable=False, index=True),
    Column("finished_at", UTCDateTime(), nullable=True),
)

source_run_table = Table(
    "source_run",
    mapper_registry.metadata,
    Column(
        "run_id",
        UUIDColumnType,
        ForeignKey("sync_run.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("source", _enum(Source), primary_key=True),
    Column("status", _enum(SourceStatus), nullable=False),
    Column("fetched", Integer, nullable=False, default=0),
    Column("matched", Integer, nullable=False, default=0),
    Column("unmatched", Integer, nullable=False, default=0),
    Column("avg_confidence", Float, nullable=True),
    Column("error", String, nullable=True),
    Column("started_at", UTCDateTime(), nullable=False),
    Column("finished_at", UTCDateTime(), nullable=True),
)


@cache
def start_mappers() -> orm.registry:
    """Configure imperative mappings between domain dataclasses and tables."""

    log.info("Starting mappers")

    mapper_registry.map_imperatively(IntegratedMetric, integrated_metric_table)
    mapper_registry.map_imperatively(UnmatchedMetric, unmatched_metric_table)
    mapper_registry.map_imperatively(ManualMapping, manual_mapping_table)
    mapper_registry.map_imperatively(MatchHistory, match_history_table)
    mapper_registry.map_imperatively(AttributedMetric, attributed_metric_table)
    mapper_registry.map_imperatively(SourceRun, source_run_table)
    mapper_registry.map_imperatively(
        SyncRun,
        sync_run_table,
        properties={
            "source_runs": relationship(
                SourceRun,
                cascade="all, delete-orphan",
                order_by=source_run_table.c.source,
                lazy="selectin",
            ),
        },
    )

    configure_mappers()
    return mapper_registry


def create_all_tables(engine: Engine) -> None:
    """Create database tables for the mapped metadata."""

    log.info("Creating all tables")
    mapper_registry.metadata.create_all(engine)
