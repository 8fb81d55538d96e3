"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

import uuid
from logging import getLogger
from typing import TYPE_CHECKING, cast

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite

from taxometrics.adapters.sqlalchemy.mappings import (
    UNMATCHED_ACTIVE_INDEX_ELEMENTS,
    UNMATCHED_ACTIVE_WHERE,
    attributed_metric_table,
    integrated_metric_table,
    manual_mapping_table,
    match_history_table,
    source_run_table,
    sync_run_table,
    unmatched_metric_table,
)
from taxometrics.domain.model import (
    AttributedMetric,
    IntegratedMetric,
    ManualMapping,
    MatchHistory,
    RunState,
    SourceRun,
    SourceStatus,
    SyncRun,
    UnmatchedMetric,
)

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable
    from datetime import date, datetime

    from sqlalchemy.orm import Session

    from taxometrics.domain.model import (
        EntityRef,
        EntityType,
        IdentifierType,
        Source,
        SourceMetrics,
    )

log = getLogger(__name__)

_UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}
_FAILURE_LOOKBACK = 50


class SqlAlchemyIntegratedMetricRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def replace(
        self,
        metrics_date: date,
        rows: Iterable[IntegratedMetric],
        *,
        scope: Collection[EntityRef] | None = None,
    ) -> int:
        existing = {row.ref: row for row in self.list_for_date(metrics_date)}
        if scope is not None:
            existing = {ref: row for ref, row in existing.items() if ref in scope}

        written = 0
        for row in rows:
            existing.pop(row.ref, None)
            self.session.merge(row)
            written += 1
        for stale in existing.values():
            self.session.delete(stale)
        self.session.flush()
        log.debug("Replaced integrated metrics for %s: %s written", metrics_date, written)
        return written

    def list_for_entity(
        self,
        entity_type: EntityType,
        entity_id: str,
        *,
        start: date | None = None,
        end: date | None = None,
    ) -> list[IntegratedMetric]:
        stmt = (
            select(IntegratedMetric)
            .where(integrated_metric_table.c.entity_type == entity_type)
            .where(integrated_metric_table.c.entity_id == entity_id)
        )
        if start is not None:
            stmt = stmt.where(integrated_metric_table.c.metrics_date >= start)
        if end is not None:
            stmt = stmt.where(integrated_metric_table.c.metrics_date <= end)
        stmt = stmt.order_by(integrated_metric_table.c.metrics_date)
        return list(self.session.execute(stmt).scalars())

    def list_for_date(self, metrics_date: date) -> list[IntegratedMetric]:
        stmt = (
            select(IntegratedMetric)
            .where(integrated_metric_table.c.metrics_date == metrics_date)
            .order_by(
                integrated_metric_table.c.entity_type,
                integrated_metric_table.c.entity_id,
            )
        )
        return list(self.session.execute(stmt).scalars())


class SqlAlchemyUnmatchedMetricRepository:
    """Unresolved rows are unique per (source, identifier) through a partial index.

    On SQLite and PostgreSQL a failure is recorded with a single
    ``INSERT .. ON CONFLICT DO UPDATE`` so concurrent writers never lose an increment.
    Other dialects fall back to read-modify-write and rely on the caller's locking.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def record_failure(
        self,
        *,
        source: Source,
        identifier: str,
        identifier_type: IdentifierType,
        metrics: SourceMetrics,
        attempted_at: datetime,
    ) -> UnmatchedMetric:
        insert = _UPSERT_DIALECTS.get(self.session.get_bind().dialect.name)
        if insert is None:
            return self._record_failure_fallback(
                source=source,
                identifier=identifier,
                identifier_type=identifier_type,
                metrics=metrics,
                attempted_at=attempted_at,
            )

        self.session.flush()
        stmt = insert(unmatched_metric_table).values(
            id=uuid.uuid4(),
            source=source,
            identifier=identifier,
            identifier_type=identifier_type,
            metrics=metrics,
            attempt_count=1,
            resolved=False,
            first_seen_at=attempted_at,
            last_attempt_at=attempted_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=list(UNMATCHED_ACTIVE_INDEX_ELEMENTS),
            index_where=UNMATCHED_ACTIVE_WHERE,
            set_={
                "attempt_count": unmatched_metric_table.c.attempt_count + 1,
                "last_attempt_at": stmt.excluded.last_attempt_at,
                "identifier_type": stmt.excluded.identifier_type,
                "metrics": stmt.excluded.metrics,
            },
        )
        self.session.execute(stmt)

        row = self.get_active(source, identifier)
        if row is None:  # pragma: no cover - the upsert above guarantees a row
            raise RuntimeError(f"Unmatched row for {source} {identifier} vanished")
        return row

    def _record_failure_fallback(
        self,
        *,
        source: Source,
        identifier: str,
        identifier_type: IdentifierType,
        metrics: SourceMetrics,
        attempted_at: datetime,
    ) -> UnmatchedMetric:
        row = self.get_active(source, identifier)
        if row is None:
            row = UnmatchedMetric(
                source=source,
                identifier=identifier,
                identifier_type=identifier_type,
                metrics=metrics,
                first_seen_at=attempted_at,
                last_attempt_at=attempted_at,
            )
            self.session.add(row)
        else:
            row.attempt_count += 1
            row.last_attempt_at = attempted_at
            row.identifier_type = identifier_type
            row.metrics = metrics
        self.session.flush()
        return row

    def resolve(
        self,
        *,
        source: Source,
        identifier: str,
        entity: EntityRef | None,
        resolved_at: datetime,
    ) -> int:
        row = self.get_active(source, identifier)
        if row is None:
            return 0
        row.resolved = True
        row.resolved_at = resolved_at
        if entity is not None:
            row.resolved_entity_type = entity.entity_type
            row.resolved_entity_id = entity.entity_id
        self.session.flush()
        return 1

    def get_active(self, source: Source, identifier: str) -> UnmatchedMetric | None:
        stmt = (
            select(UnmatchedMetric)
            .where(unmatched_metric_table.c.source == source)
            .where(unmatched_metric_table.c.identifier == identifier)
            .where(UNMATCHED_ACTIVE_WHERE)
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def list_unresolved(
        self,
        *,
        limit: int | None = None,
        sort_by_attempts: bool = True,
    ) -> list[UnmatchedMetric]:
        stmt = select(UnmatchedMetric).where(UNMATCHED_ACTIVE_WHERE)
        if sort_by_attempts:
            stmt = stmt.order_by(
                unmatched_metric_table.c.attempt_count.desc(),
                unmatched_metric_table.c.last_attempt_at.desc(),
            )
        else:
            stmt = stmt.order_by(unmatched_metric_table.c.last_attempt_at.desc())
        stmt = stmt.order_by(
            unmatched_metric_table.c.source,
            unmatched_metric_table.c.identifier,
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        stmt = stmt.execution_options(populate_existing=True)
        return list(self.session.execute(stmt).scalars())


class SqlAlchemyManualMappingRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, mapping: ManualMapping) -> None:
        self.session.add(mapping)

    def get(self, mapping_id: uuid.UUID) -> ManualMapping | None:
        return self.session.get(ManualMapping, mapping_id)

    def list_active(self) -> list[ManualMapping]:
        stmt = (
            select(ManualMapping)
            .where(manual_mapping_table.c.active.is_(True))
            .order_by(
                manual_mapping_table.c.activated_at,
                manual_mapping_table.c.created_at,
            )
        )
        return list(self.session.execute(stmt).scalars())


class SqlAlchemyMatchHistoryRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add_all(self, entries: Iterable[MatchHistory]) -> None:
        self.session.add_all(list(entries))

    def list_for_date(self, metrics_date: date) -> list[MatchHistory]:
        stmt = (
            select(MatchHistory)
            .where(match_history_table.c.metrics_date == metrics_date)
            .order_by(match_history_table.c.attempted_at)
        )
        return list(self.session.execute(stmt).scalars())


class SqlAlchemyAttributedMetricRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_for_date(self, metrics_date: date) -> list[AttributedMetric]:
        stmt = (
            select(AttributedMetric)
            .where(attributed_metric_table.c.metrics_date == metrics_date)
            .order_by(
                attributed_metric_table.c.source,
                attributed_metric_table.c.identifier,
            )
        )
        return list(self.session.execute(stmt).scalars())

    def get(self, source: Source, identifier: str, metrics_date: date) -> AttributedMetric | None:
        return self.session.get(AttributedMetric, (source, identifier, metrics_date))

    def upsert(self, attribution: AttributedMetric) -> None:
        self.session.merge(attribution)

    def delete(self, source: Source, identifier: str, metrics_date: date) -> None:
        existing = self.get(source, identifier, metrics_date)
        if existing is not None:
            self.session.delete(existing)

    def replace_for_source(
        self,
        metrics_date: date,
        source: Source,
        attributions: Iterable[AttributedMetric],
    ) -> None:
        stmt = (
            select(AttributedMetric)
            .where(attributed_metric_table.c.metrics_date == metrics_date)
            .where(attributed_metric_table.c.source == source)
        )
        existing = {row.identifier: row for row in self.session.execute(stmt).scalars()}
        for attribution in attributions:
            existing.pop(attribution.identifier, None)
            self.session.merge(attribution)
        for stale in existing.values():
            self.session.delete(stale)
        self.session.flush()


class SqlAlchemySyncRunRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, run: SyncRun) -> None:
        self.session.add(run)

    def latest(self) -> SyncRun | None:
        stmt = select(SyncRun).order_by(sync_run_table.c.started_at.desc()).limit(1)
        return self.session.execute(stmt).scalar_one_or_none()

    def last_success(self, source: Source) -> datetime | None:
        stmt = (
            select(sync_run_table.c.started_at)
            .join(source_run_table, source_run_table.c.run_id == sync_run_table.c.id)
            .where(source_run_table.c.source == source)
            .where(source_run_table.c.status == SourceStatus.SUCCEEDED)
            .where(sync_run_table.c.state == RunState.COMPLETED)
            .order_by(sync_run_table.c.started_at.desc())
            .limit(1)
        )
        return cast("datetime | None", self.session.execute(stmt).scalar_one_or_none())

    def recent_failures(self, source: Source) -> tuple[int, datetime | None]:
        stmt = (
            select(SourceRun)
            .join(sync_run_table, source_run_table.c.run_id == sync_run_table.c.id)
            .where(source_run_table.c.source == source)
            .order_by(sync_run_table.c.started_at.desc())
            .limit(_FAILURE_LOOKBACK)
        )
        return count_recent_failures(self.session.execute(stmt).scalars())


def count_recent_failures(entries: Iterable[SourceRun]) -> tuple[int, datetime | None]:
    """Count failures newest first until the latest success.

    Deferred and skipped entries neither count nor reset the streak.
    """

    failures = 0
    last_failed_at: datetime | None = None
    for entry in entries:
        if entry.status is SourceStatus.SUCCEEDED:
            break
        if entry.status is not SourceStatus.FAILED:
            continue
        failures += 1
        if last_failed_at is None:
            last_failed_at = entry.finished_at or entry.started_at
    return failures, last_failed_at
