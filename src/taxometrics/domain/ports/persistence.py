"""Persistence ports for sync runs."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    import uuid
    from collections.abc import Collection, Iterable
    from datetime import date, datetime

    from taxometrics.domain.model import (
        AttributedMetric,
        EntityRef,
        EntityType,
        IdentifierType,
        IntegratedMetric,
        ManualMapping,
        MatchHistory,
        Source,
        SourceMetrics,
        SyncRun,
        UnmatchedMetric,
    )


class IntegratedMetricRepository(Protocol):
    def replace(
        self,
        metrics_date: date,
        rows: Iterable[IntegratedMetric],
        *,
        scope: Collection[EntityRef] | None = None,
    ) -> int:
        """Replace the rows for ``metrics_date`` (all of them, or only those in ``scope``)."""
        ...

    def list_for_entity(
        self,
        entity_type: EntityType,
        entity_id: str,
        *,
        start: date | None = None,
        end: date | None = None,
    ) -> list[IntegratedMetric]: ...

    def list_for_date(self, metrics_date: date) -> list[IntegratedMetric]: ...


class UnmatchedMetricRepository(Protocol):
    def record_failure(
        self,
        *,
        source: Source,
        identifier: str,
        identifier_type: IdentifierType,
        metrics: SourceMetrics,
        attempted_at: datetime,
    ) -> UnmatchedMetric:
        """Insert or bump the unresolved row for (source, identifier) in one atomic step."""
        ...

    def resolve(
        self,
        *,
        source: Source,
        identifier: str,
        entity: EntityRef | None,
        resolved_at: datetime,
    ) -> int: ...

    def get_active(self, source: Source, identifier: str) -> UnmatchedMetric | None: ...

    def list_unresolved(
        self,
        *,
        limit: int | None = None,
        sort_by_attempts: bool = True,
    ) -> list[UnmatchedMetric]: ...


class ManualMappingRepository(Protocol):
    def add(self, mapping: ManualMapping) -> None: ...

    def get(self, mapping_id: uuid.UUID) -> ManualMapping | None: ...

    def list_active(self) -> list[ManualMapping]: ...


class MatchHistoryRepository(Protocol):
    def add_all(self, entries: Iterable[MatchHistory]) -> None: ...

    def list_for_date(self, metrics_date: date) -> list[MatchHistory]: ...


class AttributedMetricRepository(Protocol):
    def list_for_date(self, metrics_date: date) -> list[AttributedMetric]: ...

    def get(self, source: Source, identifier: str, metrics_date: date) -> AttributedMetric | None:
        ...

    def upsert(self, attribution: AttributedMetric) -> None: ...

    def delete(self, source: Source, identifier: str, metrics_date: date) -> None: ...

    def replace_for_source(
        self,
        metrics_date: date,
        source: Source,
        attributions: Iterable[AttributedMetric],
    ) -> None: ...


class SyncRunRepository(Protocol):
    def add(self, run: SyncRun) -> None: ...

    def latest(self) -> SyncRun | None: ...

    def last_success(self, source: Source) -> datetime | None:
        """Start time of the most recent completed run in which ``source`` succeeded."""
        ...

    def recent_failures(self, source: Source) -> tuple[int, datetime | None]:
        """Consecutive failures of ``source`` since its last success, and the latest one."""
        ...
