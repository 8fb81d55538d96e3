"""Read APIs and manual-mapping administration for review tooling and dashboards."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from taxometrics.domain.model import ManualMapping, Source, SourceStatus
from taxometrics.domain.unmatched import UnmatchedTracker

from .errors import ReasonCode
from .summary import IntegrationStatus, MatchRateSummary, SourceMatchRate

if TYPE_CHECKING:
    import uuid
    from collections.abc import Callable
    from datetime import date

    from taxometrics.domain.model import (
        EntityType,
        IdentifierType,
        IntegratedMetric,
        MatchHistory,
        UnmatchedMetric,
    )
    from taxometrics.domain.ports import IntegrationUnitOfWork

    UnitOfWorkFactory = Callable[[], IntegrationUnitOfWork]

log = getLogger(__name__)


def get_integrated_metrics(
    unit_of_work_factory: UnitOfWorkFactory,
    entity_type: EntityType,
    entity_id: str,
    *,
    start: date | None = None,
    end: date | None = None,
) -> list[IntegratedMetric]:
    if start is not None and end is not None and start > end:
        raise ValueError("Date range start must not be after its end")
    with unit_of_work_factory() as uow:
        return uow.repositories.integrated_metrics.list_for_entity(
            entity_type,
            entity_id,
            start=start,
            end=end,
        )


def get_unmatched(
    unit_of_work_factory: UnitOfWorkFactory,
    *,
    limit: int | None = 50,
    sort_by_attempts: bool = True,
) -> list[UnmatchedMetric]:
    with unit_of_work_factory() as uow:
        return uow.repositories.unmatched.list_unresolved(
            limit=limit,
            sort_by_attempts=sort_by_attempts,
        )


def get_match_rate_summary(
    unit_of_work_factory: UnitOfWorkFactory,
    metrics_date: date,
) -> MatchRateSummary:
    """Match counts per source, using only the latest attempt for each identifier."""

    with unit_of_work_factory() as uow:
        entries = uow.repositories.match_history.list_for_date(metrics_date)

    latest: dict[tuple[Source, str], MatchHistory] = {}
    for entry in sorted(entries, key=lambda item: item.attempted_at):
        if entry.error_reason is not None and entry.error_reason.startswith(
            ReasonCode.MAPPING_CONFLICT
        ):
            continue
        latest[(entry.source, entry.identifier)] = entry

    per_source: dict[Source, SourceMatchRate] = {}
    for source in Source:
        attempts = [entry for (origin, _), entry in latest.items() if origin == source]
        if not attempts:
            continue
        confidences = [
            entry.confidence
            for entry in attempts
            if entry.success and entry.confidence is not None
        ]
        per_source[source] = SourceMatchRate(
            matched=sum(1 for entry in attempts if entry.success),
            unmatched=sum(1 for entry in attempts if not entry.success),
            avg_confidence=sum(confidences) / len(confidences) if confidences else None,
        )
    return MatchRateSummary(metrics_date=metrics_date, per_source=per_source)


def get_integration_status(
    unit_of_work_factory: UnitOfWorkFactory,
    *,
    top: int = 10,
) -> IntegrationStatus:
    with unit_of_work_factory() as uow:
        last_run = uow.repositories.sync_runs.latest()
        top_unmatched = uow.repositories.unmatched.list_unresolved(limit=top)

    avg_confidence: float | None = None
    if last_run is not None:
        weighted = [
            (entry.avg_confidence, entry.matched)
            for entry in last_run.source_runs
            if entry.status is SourceStatus.SUCCEEDED
            and entry.avg_confidence is not None
            and entry.matched > 0
        ]
        total = sum(count for _, count in weighted)
        if total:
            avg_confidence = sum(value * count for value, count in weighted) / total
    return IntegrationStatus(
        last_run=last_run,
        top_unmatched=tuple(top_unmatched),
        avg_confidence=avg_confidence,
    )


def add_manual_mapping(
    unit_of_work_factory: UnitOfWorkFactory,
    *,
    source_identifier: str,
    entity_type: EntityType,
    entity_id: str,
    created_by: str,
    identifier_type: IdentifierType | None = None,
) -> ManualMapping:
    """Store an active mapping and resolve any unmatched rows it now covers."""

    identifier = source_identifier.strip()
    if not identifier:
        raise ValueError("Manual mapping identifier must not be blank")
    mapping = ManualMapping(
        source_identifier=identifier,
        identifier_type=identifier_type,
        entity_type=entity_type,
        entity_id=entity_id,
        created_by=created_by,
    )
    with unit_of_work_factory() as uow:
        uow.repositories.manual_mappings.add(mapping)
        resolved = UnmatchedTracker(uow.repositories.unmatched).resolve_everywhere(
            identifier,
            mapping.target,
        )
        uow.commit()
    log.info(
        "Added manual mapping %s: %s -> %s (resolved %s unmatched rows)",
        mapping.id,
        identifier,
        mapping.target,
        resolved,
    )
    return mapping


def deactivate_manual_mapping(
    unit_of_work_factory: UnitOfWorkFactory,
    mapping_id: uuid.UUID,
) -> ManualMapping:
    with unit_of_work_factory() as uow:
        mapping = uow.repositories.manual_mappings.get(mapping_id)
        if mapping is None:
            raise LookupError(f"Unknown manual mapping: {mapping_id}")
        mapping.deactivate()
        uow.commit()
    log.info("Deactivated manual mapping %s", mapping_id)
    return mapping
