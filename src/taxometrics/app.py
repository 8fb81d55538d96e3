"""Application entry points wiring the domain to the configured adapters."""

from __future__ import annotations

from collections.abc import Callable
from logging import getLogger
from typing import TYPE_CHECKING

from taxometrics.adapters.feeds import (
    build_http_metric_sources,
    check_feed_payload,
    should_cache_feed_page,
)
from taxometrics.adapters.sqlalchemy import (
    SqlAlchemyCatalogProvider,
    SqlAlchemyCatalogRepository,
    SqlAlchemyIntegrationUnitOfWork,
    session_factory,
    startup,
)
from taxometrics.adapters.sqlalchemy.unit_of_work import is_started
from taxometrics.config import get_feed_configs, get_sync_config
from taxometrics.domain import integration
from taxometrics.domain.integration import MetricsIntegrator, RunSettings
from taxometrics.domain.model import SyncMode
from taxometrics.domain.ports import IntegrationUnitOfWork

if TYPE_CHECKING:
    import uuid
    from collections.abc import Sequence
    from datetime import date

    from taxometrics.domain.cancellation import CancellationToken
    from taxometrics.domain.integration import (
        IntegrationStatus,
        MatchRateSummary,
        SyncSummary,
    )
    from taxometrics.domain.model import (
        CatalogSnapshot,
        EntityType,
        IdentifierType,
        IntegratedMetric,
        ManualMapping,
        UnmatchedMetric,
    )
    from taxometrics.domain.ports import CatalogProvider, MetricSource

UnitOfWorkFactory = Callable[[], IntegrationUnitOfWork]

log = getLogger(__name__)


def _ensure_started() -> None:
    if not is_started():
        startup()


def _unit_of_work_factory(override: UnitOfWorkFactory | None) -> UnitOfWorkFactory:
    if override is not None:
        return override
    _ensure_started()
    return SqlAlchemyIntegrationUnitOfWork


def run_sync(
    metrics_date: date,
    mode: SyncMode = SyncMode.FULL,
    *,
    sources: Sequence[MetricSource] | None = None,
    catalog_provider: CatalogProvider | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    settings: RunSettings | None = None,
    cancel: CancellationToken | None = None,
) -> SyncSummary:
    """Run one sync for ``metrics_date`` using the configured feeds and database."""

    effective_uow = _unit_of_work_factory(unit_of_work_factory)
    if catalog_provider is None:
        _ensure_started()
        catalog_provider = SqlAlchemyCatalogProvider(session_factory())
    if sources is None:
        feeds = get_feed_configs(
            cache_predicate=should_cache_feed_page,
            payload_check=check_feed_payload,
        )
        sources = build_http_metric_sources(feeds)
    if not sources:
        log.warning("No metric sources configured; the run will only rebuild rollups")
    if settings is None:
        config = get_sync_config()
        settings = RunSettings(
            match_workers=config.match_workers,
            fetch_timeout_seconds=config.fetch_timeout_seconds,
            backoff_seconds=config.fetch_backoff_seconds,
            backoff_max_seconds=config.fetch_backoff_max_seconds,
        )

    integrator = MetricsIntegrator(
        catalog_provider=catalog_provider,
        sources=sources,
        unit_of_work_factory=effective_uow,
        settings=settings,
    )
    return integrator.run_sync(metrics_date, mode, cancel=cancel)


def load_catalog(snapshot: CatalogSnapshot) -> None:
    """Replace the stored catalog read by the SQL catalog provider."""

    _ensure_started()
    with session_factory()() as session:
        SqlAlchemyCatalogRepository(session).replace(snapshot)
        session.commit()


def get_integrated_metrics(
    entity_type: EntityType,
    entity_id: str,
    *,
    start: date | None = None,
    end: date | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> list[IntegratedMetric]:
    return integration.get_integrated_metrics(
        _unit_of_work_factory(unit_of_work_factory),
        entity_type,
        entity_id,
        start=start,
        end=end,
    )


def get_unmatched(
    *,
    limit: int | None = None,
    sort_by_attempts: bool = True,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> list[UnmatchedMetric]:
    effective_limit = limit if limit is not None else get_sync_config().unmatched_limit
    return integration.get_unmatched(
        _unit_of_work_factory(unit_of_work_factory),
        limit=effective_limit,
        sort_by_attempts=sort_by_attempts,
    )


def get_match_rate_summary(
    metrics_date: date,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> MatchRateSummary:
    return integration.get_match_rate_summary(
        _unit_of_work_factory(unit_of_work_factory),
        metrics_date,
    )


def get_integration_status(
    *,
    top: int = 10,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> IntegrationStatus:
    return integration.get_integration_status(
        _unit_of_work_factory(unit_of_work_factory),
        top=top,
    )


def add_manual_mapping(
    *,
    source_identifier: str,
    entity_type: EntityType,
    entity_id: str,
    created_by: str,
    identifier_type: IdentifierType | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> ManualMapping:
    return integration.add_manual_mapping(
        _unit_of_work_factory(unit_of_work_factory),
        source_identifier=source_identifier,
        entity_type=entity_type,
        entity_id=entity_id,
        created_by=created_by,
        identifier_type=identifier_type,
    )


def deactivate_manual_mapping(
    mapping_id: uuid.UUID,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> ManualMapping:
    return integration.deactivate_manual_mapping(
        _unit_of_work_factory(unit_of_work_factory),
        mapping_id,
    )
