"""Integration orchestrator: one sync run from catalog snapshot to persisted rollups.

Responsibilities of this stage:
- load the catalog snapshot, build the indices and the manual-mapping view
- fetch every configured source concurrently, isolating per-source failures and timeouts
- match records on a worker pool, persist attributions, unmatched rows and history
- aggregate once all sources are matched, then replace the affected rollup rows
- report everything in a :class:`SyncSummary`; ``run_sync`` never raises
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from logging import getLogger
from typing import TYPE_CHECKING

from taxometrics.domain.aggregation import affected_scope, aggregate, combine_attributions
from taxometrics.domain.cancellation import RunCancelledError
from taxometrics.domain.matching import (
    DEFAULT_STRATEGIES,
    ManualMappingIndex,
    ManualMatchDetails,
    MatchContext,
    Matcher,
    build_catalog_index,
    confidence_level,
)
from taxometrics.domain.model import (
    AttributedMetric,
    MatchHistory,
    RunState,
    SourceRun,
    SourceStatus,
    SyncMode,
    SyncRun,
)
from taxometrics.domain.unmatched import KeyedLocks, UnmatchedTracker

from .errors import ReasonCode, SourceFetchError
from .state import RunStateMachine
from .summary import RunError, SourceSummary, SyncSummary

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence
    from datetime import date

    from taxometrics.domain.cancellation import CancellationToken
    from taxometrics.domain.matching import MatchOutcome, Strategy
    from taxometrics.domain.model import EntityRef, ExternalRecord, Source
    from taxometrics.domain.ports import (
        CatalogProvider,
        IntegrationRepositories,
        IntegrationUnitOfWork,
        MetricSource,
    )

log = getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class RunSettings:
    match_workers: int = 4
    fetch_timeout_seconds: float = 60.0
    backoff_seconds: float = 900.0
    backoff_max_seconds: float = 21600.0

    def backoff_for(self, failures: int) -> timedelta:
        if failures <= 0 or self.backoff_seconds <= 0:
            return timedelta(0)
        seconds = min(self.backoff_seconds * 2 ** (failures - 1), self.backoff_max_seconds)
        return timedelta(seconds=seconds)


@dataclass(frozen=True, slots=True)
class _SourcePlan:
    source: Source
    since: datetime | None = None
    deferred_until: datetime | None = None


@dataclass(frozen=True, slots=True)
class _FetchOutcome:
    source: Source
    records: tuple[ExternalRecord, ...] = ()
    error: SourceFetchError | None = None


class MetricsIntegrator:
    def __init__(
        self,
        *,
        catalog_provider: CatalogProvider,
        sources: Sequence[MetricSource],
        unit_of_work_factory: Callable[[], IntegrationUnitOfWork],
        settings: RunSettings | None = None,
        strategies: Sequence[Strategy] = DEFAULT_STRATEGIES,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.catalog_provider = catalog_provider
        self.sources = {source.source: source for source in sources}
        self.unit_of_work_factory = unit_of_work_factory
        self.settings = settings or RunSettings()
        self.strategies = tuple(strategies)
        self._clock = clock
        self._locks = KeyedLocks()

    def run_sync(
        self,
        metrics_date: date,
        mode: SyncMode = SyncMode.FULL,
        *,
        cancel: CancellationToken | None = None,
    ) -> SyncSummary:
        run = SyncRun(metrics_date=metrics_date, mode=mode, started_at=self._clock())
        machine = RunStateMachine()
        summary = SyncSummary(
            run_id=run.id,
            metrics_date=metrics_date,
            mode=mode,
            state=machine.state,
            started_at=run.started_at,
        )
        log.info("Starting %s sync run %s for %s", mode, run.id, metrics_date)

        try:
            self._execute(run, machine, summary, cancel)
        except RunCancelledError as exc:
            log.warning("Sync run %s cancelled during %s", run.id, machine.state)
            summary.errors.append(RunError(ReasonCode.CANCELLED, str(exc)))
            machine.fail(partial=summary.matched > 0)
        except Exception as exc:
            log.exception("Sync run %s failed during %s", run.id, machine.state)
            summary.errors.append(RunError(ReasonCode.RUN_FAILED, str(exc) or type(exc).__name__))
            machine.fail(partial=summary.matched > 0)

        summary.state = machine.state
        summary.partial = machine.partial
        summary.finished_at = self._clock()
        self._record_run(run, summary)
        log.info(
            "Finished sync run %s: state=%s, matched=%s, unmatched=%s, rows=%s, errors=%s",
            run.id,
            summary.state,
            summary.matched,
            summary.unmatched,
            summary.rows_written,
            len(summary.errors),
        )
        return summary

    def _execute(
        self,
        run: SyncRun,
        machine: RunStateMachine,
        summary: SyncSummary,
        cancel: CancellationToken | None,
    ) -> None:
        metrics_date = run.metrics_date

        machine.advance(RunState.LOADING)
        index = build_catalog_index(self.catalog_provider())
        for issue in index.issues:
            summary.validation_issues.append(issue)
            summary.errors.append(RunError(ReasonCode(issue.reason), issue.describe()))

        with self.unit_of_work_factory() as uow:
            mappings = uow.repositories.manual_mappings.list_active()
            plans = [
                self._plan_source(uow.repositories, source, run.mode, run.started_at)
                for source in sorted(self.sources)
            ]
        manual = ManualMappingIndex.build(mappings)
        for conflict in manual.conflicts:
            summary.errors.append(
                RunError(
                    ReasonCode.MAPPING_CONFLICT,
                    f"{conflict.key}: {conflict.winner} overrides "
                    + ", ".join(str(mapping_id) for mapping_id in conflict.overridden),
                )
            )
        matcher = Matcher(MatchContext(index, manual), self.strategies)

        machine.advance(RunState.MATCHING)
        _checkpoint(cancel)
        fetched = asyncio.run(self._fetch_all(plans, metrics_date))
        _checkpoint(cancel)

        touched: set[EntityRef] = set()
        for plan in plans:
            source = plan.source
            if plan.deferred_until is not None:
                message = f"backing off until {plan.deferred_until.isoformat()}"
                self._source_failed(run, summary, source, SourceStatus.DEFERRED, message)
                summary.errors.append(RunError(ReasonCode.SOURCE_DEFERRED, message, source))
                continue
            outcome = fetched[source]
            if outcome.error is not None:
                message = str(outcome.error)
                self._source_failed(run, summary, source, SourceStatus.FAILED, message)
                summary.errors.append(RunError(outcome.error.reason, message, source))
                continue
            if cancel is not None and cancel.cancelled:
                self._source_failed(run, summary, source, SourceStatus.SKIPPED, "cancelled")
                continue

            records = self._select_records(outcome.records, plan, metrics_date)
            outcomes = matcher.match_all(records, workers=self.settings.match_workers)
            touched |= self._store_matches(run, source, outcomes)
            self._source_succeeded(run, summary, source, len(outcome.records), outcomes)
        _checkpoint(cancel)

        machine.advance(RunState.AGGREGATING)
        with self.unit_of_work_factory() as uow:
            attributions = uow.repositories.attributions.list_for_date(metrics_date)
        entity_rows = combine_attributions(attributions, metrics_date)
        result = aggregate(entity_rows, index.tree, metrics_date=metrics_date, cancel=cancel)
        scope = None if run.mode is SyncMode.FULL else affected_scope(index.tree, touched)
        rows = result.rows if scope is None else [row for row in result.rows if row.ref in scope]
        _checkpoint(cancel)

        machine.advance(RunState.PERSISTING)
        with self.unit_of_work_factory() as uow:
            written = uow.repositories.integrated_metrics.replace(metrics_date, rows, scope=scope)
            uow.commit()
        summary.rows_written = written
        run.rows_written = written
        machine.advance(RunState.COMPLETED)

    def _plan_source(
        self,
        repositories: IntegrationRepositories,
        source: Source,
        mode: SyncMode,
        now: datetime,
    ) -> _SourcePlan:
        failures, last_failed_at = repositories.sync_runs.recent_failures(source)
        if failures and last_failed_at is not None:
            retry_at = last_failed_at + self.settings.backoff_for(failures)
            if now < retry_at:
                log.info("Deferring %s after %s failure(s) until %s", source, failures, retry_at)
                return _SourcePlan(source=source, deferred_until=retry_at)
        since = repositories.sync_runs.last_success(source) if mode is SyncMode.INCREMENTAL else None
        return _SourcePlan(source=source, since=since)

    async def _fetch_all(
        self,
        plans: Sequence[_SourcePlan],
        metrics_date: date,
    ) -> dict[Source, _FetchOutcome]:
        active = [plan for plan in plans if plan.deferred_until is None]
        outcomes = await asyncio.gather(*(self._fetch_one(plan, metrics_date) for plan in active))
        return {outcome.source: outcome for outcome in outcomes}

    async def _fetch_one(self, plan: _SourcePlan, metrics_date: date) -> _FetchOutcome:
        source = self.sources[plan.source]
        timeout = self.settings.fetch_timeout_seconds
        try:
            async with asyncio.timeout(timeout):
                records = await source.fetch(metrics_date=metrics_date, since=plan.since)
        except TimeoutError:
            log.warning("Fetching %s timed out after %ss", plan.source, timeout)
            error = SourceFetchError(
                plan.source,
                f"timed out after {timeout}s",
                reason=ReasonCode.SOURCE_TIMEOUT,
            )
            return _FetchOutcome(source=plan.source, error=error)
        except Exception as exc:
            log.warning("Fetching %s failed", plan.source, exc_info=True)
            error = SourceFetchError(
                plan.source,
                str(exc) or type(exc).__name__,
                reason=ReasonCode.SOURCE_FETCH_FAILED,
            )
            return _FetchOutcome(source=plan.source, error=error)
        log.info("Fetched %s records from %s", len(records), plan.source)
        return _FetchOutcome(source=plan.source, records=tuple(records))

    def _select_records(
        self,
        records: Iterable[ExternalRecord],
        plan: _SourcePlan,
        metrics_date: date,
    ) -> list[ExternalRecord]:
        selected: list[ExternalRecord] = []
        foreign = 0
        for record in records:
            if record.source != plan.source or record.metrics_date != metrics_date:
                foreign += 1
                continue
            if plan.since is not None and record.updated_at is not None:
                if record.updated_at <= plan.since:
                    continue
            selected.append(record)
        if foreign:
            log.warning("Ignored %s %s records for another source or date", foreign, plan.source)
        return selected

    def _store_matches(
        self,
        run: SyncRun,
        source: Source,
        outcomes: Sequence[MatchOutcome],
    ) -> set[EntityRef]:
        """Persist one source's outcomes; returns the entities whose inputs changed."""

        touched: set[EntityRef] = set()
        incremental = run.mode is SyncMode.INCREMENTAL
        history: list[MatchHistory] = []
        attributions: list[AttributedMetric] = []

        with self.unit_of_work_factory() as uow:
            repositories = uow.repositories
            tracker = UnmatchedTracker(repositories.unmatched, locks=self._locks, clock=self._clock)
            for outcome in outcomes:
                record = outcome.record
                result = outcome.result
                previous = (
                    repositories.attributions.get(source, record.identifier, run.metrics_date)
                    if incremental
                    else None
                )
                if previous is not None:
                    touched.add(previous.target)

                if result is None:
                    tracker.record_from(record)
                    history.append(
                        MatchHistory(
                            source=source,
                            identifier=record.identifier,
                            metrics_date=run.metrics_date,
                            success=False,
                            error_reason=ReasonCode.NO_MATCH,
                            processing_time_ms=outcome.elapsed_ms,
                            run_id=run.id,
                            attempted_at=self._clock(),
                        )
                    )
                    if previous is not None:
                        repositories.attributions.delete(source, record.identifier, run.metrics_date)
                    continue

                tracker.resolve(source, record.identifier, result.target)
                history.append(
                    MatchHistory(
                        source=source,
                        identifier=record.identifier,
                        metrics_date=run.metrics_date,
                        success=True,
                        strategy=result.strategy,
                        matched_entity_type=result.target.entity_type,
                        matched_entity_id=result.target.entity_id,
                        confidence=result.confidence,
                        processing_time_ms=outcome.elapsed_ms,
                        run_id=run.id,
                        attempted_at=self._clock(),
                    )
                )
                details = result.details
                if isinstance(details, ManualMatchDetails) and details.conflicted:
                    overridden = ", ".join(str(mapping_id) for mapping_id in details.overridden)
                    history.append(
                        MatchHistory(
                            source=source,
                            identifier=record.identifier,
                            metrics_date=run.metrics_date,
                            success=True,
                            strategy=result.strategy,
                            matched_entity_type=result.target.entity_type,
                            matched_entity_id=result.target.entity_id,
                            confidence=result.confidence,
                            error_reason=f"{ReasonCode.MAPPING_CONFLICT}: overrides {overridden}",
                            run_id=run.id,
                            attempted_at=self._clock(),
                        )
                    )

                attribution = AttributedMetric(
                    source=source,
                    identifier=record.identifier,
                    metrics_date=run.metrics_date,
                    identifier_type=record.identifier_type,
                    entity_type=result.target.entity_type,
                    entity_id=result.target.entity_id,
                    confidence=result.confidence,
                    strategy=result.strategy,
                    metrics=record.metrics,
                    updated_at=self._clock(),
                )
                touched.add(result.target)
                if incremental:
                    repositories.attributions.upsert(attribution)
                else:
                    attributions.append(attribution)

            if not incremental:
                repositories.attributions.replace_for_source(run.metrics_date, source, attributions)
            repositories.match_history.add_all(history)
            uow.commit()

        return touched

    def _source_succeeded(
        self,
        run: SyncRun,
        summary: SyncSummary,
        source: Source,
        fetched: int,
        outcomes: Sequence[MatchOutcome],
    ) -> None:
        confidences = [outcome.result.confidence for outcome in outcomes if outcome.result]
        entry = SourceSummary(
            source=source,
            status=SourceStatus.SUCCEEDED,
            fetched=fetched,
            matched=len(confidences),
            unmatched=len(outcomes) - len(confidences),
            avg_confidence=sum(confidences) / len(confidences) if confidences else None,
        )
        summary.sources[source] = entry
        for outcome in outcomes:
            if outcome.result is None:
                continue
            level = confidence_level(outcome.result.confidence)
            summary.confidence_distribution[level] += 1
            strategy = outcome.result.strategy
            summary.strategy_counts[strategy] = summary.strategy_counts.get(strategy, 0) + 1
        run.source_runs.append(self._source_run(entry, run))
        log.info(
            "Matched %s: matched=%s, unmatched=%s, avg_confidence=%s",
            source,
            entry.matched,
            entry.unmatched,
            entry.avg_confidence,
        )

    def _source_failed(
        self,
        run: SyncRun,
        summary: SyncSummary,
        source: Source,
        status: SourceStatus,
        message: str,
    ) -> None:
        entry = SourceSummary(source=source, status=status, error=message)
        summary.sources[source] = entry
        run.source_runs.append(self._source_run(entry, run))

    def _source_run(self, entry: SourceSummary, run: SyncRun) -> SourceRun:
        return SourceRun(
            source=entry.source,
            status=entry.status,
            fetched=entry.fetched,
            matched=entry.matched,
            unmatched=entry.unmatched,
            avg_confidence=entry.avg_confidence,
            error=entry.error,
            started_at=run.started_at,
            finished_at=self._clock(),
            run_id=run.id,
        )

    def _record_run(self, run: SyncRun, summary: SyncSummary) -> None:
        run.state = summary.state
        run.partial = summary.partial
        run.finished_at = summary.finished_at
        try:
            with self.unit_of_work_factory() as uow:
                uow.repositories.sync_runs.add(run)
                uow.commit()
        except Exception:
            log.exception("Could not record sync run %s", run.id)


def _checkpoint(cancel: CancellationToken | None) -> None:
    if cancel is not None:
        cancel.raise_if_cancelled()
