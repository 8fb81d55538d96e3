"""Unmatched tracker: durable record of external identifiers no strategy could place.

Failures are keyed by (source, identifier). A repeated failure bumps ``attempt_count`` on
the existing unresolved row instead of adding a second one. Callers serialize per key
through :class:`KeyedLocks`; repositories that offer an atomic upsert stay correct even
without it.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from taxometrics.domain.model import Source

if TYPE_CHECKING:
    from collections.abc import Callable, Hashable, Iterator

    from taxometrics.domain.model import (
        EntityRef,
        ExternalRecord,
        IdentifierType,
        SourceMetrics,
        UnmatchedMetric,
    )
    from taxometrics.domain.ports import UnmatchedMetricRepository

log = getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class KeyedLocks:
    """Lazily created lock per key."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, threading.Lock] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
        with lock:
            yield


class UnmatchedTracker:
    def __init__(
        self,
        repository: UnmatchedMetricRepository,
        *,
        locks: KeyedLocks | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.repository = repository
        self._locks = locks or KeyedLocks()
        self._clock = clock

    def record(
        self,
        source: Source,
        identifier: str,
        identifier_type: IdentifierType,
        metrics: SourceMetrics,
    ) -> UnmatchedMetric:
        with self._locks.hold((source, identifier)):
            row = self.repository.record_failure(
                source=source,
                identifier=identifier,
                identifier_type=identifier_type,
                metrics=metrics,
                attempted_at=self._clock(),
            )
        log.debug("Unmatched %s %s (attempt %s)", source, identifier, row.attempt_count)
        return row

    def record_from(self, record: ExternalRecord) -> UnmatchedMetric:
        return self.record(
            record.source,
            record.identifier,
            record.identifier_type,
            record.metrics,
        )

    def resolve(
        self,
        source: Source,
        identifier: str,
        entity: EntityRef | None = None,
    ) -> bool:
        with self._locks.hold((source, identifier)):
            resolved = self.repository.resolve(
                source=source,
                identifier=identifier,
                entity=entity,
                resolved_at=self._clock(),
            )
        if resolved:
            log.info("Resolved unmatched %s %s -> %s", source, identifier, entity)
        return bool(resolved)

    def resolve_everywhere(self, identifier: str, entity: EntityRef | None = None) -> int:
        """Resolve ``identifier`` for every source, e.g. after a manual mapping was added."""

        return sum(self.resolve(source, identifier, entity) for source in Source)

    def top(self, limit: int = 10) -> list[UnmatchedMetric]:
        return self.repository.list_unresolved(limit=limit, sort_by_attempts=True)
