"""Ports for the collaborators a sync run reads from."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import date, datetime

    from taxometrics.domain.model import CatalogSnapshot, ExternalRecord, Source


@runtime_checkable
class CatalogProvider(Protocol):
    """Callable port returning a point-in-time catalog snapshot."""

    def __call__(self) -> CatalogSnapshot: ...


@runtime_checkable
class MetricSource(Protocol):
    """One external metric feed.

    ``fetch`` returns every record for ``metrics_date``; when ``since`` is given the source
    may restrict itself to records updated after it. Any exception is treated as a failure
    of the whole source, never of a single record.
    """

    @property
    def source(self) -> Source: ...

    async def fetch(
        self,
        *,
        metrics_date: date,
        since: datetime | None = None,
    ) -> Sequence[ExternalRecord]: ...


__all__ = ["CatalogProvider", "MetricSource"]
