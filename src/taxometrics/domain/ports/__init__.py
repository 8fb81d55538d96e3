"""Domain port definitions for adapters."""

from __future__ import annotations

from .fetching import CatalogProvider, MetricSource
from .persistence import (
    AttributedMetricRepository,
    IntegratedMetricRepository,
    ManualMappingRepository,
    MatchHistoryRepository,
    SyncRunRepository,
    UnmatchedMetricRepository,
)
from .unit_of_work import (
    IntegrationRepositories,
    IntegrationUnitOfWork,
    RepositoryCollection,
    UnitOfWork,
)

__all__ = [
    "AttributedMetricRepository",
    "CatalogProvider",
    "IntegratedMetricRepository",
    "IntegrationRepositories",
    "IntegrationUnitOfWork",
    "ManualMappingRepository",
    "MatchHistoryRepository",
    "MetricSource",
    "RepositoryCollection",
    "SyncRunRepository",
    "UnitOfWork",
    "UnmatchedMetricRepository",
]
