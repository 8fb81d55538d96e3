"""SQLAlchemy adapter package for taxometrics."""

from __future__ import annotations

from .catalog import SqlAlchemyCatalogProvider, SqlAlchemyCatalogRepository
from .mappings import create_all_tables, mapper_registry, start_mappers
from .repositories import (
    SqlAlchemyAttributedMetricRepository,
    SqlAlchemyIntegratedMetricRepository,
    SqlAlchemyManualMappingRepository,
    SqlAlchemyMatchHistoryRepository,
    SqlAlchemySyncRunRepository,
    SqlAlchemyUnmatchedMetricRepository,
)
from .unit_of_work import (
    SqlAlchemyIntegrationUnitOfWork,
    StartupError,
    session_factory,
    shutdown,
    startup,
)

__all__ = [
    "SqlAlchemyAttributedMetricRepository",
    "SqlAlchemyCatalogProvider",
    "SqlAlchemyCatalogRepository",
    "SqlAlchemyIntegratedMetricRepository",
    "SqlAlchemyIntegrationUnitOfWork",
    "SqlAlchemyManualMappingRepository",
    "SqlAlchemyMatchHistoryRepository",
    "SqlAlchemySyncRunRepository",
    "SqlAlchemyUnmatchedMetricRepository",
    "StartupError",
    "create_all_tables",
    "mapper_registry",
    "session_factory",
    "shutdown",
    "startup",
]
