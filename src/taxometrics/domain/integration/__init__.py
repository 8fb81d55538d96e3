"""Sync-run orchestration and the read APIs built on its output."""

from __future__ import annotations

from .errors import InvalidTransitionError, ReasonCode, SourceFetchError
from .orchestrator import MetricsIntegrator, RunSettings
from .queries import (
    add_manual_mapping,
    deactivate_manual_mapping,
    get_integrated_metrics,
    get_integration_status,
    get_match_rate_summary,
    get_unmatched,
)
from .state import RunStateMachine
from .summary import (
    IntegrationStatus,
    MatchRateSummary,
    RunError,
    SourceMatchRate,
    SourceSummary,
    SyncSummary,
)

__all__ = [
    "IntegrationStatus",
    "InvalidTransitionError",
    "MatchRateSummary",
    "MetricsIntegrator",
    "ReasonCode",
    "RunError",
    "RunSettings",
    "RunStateMachine",
    "SourceFetchError",
    "SourceMatchRate",
    "SourceSummary",
    "SyncSummary",
    "add_manual_mapping",
    "deactivate_manual_mapping",
    "get_integrated_metrics",
    "get_integration_status",
    "get_match_rate_summary",
    "get_unmatched",
]
