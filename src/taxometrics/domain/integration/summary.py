"""Summaries returned by sync runs and the read APIs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from taxometrics.domain.model import ConfidenceLevel, RunState

if TYPE_CHECKING:
    import uuid
    from collections.abc import Mapping
    from datetime import date, datetime

    from taxometrics.domain.matching import TreeValidationIssue
    from taxometrics.domain.model import (
        MatchStrategy,
        Source,
        SourceStatus,
        SyncMode,
        SyncRun,
        UnmatchedMetric,
    )

    from .errors import ReasonCode


@dataclass(frozen=True, slots=True)
class RunError:
    reason: ReasonCode
    message: str
    source: Source | None = None


@dataclass(slots=True, kw_only=True)
class SourceSummary:
    source: Source
    status: SourceStatus
    fetched: int = 0
    matched: int = 0
    unmatched: int = 0
    avg_confidence: float | None = None
    error: str | None = None

    @property
    def match_rate(self) -> float | None:
        attempted = self.matched + self.unmatched
        return self.matched / attempted if attempted else None


@dataclass(slots=True, kw_only=True)
class SyncSummary:
    run_id: uuid.UUID
    metrics_date: date
    mode: SyncMode
    state: RunState
    partial: bool = False
    sources: dict[Source, SourceSummary] = field(default_factory=dict)
    confidence_distribution: dict[ConfidenceLevel, int] = field(
        default_factory=lambda: dict.fromkeys(ConfidenceLevel, 0)
    )
    strategy_counts: dict[MatchStrategy, int] = field(default_factory=dict)
    validation_issues: list[TreeValidationIssue] = field(default_factory=list)
    errors: list[RunError] = field(default_factory=list)
    rows_written: int = 0
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def matched(self) -> int:
        return sum(entry.matched for entry in self.sources.values())

    @property
    def unmatched(self) -> int:
        return sum(entry.unmatched for entry in self.sources.values())

    @property
    def match_rate(self) -> float | None:
        attempted = self.matched + self.unmatched
        return self.matched / attempted if attempted else None

    @property
    def succeeded(self) -> bool:
        return self.state is RunState.COMPLETED

    def error_counts(self) -> dict[ReasonCode, int]:
        counts: dict[ReasonCode, int] = {}
        for error in self.errors:
            counts[error.reason] = counts.get(error.reason, 0) + 1
        return counts


@dataclass(frozen=True, slots=True)
class SourceMatchRate:
    matched: int
    unmatched: int
    avg_confidence: float | None

    @property
    def match_rate(self) -> float | None:
        attempted = self.matched + self.unmatched
        return self.matched / attempted if attempted else None


@dataclass(frozen=True, slots=True)
class MatchRateSummary:
    metrics_date: date
    per_source: Mapping[Source, SourceMatchRate]


@dataclass(frozen=True, slots=True)
class IntegrationStatus:
    last_run: SyncRun | None
    top_unmatched: tuple[UnmatchedMetric, ...]
    avg_confidence: float | None
