"""Bookkeeping rows for sync runs."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from .enums import RunState, SourceStatus, SyncMode

if TYPE_CHECKING:
    from datetime import date

    from .enums import Source


@dataclass(eq=False, kw_only=True)
class SourceRun:
    """Outcome of one source within a sync run."""

    source: Source
    status: SourceStatus
    fetched: int = 0
    matched: int = 0
    unmatched: int = 0
    avg_confidence: float | None = None
    error: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None
    run_id: uuid.UUID | None = None


@dataclass(eq=False, kw_only=True)
class SyncRun:
    metrics_date: date
    mode: SyncMode = SyncMode.FULL
    state: RunState = RunState.IDLE
    partial: bool = False
    rows_written: int = 0
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None
    source_runs: list[SourceRun] = field(default_factory=list)
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    def source_run(self, source: Source) -> SourceRun | None:
        for entry in self.source_runs:
            if entry.source == source:
                return entry
        return None
