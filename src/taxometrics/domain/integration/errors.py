"""Error types and reason codes surfaced by sync runs."""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from taxometrics.domain.model import Source


class ReasonCode(StrEnum):
    NO_MATCH = "no_match"
    SOURCE_FETCH_FAILED = "source_fetch_failed"
    SOURCE_TIMEOUT = "source_timeout"
    SOURCE_DEFERRED = "source_deferred"
    TREE_CYCLE = "tree_cycle"
    ORPHANED_PARENT = "orphaned_parent"
    MAPPING_CONFLICT = "mapping_conflict"
    CANCELLED = "cancelled"
    RUN_FAILED = "run_failed"


class SourceFetchError(RuntimeError):
    """A metric source could not deliver its records for this run."""

    def __init__(self, source: Source, message: str, *, reason: ReasonCode) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source
        self.reason = reason


class InvalidTransitionError(RuntimeError):
    """Raised when a run is moved to a state it cannot reach from its current one."""
