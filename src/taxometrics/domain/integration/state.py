"""Run lifecycle: Idle -> Loading -> Matching -> Aggregating -> Persisting -> Completed.

Any active state may fall through to Failed, flagged as partial when some source had
already been matched before the failure.
"""

from __future__ import annotations

from logging import getLogger
from types import MappingProxyType

from taxometrics.domain.model import RunState

from .errors import InvalidTransitionError

log = getLogger(__name__)

_TRANSITIONS = MappingProxyType(
    {
        RunState.IDLE: frozenset({RunState.LOADING}),
        RunState.LOADING: frozenset({RunState.MATCHING, RunState.FAILED}),
        RunState.MATCHING: frozenset({RunState.AGGREGATING, RunState.FAILED}),
        RunState.AGGREGATING: frozenset({RunState.PERSISTING, RunState.FAILED}),
        RunState.PERSISTING: frozenset({RunState.COMPLETED, RunState.FAILED}),
        RunState.COMPLETED: frozenset(),
        RunState.FAILED: frozenset(),
    }
)


class RunStateMachine:
    __slots__ = ("history", "partial", "state")

    def __init__(self) -> None:
        self.state = RunState.IDLE
        self.partial = False
        self.history: list[RunState] = [RunState.IDLE]

    @property
    def finished(self) -> bool:
        return self.state in {RunState.COMPLETED, RunState.FAILED}

    def advance(self, target: RunState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise InvalidTransitionError(f"Cannot move run from {self.state} to {target}")
        log.debug("Run state %s -> %s", self.state, target)
        self.state = target
        self.history.append(target)

    def fail(self, *, partial: bool) -> None:
        if self.finished:
            return
        self.partial = partial
        self.advance(RunState.FAILED)
