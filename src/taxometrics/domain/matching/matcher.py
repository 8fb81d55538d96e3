"""Matcher: resolves external records against the catalog index."""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from logging import getLogger
from typing import TYPE_CHECKING

from .results import MatchOutcome
from .strategies import DEFAULT_STRATEGIES, MatchContext, first_success

if TYPE_CHECKING:
    from collections.abc import Sequence

    from taxometrics.domain.model import ExternalRecord

    from .results import MatchResult
    from .strategies import Strategy

log = getLogger(__name__)


class Matcher:
    """Run the ordered strategies for one record at a time.

    The matcher holds no mutable state, so a single instance can be shared by any number
    of worker threads.
    """

    def __init__(
        self,
        context: MatchContext,
        strategies: Sequence[Strategy] = DEFAULT_STRATEGIES,
    ) -> None:
        self.context = context
        self._resolve = first_success(strategies)

    def match(self, record: ExternalRecord) -> MatchResult | None:
        result = self._resolve(record, self.context)
        if result is None:
            log.debug("No match for %s %s", record.source, record.identifier)
        return result

    def match_timed(self, record: ExternalRecord) -> MatchOutcome:
        started = time.perf_counter()
        result = self.match(record)
        return MatchOutcome(record, result, (time.perf_counter() - started) * 1000)

    def match_all(
        self,
        records: Sequence[ExternalRecord],
        *,
        workers: int = 1,
    ) -> list[MatchOutcome]:
        """Match every record, fanning out over a thread pool; output keeps input order."""

        if workers <= 1 or len(records) <= 1:
            return [self.match_timed(record) for record in records]
        with ThreadPoolExecutor(max_workers=min(workers, len(records))) as executor:
            return list(executor.map(self.match_timed, records))
