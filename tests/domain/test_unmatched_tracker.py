from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from taxometrics.domain.model import EntityRef, EntityType, IdentifierType, SearchMetrics, Source
from taxometrics.domain.unmatched import KeyedLocks, UnmatchedTracker
from tests.helpers.integration import FakeClock, FakeUnmatchedMetricRepository


def _tracker(
    repository: FakeUnmatchedMetricRepository | None = None,
    clock: FakeClock | None = None,
) -> UnmatchedTracker:
    return UnmatchedTracker(
        repository or FakeUnmatchedMetricRepository(),
        clock=clock or FakeClock(),
    )


def test_repeated_failure_bumps_attempt_count() -> None:
    clock = FakeClock()
    repository = FakeUnmatchedMetricRepository()
    tracker = _tracker(repository, clock)

    first = tracker.record(
        Source.GSC, "/blog/post-123", IdentifierType.PATH, SearchMetrics(clicks=1)
    )
    clock.advance(days=1)
    second = tracker.record(
        Source.GSC, "/blog/post-123", IdentifierType.PATH, SearchMetrics(clicks=4)
    )

    assert len(repository.rows) == 1
    assert second.id == first.id
    assert second.attempt_count == 2
    assert second.first_seen_at < second.last_attempt_at
    assert second.metrics == SearchMetrics(clicks=4)


def test_same_identifier_from_other_source_is_tracked_separately() -> None:
    repository = FakeUnmatchedMetricRepository()
    tracker = _tracker(repository)

    tracker.record(Source.GSC, "/blog", IdentifierType.PATH, SearchMetrics())
    tracker.record(Source.GA4, "/blog", IdentifierType.PATH, SearchMetrics())

    assert len(repository.rows) == 2


def test_concurrent_failures_for_one_key_never_duplicate_rows() -> None:
    repository = FakeUnmatchedMetricRepository()
    tracker = UnmatchedTracker(repository, locks=KeyedLocks(), clock=FakeClock())

    def fail(_: int) -> None:
        tracker.record(Source.GSC, "/lost", IdentifierType.PATH, SearchMetrics(clicks=1))

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(fail, range(200)))

    assert len(repository.rows) == 1
    assert repository.rows[0].attempt_count == 200


def test_resolve_marks_row_and_next_failure_starts_fresh() -> None:
    repository = FakeUnmatchedMetricRepository()
    tracker = _tracker(repository)
    target = EntityRef(EntityType.NODE, "outerwear")

    original = tracker.record(Source.GSC, "/old-outerwear", IdentifierType.PATH, SearchMetrics())

    assert tracker.resolve(Source.GSC, "/old-outerwear", target)
    assert original.resolved
    assert original.resolved_entity_id == "outerwear"
    assert not tracker.resolve(Source.GSC, "/old-outerwear", target)

    again = tracker.record(Source.GSC, "/old-outerwear", IdentifierType.PATH, SearchMetrics())
    assert again.id != original.id
    assert again.attempt_count == 1


def test_resolve_everywhere_covers_all_sources() -> None:
    repository = FakeUnmatchedMetricRepository()
    tracker = _tracker(repository)
    tracker.record(Source.GSC, "sku-9", IdentifierType.SKU, SearchMetrics())
    tracker.record(Source.GA4, "sku-9", IdentifierType.SKU, SearchMetrics())

    resolved = tracker.resolve_everywhere("sku-9", EntityRef(EntityType.PRODUCT, "parka-1"))

    assert resolved == 2
    assert repository.list_unresolved() == []


def test_top_orders_by_attempt_count() -> None:
    clock = FakeClock()
    tracker = _tracker(clock=clock)
    for _ in range(3):
        tracker.record(Source.GSC, "/frequent", IdentifierType.PATH, SearchMetrics())
        clock.advance(minutes=1)
    tracker.record(Source.GSC, "/rare", IdentifierType.PATH, SearchMetrics())

    top = tracker.top(limit=1)

    assert [row.identifier for row in top] == ["/frequent"]
    assert top[0].attempt_count == 3
