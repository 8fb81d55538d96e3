from __future__ import annotations

import pytest

from taxometrics.domain.aggregation import affected_scope, aggregate, combine_attributions
from taxometrics.domain.cancellation import CancellationToken, RunCancelledError
from taxometrics.domain.matching import build_tree
from taxometrics.domain.model import (
    AnalyticsMetrics,
    AttributedMetric,
    EntityRef,
    EntityType,
    IdentifierType,
    IntegratedMetric,
    MarketMetrics,
    MatchStrategy,
    SearchMetrics,
    Source,
)
from tests.helpers.catalog import DAY, make_node, make_product, outerwear_catalog

OUTERWEAR = EntityRef(EntityType.NODE, "outerwear")
JACKETS = EntityRef(EntityType.NODE, "winter-jackets")
BOOTS = EntityRef(EntityType.NODE, "winter-boots")
PARKA = EntityRef(EntityType.PRODUCT, "parka-1")
GARDEN = EntityRef(EntityType.NODE, "garden")


def _attribution(
    target: EntityRef,
    metrics: SearchMetrics | AnalyticsMetrics | MarketMetrics,
    *,
    identifier: str | None = None,
    confidence: float = 1.0,
) -> AttributedMetric:
    source = {
        SearchMetrics: Source.GSC,
        AnalyticsMetrics: Source.GA4,
        MarketMetrics: Source.MARKET,
    }[type(metrics)]
    return AttributedMetric(
        source=source,
        identifier=identifier or f"/{target.entity_id}",
        metrics_date=DAY,
        identifier_type=IdentifierType.PATH,
        entity_type=target.entity_type,
        entity_id=target.entity_id,
        confidence=confidence,
        strategy=MatchStrategy.PATH_MATCH,
        metrics=metrics,
    )


def _tree():  # noqa: ANN202
    snapshot = outerwear_catalog()
    return build_tree(snapshot.nodes, snapshot.products)


def _rows(*attributions: AttributedMetric) -> dict[EntityRef, IntegratedMetric]:
    return combine_attributions(attributions, DAY)


def test_outerwear_rollup_sums_and_weights_by_impressions() -> None:
    rows = _rows(
        _attribution(JACKETS, SearchMetrics(clicks=100, impressions=1000, position=3.0)),
        _attribution(BOOTS, SearchMetrics(clicks=50, impressions=500, position=6.0)),
    )

    result = aggregate(rows, _tree(), metrics_date=DAY)

    outerwear = result.row_for(OUTERWEAR)
    assert outerwear is not None
    assert outerwear.gsc_clicks == 150
    assert outerwear.gsc_impressions == 1500
    assert outerwear.gsc_position == pytest.approx((3.0 * 1000 + 6.0 * 500) / 1500)
    assert outerwear.is_aggregated
    assert outerwear.child_count == 2

    jackets = result.row_for(JACKETS)
    assert jackets is not None
    assert jackets.child_count == 0
    assert not jackets.is_aggregated


def test_direct_node_metrics_are_added_to_children() -> None:
    rows = _rows(
        _attribution(JACKETS, AnalyticsMetrics(sessions=10, revenue=100.0, transactions=2)),
        _attribution(OUTERWEAR, AnalyticsMetrics(sessions=5, revenue=20.0, transactions=1)),
    )

    result = aggregate(rows, _tree(), metrics_date=DAY)

    outerwear = result.row_for(OUTERWEAR)
    assert outerwear is not None
    assert outerwear.ga4_sessions == 15
    assert outerwear.ga4_revenue == pytest.approx(120.0)
    assert outerwear.ga4_transactions == 3
    assert outerwear.ga4_avg_order_value == pytest.approx(40.0)
    assert outerwear.child_count == 1


def test_products_roll_into_their_category() -> None:
    rows = _rows(_attribution(PARKA, SearchMetrics(clicks=7, impressions=70, position=2.0)))

    result = aggregate(rows, _tree(), metrics_date=DAY)

    jackets = result.row_for(JACKETS)
    outerwear = result.row_for(OUTERWEAR)
    assert jackets is not None
    assert outerwear is not None
    assert jackets.gsc_clicks == 7
    assert jackets.child_count == 1
    assert outerwear.gsc_clicks == 7
    assert result.row_for(BOOTS) is None
    assert result.row_for(GARDEN) is None


def test_sum_invariant_and_weighted_bounds_hold_for_every_node() -> None:
    rows = _rows(
        _attribution(PARKA, SearchMetrics(clicks=3, impressions=40, ctr=0.075, position=1.5)),
        _attribution(JACKETS, SearchMetrics(clicks=10, impressions=300, ctr=0.033, position=4.0)),
        _attribution(BOOTS, SearchMetrics(clicks=20, impressions=900, ctr=0.022, position=9.0)),
        _attribution(
            BOOTS,
            AnalyticsMetrics(sessions=50, revenue=500.0, transactions=5, conversion_rate=0.1),
        ),
        _attribution(
            JACKETS,
            AnalyticsMetrics(sessions=25, revenue=90.0, transactions=1, conversion_rate=0.04),
        ),
    )
    tree = _tree()

    result = aggregate(rows, tree, metrics_date=DAY)

    by_ref = {row.ref: row for row in result.rows}
    node_ids = [node_id for level in tree.levels() for node_id in level]
    for node_id in node_ids:
        ref = EntityRef(EntityType.NODE, node_id)
        row = by_ref.get(ref)
        if row is None:
            continue
        children = [EntityRef(EntityType.NODE, child) for child in tree.child_ids(node_id)]
        children += [EntityRef(EntityType.PRODUCT, item) for item in tree.products_of(node_id)]
        child_rows = [by_ref[child] for child in children if child in by_ref]
        direct = rows.get(ref)
        contributors = [*child_rows, *([direct] if direct is not None else [])]

        assert row.gsc_clicks == sum(item.gsc_clicks or 0 for item in contributors)
        assert row.gsc_impressions == sum(item.gsc_impressions or 0 for item in contributors)
        assert row.ga4_sessions == sum(item.ga4_sessions or 0 for item in contributors)
        positions = [item.gsc_position for item in contributors if item.gsc_position is not None]
        if row.gsc_position is not None:
            assert min(positions) <= row.gsc_position <= max(positions)
        rates = [
            item.ga4_conversion_rate
            for item in contributors
            if item.ga4_conversion_rate is not None
        ]
        if row.ga4_conversion_rate is not None:
            assert min(rates) <= row.ga4_conversion_rate <= max(rates)


def test_aggregation_is_idempotent() -> None:
    rows = _rows(
        _attribution(JACKETS, SearchMetrics(clicks=100, impressions=1000, position=3.0)),
        _attribution(BOOTS, SearchMetrics(clicks=50, impressions=500, position=6.0)),
        _attribution(PARKA, AnalyticsMetrics(sessions=4, revenue=80.0, transactions=1)),
    )
    tree = _tree()

    first = aggregate(rows, tree, metrics_date=DAY)
    second = aggregate(rows, tree, metrics_date=DAY)

    assert [row.values() for row in first.rows] == [row.values() for row in second.rows]


def test_confidence_per_source_is_the_weakest_contributor() -> None:
    rows = _rows(
        _attribution(JACKETS, SearchMetrics(clicks=1, impressions=10), confidence=1.0),
        _attribution(BOOTS, SearchMetrics(clicks=1, impressions=10), confidence=0.7),
        _attribution(BOOTS, AnalyticsMetrics(sessions=3), confidence=0.9),
    )

    outerwear = aggregate(rows, _tree(), metrics_date=DAY).row_for(OUTERWEAR)

    assert outerwear is not None
    assert outerwear.gsc_match_confidence == pytest.approx(0.7)
    assert outerwear.ga4_match_confidence == pytest.approx(0.9)
    assert outerwear.market_match_confidence is None


def test_market_prices_stay_on_matched_entity() -> None:
    rows = _rows(
        _attribution(PARKA, MarketMetrics(price_median=199.0, competitor_count=4)),
        _attribution(
            PARKA,
            MarketMetrics(price_median=150.0, competitor_count=2),
            identifier="sku-pk-1",
            confidence=0.9,
        ),
    )

    result = aggregate(rows, _tree(), metrics_date=DAY)

    parka = result.row_for(PARKA)
    assert parka is not None
    assert parka.market_price_median == pytest.approx(199.0)
    assert parka.market_competitor_count == 4
    assert result.row_for(JACKETS) is None


def test_nodes_without_data_produce_no_rows() -> None:
    result = aggregate({}, _tree(), metrics_date=DAY)

    assert result.rows == ()


def test_cycle_members_are_excluded_and_rest_aggregates() -> None:
    nodes = [
        make_node("root"),
        make_node("leaf", "root"),
        make_node("a", "b"),
        make_node("b", "a"),
    ]
    tree = build_tree(nodes, [make_product("thing", "a")])
    leaf = EntityRef(EntityType.NODE, "leaf")
    node_a = EntityRef(EntityType.NODE, "a")
    thing = EntityRef(EntityType.PRODUCT, "thing")
    rows = _rows(
        _attribution(leaf, SearchMetrics(clicks=5, impressions=50)),
        _attribution(node_a, SearchMetrics(clicks=9, impressions=90)),
        _attribution(thing, SearchMetrics(clicks=4, impressions=40)),
    )

    result = aggregate(rows, tree, metrics_date=DAY)

    assert result.excluded == (node_a, thing)
    assert result.row_for(node_a) is None
    assert result.row_for(thing) is None
    assert not tree.has_product("thing")
    root = result.row_for(EntityRef(EntityType.NODE, "root"))
    assert root is not None
    assert root.gsc_clicks == 5


def test_cancellation_between_levels_raises() -> None:
    rows = _rows(_attribution(JACKETS, SearchMetrics(clicks=1, impressions=1)))
    token = CancellationToken()
    token.cancel("operator request")

    with pytest.raises(RunCancelledError, match="operator request"):
        aggregate(rows, _tree(), metrics_date=DAY, cancel=token)


def test_affected_scope_covers_whole_root_subtree() -> None:
    scope = affected_scope(_tree(), [PARKA])

    assert scope == {OUTERWEAR, JACKETS, BOOTS, PARKA}
    assert GARDEN not in scope
