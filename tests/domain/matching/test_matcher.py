from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import pytest

from taxometrics.domain.matching import (
    CONFIDENCE_FLOOR,
    DEFAULT_STRATEGIES,
    FuzzyMatchDetails,
    HierarchyMatchDetails,
    ManualMappingIndex,
    ManualMatchDetails,
    MatchContext,
    Matcher,
    MatchResult,
    best_similar,
    build_catalog_index,
    confidence_level,
    first_success,
    meets_threshold,
    path_similarity,
    score_match,
)
from taxometrics.domain.model import (
    CatalogSnapshot,
    ConfidenceLevel,
    EntityRef,
    EntityType,
    IdentifierType,
    ManualMapping,
    MatchStrategy,
)
from tests.helpers.catalog import (
    analytics_record,
    make_node,
    make_product,
    make_snapshot,
    market_record,
    outerwear_catalog,
    search_record,
)

BOOTS = EntityRef(EntityType.NODE, "winter-boots")
PARKA = EntityRef(EntityType.PRODUCT, "parka-1")


def _matcher(
    snapshot: CatalogSnapshot | None = None,
    mappings: list[ManualMapping] | None = None,
) -> Matcher:
    index = build_catalog_index(snapshot or outerwear_catalog())
    manual = ManualMappingIndex.build(mappings or [])
    return Matcher(MatchContext(index, manual))


def _mapping(
    identifier: str,
    target: EntityRef,
    *,
    activated_at: datetime | None = None,
    identifier_type: IdentifierType | None = None,
) -> ManualMapping:
    moment = activated_at or datetime(2024, 1, 1, tzinfo=UTC)
    return ManualMapping(
        source_identifier=identifier,
        identifier_type=identifier_type,
        entity_type=target.entity_type,
        entity_id=target.entity_id,
        created_by="analyst",
        created_at=moment,
        activated_at=moment,
    )


@pytest.mark.parametrize(
    "url",
    [
        "https://shop.example.com/outerwear/winter-boots/",
        "http://www.shop.example.com/outerwear/winter-boots",
    ],
)
def test_url_variants_resolve_to_the_same_node(url: str) -> None:
    result = _matcher().match(search_record(url))

    assert result is not None
    assert result.target == BOOTS
    assert result.strategy is MatchStrategy.EXACT_URL
    assert result.confidence == 1.0


@pytest.mark.parametrize("gtin", ["0012345678905", "0012-3456-78905"])
def test_gtin_variants_resolve_to_the_same_product(gtin: str) -> None:
    result = _matcher().match(market_record(gtin, price_median=199.0))

    assert result is not None
    assert result.target == PARKA
    assert result.strategy is MatchStrategy.GTIN_EXACT
    assert result.confidence == 1.0


def test_path_identifier_matches_by_path() -> None:
    result = _matcher().match(analytics_record("/outerwear/winter-boots/", sessions=10))

    assert result is not None
    assert result.target == BOOTS
    assert result.strategy is MatchStrategy.PATH_MATCH
    assert result.confidence == pytest.approx(0.8)


def test_url_on_another_host_falls_back_to_path() -> None:
    result = _matcher().match(search_record("https://m.shop.example.com/outerwear/winter-boots"))

    assert result is not None
    assert result.target == BOOTS
    assert result.strategy is MatchStrategy.PATH_MATCH


def test_embedded_product_id_is_found_in_tracking_urls() -> None:
    result = _matcher().match(search_record("https://partner.example.net/go?sku=PK-1"))

    assert result is not None
    assert result.target == PARKA
    assert result.strategy is MatchStrategy.PRODUCT_ID
    assert result.confidence == pytest.approx(0.9)


def test_sku_identifier_is_looked_up_as_token() -> None:
    result = _matcher().match(
        market_record("pk-1", price_median=10.0, identifier_type=IdentifierType.SKU)
    )

    assert result is not None
    assert result.target == PARKA
    assert result.strategy is MatchStrategy.PRODUCT_ID


def test_category_hierarchy_attaches_to_deepest_known_prefix() -> None:
    result = _matcher().match(
        analytics_record("/outerwear/winter-boots/clearance/size-44", sessions=3)
    )

    assert result is not None
    assert result.target == BOOTS
    assert result.strategy is MatchStrategy.CATEGORY_MATCH
    assert result.confidence == pytest.approx(0.7)
    assert isinstance(result.details, HierarchyMatchDetails)
    assert result.details.prefix == ("outerwear", "winter-boots")
    assert result.details.unmatched_segments == ("clearance", "size-44")


def test_fuzzy_strategy_catches_typos() -> None:
    result = _matcher().match(analytics_record("/outerwaer/winter-boots", sessions=1))

    assert result is not None
    assert result.target == BOOTS
    assert result.strategy is MatchStrategy.FUZZY_MATCH
    assert CONFIDENCE_FLOOR <= result.confidence < 1.0
    assert isinstance(result.details, FuzzyMatchDetails)
    assert result.details.candidate == "/outerwear/winter-boots"


def test_unrelated_identifier_does_not_match() -> None:
    assert _matcher().match(analytics_record("/blog/post-123", sessions=5)) is None


def test_manual_mapping_overrides_algorithmic_match() -> None:
    url = "https://shop.example.com/outerwear/winter-boots"
    mapping = _mapping(url, PARKA)

    result = _matcher(mappings=[mapping]).match(search_record(url))

    assert result is not None
    assert result.target == PARKA
    assert result.strategy is MatchStrategy.MANUAL
    assert result.confidence == 1.0
    assert isinstance(result.details, ManualMatchDetails)
    assert result.details.mapping_id == mapping.id


def test_typed_manual_mapping_matches_normalized_variants() -> None:
    mapping = _mapping(
        "https://shop.example.com/landing/Spring",
        BOOTS,
        identifier_type=IdentifierType.URL,
    )

    result = _matcher(mappings=[mapping]).match(
        search_record("http://www.shop.example.com/landing/spring/")
    )

    assert result is not None
    assert result.strategy is MatchStrategy.MANUAL
    assert result.target == BOOTS


def test_inactive_manual_mapping_is_ignored() -> None:
    mapping = _mapping("/blog/post-123", BOOTS)
    mapping.deactivate()

    assert _matcher(mappings=[mapping]).match(analytics_record("/blog/post-123")) is None


def test_conflicting_manual_mappings_prefer_newest_activation() -> None:
    older = _mapping("/blog/post-123", BOOTS, activated_at=datetime(2024, 1, 1, tzinfo=UTC))
    newer = _mapping(
        "/blog/post-123",
        PARKA,
        activated_at=datetime(2024, 1, 1, tzinfo=UTC) + timedelta(days=3),
    )
    manual = ManualMappingIndex.build([older, newer])

    matcher = Matcher(MatchContext(build_catalog_index(outerwear_catalog()), manual))
    result = matcher.match(analytics_record("/blog/post-123"))

    assert result is not None
    assert result.target == PARKA
    assert isinstance(result.details, ManualMatchDetails)
    assert result.details.conflicted
    assert result.details.overridden == (older.id,)
    assert len(manual.conflicts) == 1
    assert manual.conflicts[0].winner == newer.id


def test_match_result_rejects_confidence_below_floor() -> None:
    with pytest.raises(ValueError, match="outside"):
        MatchResult(target=BOOTS, confidence=0.59, strategy=MatchStrategy.FUZZY_MATCH)


def test_no_result_is_ever_below_floor() -> None:
    snapshot = make_snapshot(
        nodes=[make_node("abc", path="/abcdefghij")],
        products=[make_product("p", "abc", url="https://example.com/item/p")],
    )
    matcher = _matcher(snapshot)
    identifiers = ["/abcdefghij", "/abcdefgxyz", "/abcdxxxxxx", "/zzzzzzzzzz", "/item/p"]

    for identifier in identifiers:
        result = matcher.match(analytics_record(identifier))
        if result is not None:
            assert meets_threshold(result.confidence)


def test_match_all_keeps_input_order_across_workers() -> None:
    matcher = _matcher()
    records = [
        search_record("https://shop.example.com/outerwear/winter-boots"),
        search_record("https://shop.example.com/unknown/thing-that-is-long"),
        search_record("https://shop.example.com/product/parka-1"),
    ] * 20

    outcomes = matcher.match_all(records, workers=4)

    assert [outcome.record for outcome in outcomes] == records
    assert [outcome.matched for outcome in outcomes[:3]] == [True, False, True]
    assert all(outcome.elapsed_ms >= 0 for outcome in outcomes)


def test_first_success_stops_at_first_result() -> None:
    calls: list[str] = []

    def never(record, context):  # noqa: ANN001, ANN202
        calls.append("never")

    def always(record, context):  # noqa: ANN001, ANN202
        calls.append("always")
        return MatchResult(target=BOOTS, confidence=0.7, strategy=MatchStrategy.CATEGORY_MATCH)

    def unreachable(record, context):  # noqa: ANN001, ANN202
        calls.append("unreachable")

    combined = first_success([never, always, unreachable])
    context = MatchContext(build_catalog_index(outerwear_catalog()), ManualMappingIndex.build([]))

    result = combined(analytics_record("/x"), context)

    assert result is not None
    assert calls == ["never", "always"]


def test_default_strategies_start_with_manual_mapping() -> None:
    assert DEFAULT_STRATEGIES[0].__name__ == "manual_mapping_strategy"
    assert DEFAULT_STRATEGIES[-1].__name__ == "fuzzy_strategy"


def test_score_match_fixed_and_fuzzy() -> None:
    assert score_match(MatchStrategy.EXACT_URL) == 1.0
    assert score_match(MatchStrategy.PATH_MATCH) == pytest.approx(0.8)
    assert score_match(MatchStrategy.FUZZY_MATCH, 0.73) == pytest.approx(0.73)
    assert score_match(MatchStrategy.FUZZY_MATCH, 1.4) == 1.0
    with pytest.raises(ValueError, match="raw similarity"):
        score_match(MatchStrategy.FUZZY_MATCH)


def test_confidence_levels() -> None:
    assert confidence_level(1.0) is ConfidenceLevel.HIGH
    assert confidence_level(0.9) is ConfidenceLevel.HIGH
    assert confidence_level(0.8) is ConfidenceLevel.MEDIUM
    assert confidence_level(0.65) is ConfidenceLevel.LOW


def test_similarity_is_normalized_levenshtein() -> None:
    assert path_similarity("/abcd", "/abcd") == 1.0
    assert path_similarity("/abcd", "/abce") == pytest.approx(0.8)
    hit = best_similar("/abce", ["/zzzz", "/abcd"])
    assert hit is not None
    assert hit.index == 1
    assert best_similar("/abce", ["/zzzz"]) is None


def test_manual_mapping_ids_are_unique() -> None:
    assert _mapping("a", BOOTS).id != _mapping("a", BOOTS).id
    assert isinstance(_mapping("a", BOOTS).id, uuid.UUID)
