"""Ordered match strategies.

Each strategy is a pure function ``(record, context) -> MatchResult | None`` that only reads
the shared :class:`MatchContext`. :func:`first_success` composes them so that the first
strategy returning a result wins.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from taxometrics.domain.model import IdentifierType, MatchStrategy

from .confidence import score_match
from .normalize import NormalizedUrl, canonical_gtin, extract_product_tokens, parse_url
from .results import (
    FuzzyMatchDetails,
    HierarchyMatchDetails,
    KeyMatchDetails,
    ManualMatchDetails,
    MatchResult,
)
from .similarity import best_similar

if TYPE_CHECKING:
    from collections.abc import Sequence

    from taxometrics.domain.model import EntityRef, ExternalRecord

    from .index import CatalogIndex
    from .manual import ManualMappingIndex

_LOCATION_TYPES = frozenset({IdentifierType.URL, IdentifierType.PATH})


@dataclass(frozen=True, slots=True)
class MatchContext:
    """Everything a strategy may consult; immutable for the lifetime of one run."""

    index: CatalogIndex
    manual: ManualMappingIndex


type Strategy = Callable[[ExternalRecord, MatchContext], MatchResult | None]


def _location(record: ExternalRecord) -> NormalizedUrl | None:
    if record.identifier_type not in _LOCATION_TYPES:
        return None
    return parse_url(record.identifier, assume_path=record.identifier_type is IdentifierType.PATH)


def _keyed(target: EntityRef, strategy: MatchStrategy, key: str) -> MatchResult:
    return MatchResult(
        target=target,
        confidence=score_match(strategy),
        strategy=strategy,
        details=KeyMatchDetails(key),
    )


def manual_mapping_strategy(record: ExternalRecord, context: MatchContext) -> MatchResult | None:
    entry = context.manual.lookup(record)
    if entry is None:
        return None
    return MatchResult(
        target=entry.target,
        confidence=score_match(MatchStrategy.MANUAL),
        strategy=MatchStrategy.MANUAL,
        details=ManualMatchDetails(entry.mapping_id, entry.overridden),
    )


def exact_identifier_strategy(record: ExternalRecord, context: MatchContext) -> MatchResult | None:
    if record.identifier_type is IdentifierType.GTIN:
        gtin = canonical_gtin(record.identifier)
        if gtin is None:
            return None
        target = context.index.gtins.get(gtin)
        if target is None:
            return None
        return _keyed(target, MatchStrategy.GTIN_EXACT, gtin)

    location = _location(record)
    if location is None:
        return None
    target = context.index.urls.get(location.key)
    if target is None:
        return None
    return _keyed(target, MatchStrategy.EXACT_URL, location.key)


def path_strategy(record: ExternalRecord, context: MatchContext) -> MatchResult | None:
    location = _location(record)
    if location is None:
        return None
    target = context.index.paths.get(location.path)
    if target is None:
        return None
    return _keyed(target, MatchStrategy.PATH_MATCH, location.path)


def embedded_product_id_strategy(
    record: ExternalRecord,
    context: MatchContext,
) -> MatchResult | None:
    if record.identifier_type in _LOCATION_TYPES:
        tokens = extract_product_tokens(record.identifier)
    else:
        tokens = (record.identifier.strip().lower(),)

    for token in tokens:
        target = context.index.tokens.get(token)
        if target is not None:
            return _keyed(target, MatchStrategy.PRODUCT_ID, token)
    return None


def category_hierarchy_strategy(
    record: ExternalRecord,
    context: MatchContext,
) -> MatchResult | None:
    """Attach to the node whose path is the longest proper prefix of the record's path."""

    location = _location(record)
    if location is None:
        return None
    segments = location.segments
    for size in range(len(segments) - 1, 0, -1):
        prefix = segments[:size]
        target = context.index.node_paths.get(prefix)
        if target is not None:
            return MatchResult(
                target=target,
                confidence=score_match(MatchStrategy.CATEGORY_MATCH),
                strategy=MatchStrategy.CATEGORY_MATCH,
                details=HierarchyMatchDetails(prefix, segments[size:]),
            )
    return None


def fuzzy_strategy(record: ExternalRecord, context: MatchContext) -> MatchResult | None:
    location = _location(record)
    if location is None or location.path == "/":
        return None
    hit = best_similar(location.path, context.index.fuzzy_choices)
    if hit is None:
        return None
    return MatchResult(
        target=context.index.fuzzy_targets[hit.index],
        confidence=score_match(MatchStrategy.FUZZY_MATCH, hit.score),
        strategy=MatchStrategy.FUZZY_MATCH,
        details=FuzzyMatchDetails(hit.choice, hit.score),
    )


DEFAULT_STRATEGIES: tuple[Strategy, ...] = (
    manual_mapping_strategy,
    exact_identifier_strategy,
    path_strategy,
    embedded_product_id_strategy,
    category_hierarchy_strategy,
    fuzzy_strategy,
)


def first_success(strategies: Sequence[Strategy]) -> Strategy:
    ordered = tuple(strategies)

    def combined(record: ExternalRecord, context: MatchContext) -> MatchResult | None:
        for strategy in ordered:
            result = strategy(record, context)
            if result is not None:
                return result
        return None

    return combined
