"""Confidence scoring for match strategies."""

from __future__ import annotations

from types import MappingProxyType
from typing import Final

from taxometrics.domain.model import ConfidenceLevel, MatchStrategy

CONFIDENCE_FLOOR: Final[float] = 0.6
HIGH_CONFIDENCE: Final[float] = 0.9
MEDIUM_CONFIDENCE: Final[float] = 0.7

STRATEGY_CONFIDENCE = MappingProxyType(
    {
        MatchStrategy.MANUAL: 1.0,
        MatchStrategy.EXACT_URL: 1.0,
        MatchStrategy.GTIN_EXACT: 1.0,
        MatchStrategy.PATH_MATCH: 0.8,
        MatchStrategy.PRODUCT_ID: 0.9,
        MatchStrategy.CATEGORY_MATCH: 0.7,
    }
)


def score_match(strategy: MatchStrategy, raw_score: float | None = None) -> float:
    """Map a strategy (and its raw score, for fuzzy matches) to a confidence in [0, 1].

    Fixed-confidence strategies ignore ``raw_score``; the fuzzy strategy passes its
    similarity through unchanged apart from clamping.
    """

    fixed = STRATEGY_CONFIDENCE.get(strategy)
    if fixed is not None:
        return fixed
    if raw_score is None:
        raise ValueError(f"Strategy {strategy} requires a raw similarity score")
    return min(max(raw_score, 0.0), 1.0)


def meets_threshold(confidence: float, floor: float = CONFIDENCE_FLOOR) -> bool:
    return confidence >= floor


def confidence_level(confidence: float) -> ConfidenceLevel:
    if confidence >= HIGH_CONFIDENCE:
        return ConfidenceLevel.HIGH
    if confidence >= MEDIUM_CONFIDENCE:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW
