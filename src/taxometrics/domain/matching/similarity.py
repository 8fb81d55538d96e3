"""String similarity used by the fuzzy fallback.

Similarity is the normalized Levenshtein similarity of two normalized paths:
``1 - distance / max(len(a), len(b))``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from rapidfuzz import process
from rapidfuzz.distance import Levenshtein

from .confidence import CONFIDENCE_FLOOR

if TYPE_CHECKING:
    from collections.abc import Sequence


@dataclass(frozen=True, slots=True)
class SimilarityHit:
    choice: str
    index: int
    score: float


def path_similarity(left: str, right: str) -> float:
    return float(Levenshtein.normalized_similarity(left, right))


def best_similar(
    query: str,
    choices: Sequence[str],
    *,
    threshold: float = CONFIDENCE_FLOOR,
) -> SimilarityHit | None:
    """Return the most similar choice scoring at least ``threshold``; first wins on ties."""

    if not query or not choices:
        return None
    found = process.extractOne(
        query,
        choices,
        scorer=Levenshtein.normalized_similarity,
        score_cutoff=threshold,
    )
    if found is None:
        return None
    choice, score, index = found
    return SimilarityHit(choice=choice, index=int(index), score=float(score))
