"""Match results and the strategy-specific details they carry."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

from .confidence import CONFIDENCE_FLOOR

if TYPE_CHECKING:
    import uuid

    from taxometrics.domain.model import EntityRef, ExternalRecord, MatchStrategy


@dataclass(frozen=True, slots=True)
class ManualMatchDetails:
    mapping_id: uuid.UUID
    overridden: tuple[uuid.UUID, ...] = ()
    kind: Literal["manual"] = field(default="manual", init=False)

    @property
    def conflicted(self) -> bool:
        return bool(self.overridden)


@dataclass(frozen=True, slots=True)
class KeyMatchDetails:
    """The normalized key (URL, path, GTIN or product token) that matched."""

    key: str
    kind: Literal["key"] = field(default="key", init=False)


@dataclass(frozen=True, slots=True)
class HierarchyMatchDetails:
    prefix: tuple[str, ...]
    unmatched_segments: tuple[str, ...]
    kind: Literal["hierarchy"] = field(default="hierarchy", init=False)


@dataclass(frozen=True, slots=True)
class FuzzyMatchDetails:
    candidate: str
    similarity: float
    kind: Literal["fuzzy"] = field(default="fuzzy", init=False)


type MatchDetails = ManualMatchDetails | KeyMatchDetails | HierarchyMatchDetails | FuzzyMatchDetails


@dataclass(frozen=True, slots=True, kw_only=True)
class MatchResult:
    target: EntityRef
    confidence: float
    strategy: MatchStrategy
    details: MatchDetails | None = None

    def __post_init__(self) -> None:
        if not CONFIDENCE_FLOOR <= self.confidence <= 1.0:
            raise ValueError(
                f"Match confidence {self.confidence} outside [{CONFIDENCE_FLOOR}, 1.0]"
            )


@dataclass(frozen=True, slots=True)
class MatchOutcome:
    """A record together with what the matcher made of it."""

    record: ExternalRecord
    result: MatchResult | None
    elapsed_ms: float = 0.0

    @property
    def matched(self) -> bool:
        return self.result is not None
