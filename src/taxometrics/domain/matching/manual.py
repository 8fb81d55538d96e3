"""Read-only view of the active manual mappings for one run."""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from types import MappingProxyType
from typing import TYPE_CHECKING

from .normalize import identifier_key

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable, Mapping
    from datetime import datetime

    from taxometrics.domain.model import EntityRef, ExternalRecord, ManualMapping

log = getLogger(__name__)

MAPPING_CONFLICT_REASON = "mapping_conflict"


@dataclass(frozen=True, slots=True)
class MappingEntry:
    mapping_id: uuid.UUID
    target: EntityRef
    activated_at: datetime
    overridden: tuple[uuid.UUID, ...] = ()


@dataclass(frozen=True, slots=True)
class MappingConflict:
    """Several active mappings claim the same identifier; the newest activation won."""

    key: str
    winner: uuid.UUID
    target: EntityRef
    overridden: tuple[uuid.UUID, ...]
    reason: str = MAPPING_CONFLICT_REASON


class ManualMappingIndex:
    """Lookup of active mappings by raw identifier and by normalized identifier key."""

    __slots__ = ("_conflicts", "_entries")

    def __init__(
        self,
        entries: Mapping[str, MappingEntry] | None = None,
        conflicts: Iterable[MappingConflict] = (),
    ) -> None:
        self._entries: Mapping[str, MappingEntry] = MappingProxyType(dict(entries or {}))
        self._conflicts = tuple(conflicts)

    @classmethod
    def build(cls, mappings: Iterable[ManualMapping]) -> ManualMappingIndex:
        candidates: dict[str, list[ManualMapping]] = {}
        for mapping in mappings:
            if not mapping.active:
                continue
            raw = mapping.source_identifier.strip()
            candidates.setdefault(f"raw:{raw}", []).append(mapping)
            typed = identifier_key(raw, mapping.identifier_type)
            if typed is not None:
                candidates.setdefault(typed, []).append(mapping)

        entries: dict[str, MappingEntry] = {}
        conflicts: dict[tuple[uuid.UUID, tuple[uuid.UUID, ...]], MappingConflict] = {}
        for key, claimants in candidates.items():
            unique = {mapping.id: mapping for mapping in claimants}
            ordered = sorted(
                unique.values(),
                key=lambda m: (m.activated_at, m.created_at, str(m.id)),
                reverse=True,
            )
            winner = ordered[0]
            overridden = tuple(mapping.id for mapping in ordered[1:])
            entries[key] = MappingEntry(
                mapping_id=winner.id,
                target=winner.target,
                activated_at=winner.activated_at,
                overridden=overridden,
            )
            if overridden:
                conflict_key = (winner.id, tuple(sorted(overridden, key=str)))
                if conflict_key not in conflicts:
                    conflicts[conflict_key] = MappingConflict(
                        key=key,
                        winner=winner.id,
                        target=winner.target,
                        overridden=overridden,
                    )
                    log.warning(
                        "Manual mapping conflict on %s: %s wins over %s",
                        key,
                        winner.id,
                        ", ".join(str(mapping_id) for mapping_id in overridden),
                    )

        return cls(entries, conflicts.values())

    @property
    def conflicts(self) -> tuple[MappingConflict, ...]:
        return self._conflicts

    def __len__(self) -> int:
        return len(self._entries)

    def lookup(self, record: ExternalRecord) -> MappingEntry | None:
        entry = self._entries.get(f"raw:{record.identifier.strip()}")
        if entry is not None:
            return entry
        typed = identifier_key(record.identifier, record.identifier_type)
        if typed is None:
            return None
        return self._entries.get(typed)
