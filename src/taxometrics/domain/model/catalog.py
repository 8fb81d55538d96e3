"""Read-only catalog snapshot handed to a sync run by the catalog provider."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

from .enums import EntityType


@dataclass(frozen=True, slots=True, order=True)
class EntityRef:
    """Typed reference to a catalog node or product."""

    entity_type: EntityType
    entity_id: str

    def __str__(self) -> str:
        return f"{self.entity_type}:{self.entity_id}"


@dataclass(frozen=True, slots=True, kw_only=True)
class CatalogNode:
    """Category node. ``parent_id`` may point at a node missing from the snapshot."""

    id: str
    parent_id: str | None = None
    url: str | None = None
    path: str | None = None
    title: str | None = None

    @property
    def ref(self) -> EntityRef:
        return EntityRef(EntityType.NODE, self.id)


@dataclass(frozen=True, slots=True, kw_only=True)
class CatalogProduct:
    id: str
    url: str | None = None
    gtin: str | None = None
    sku: str | None = None
    category_id: str | None = None
    title: str | None = None

    @property
    def ref(self) -> EntityRef:
        return EntityRef(EntityType.PRODUCT, self.id)


@dataclass(frozen=True, slots=True, kw_only=True)
class CatalogSnapshot:
    nodes: tuple[CatalogNode, ...] = ()
    products: tuple[CatalogProduct, ...] = ()
    taken_at: datetime = field(default_factory=lambda: datetime.now(UTC))
