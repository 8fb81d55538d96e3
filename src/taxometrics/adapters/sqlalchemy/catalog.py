"""SQL-backed catalog snapshot provider.

Catalog rows are plain frozen values, so they are read and written through Core tables
rather than mapped classes.
"""

from __future__ import annotations

from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from sqlalchemy import delete, insert, select

from taxometrics.adapters.sqlalchemy.mappings import catalog_node_table, catalog_product_table
from taxometrics.domain.model import CatalogNode, CatalogProduct, CatalogSnapshot

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.orm import Session

log = getLogger(__name__)


class SqlAlchemyCatalogRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def snapshot(self) -> CatalogSnapshot:
        node_rows = self.session.execute(
            select(catalog_node_table).order_by(catalog_node_table.c.id)
        ).mappings()
        nodes = tuple(CatalogNode(**dict(row)) for row in node_rows)
        product_rows = self.session.execute(
            select(catalog_product_table).order_by(catalog_product_table.c.id)
        ).mappings()
        products = tuple(CatalogProduct(**dict(row)) for row in product_rows)
        return CatalogSnapshot(nodes=nodes, products=products, taken_at=datetime.now(UTC))

    def replace(self, snapshot: CatalogSnapshot) -> None:
        """Swap the stored catalog for ``snapshot`` inside the current transaction."""

        self.session.execute(delete(catalog_product_table))
        self.session.execute(delete(catalog_node_table))
        if snapshot.nodes:
            self.session.execute(
                insert(catalog_node_table),
                [
                    {
                        "id": node.id,
                        "parent_id": node.parent_id,
                        "url": node.url,
                        "path": node.path,
                        "title": node.title,
                    }
                    for node in snapshot.nodes
                ],
            )
        if snapshot.products:
            self.session.execute(
                insert(catalog_product_table),
                [
                    {
                        "id": product.id,
                        "url": product.url,
                        "gtin": product.gtin,
                        "sku": product.sku,
                        "category_id": product.category_id,
                        "title": product.title,
                    }
                    for product in snapshot.products
                ],
            )
        log.info(
            "Stored catalog with %s nodes and %s products",
            len(snapshot.nodes),
            len(snapshot.products),
        )


class SqlAlchemyCatalogProvider:
    """Reads a fresh snapshot from the catalog tables on every call."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self.session_factory = session_factory

    def __call__(self) -> CatalogSnapshot:
        with self.session_factory() as session:
            snapshot = SqlAlchemyCatalogRepository(session).snapshot()
        log.info(
            "Loaded catalog snapshot: %s nodes, %s products",
            len(snapshot.nodes),
            len(snapshot.products),
        )
        return snapshot


if TYPE_CHECKING:
    from sqlalchemy.orm import sessionmaker

    from taxometrics.domain.ports import CatalogProvider

    _provider_check: CatalogProvider = SqlAlchemyCatalogProvider(sessionmaker())
