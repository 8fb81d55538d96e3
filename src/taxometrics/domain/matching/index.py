"""Catalog index builder.

Responsibilities of this stage:
- turn one catalog snapshot into read-only lookup tables (URL, path, GTIN, product token)
- validate the parent links and expose the resulting :class:`CatalogTree`

Everything here is built once per run by a single caller and then shared read-only by
all matching workers. Products are inserted before nodes, so when a product and a node
normalize to the same URL or path the product wins.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from logging import getLogger
from types import MappingProxyType
from typing import TYPE_CHECKING

from .normalize import canonical_gtin, parse_url
from .tree import CatalogTree, TreeValidationIssue, build_tree

if TYPE_CHECKING:
    from collections.abc import Mapping

    from taxometrics.domain.model import CatalogSnapshot, EntityRef

log = getLogger(__name__)


@dataclass(frozen=True, slots=True, kw_only=True)
class CatalogIndex:
    urls: Mapping[str, EntityRef]
    paths: Mapping[str, EntityRef]
    node_paths: Mapping[tuple[str, ...], EntityRef]
    gtins: Mapping[str, EntityRef]
    tokens: Mapping[str, EntityRef]
    fuzzy_choices: tuple[str, ...]
    fuzzy_targets: tuple[EntityRef, ...]
    tree: CatalogTree

    @property
    def issues(self) -> tuple[TreeValidationIssue, ...]:
        return self.tree.issues


def build_catalog_index(snapshot: CatalogSnapshot) -> CatalogIndex:
    started = time.perf_counter()

    urls: dict[str, EntityRef] = {}
    paths: dict[str, EntityRef] = {}
    node_paths: dict[tuple[str, ...], EntityRef] = {}
    gtins: dict[str, EntityRef] = {}
    tokens: dict[str, EntityRef] = {}

    for product in snapshot.products:
        ref = product.ref
        if product.url:
            parsed = parse_url(product.url)
            urls.setdefault(parsed.key, ref)
            paths.setdefault(parsed.path, ref)
            if parsed.segments:
                tokens.setdefault(parsed.segments[-1], ref)
        if product.gtin:
            gtin = canonical_gtin(product.gtin)
            if gtin is None:
                log.debug("Product %s has an unusable GTIN %r", product.id, product.gtin)
            else:
                gtins.setdefault(gtin, ref)
        tokens.setdefault(product.id.strip().lower(), ref)
        if product.sku:
            tokens.setdefault(product.sku.strip().lower(), ref)

    for node in snapshot.nodes:
        ref = node.ref
        if node.url:
            urls.setdefault(parse_url(node.url).key, ref)
        location = node.path or node.url
        if location:
            parsed = parse_url(location, assume_path=node.path is not None)
            paths.setdefault(parsed.path, ref)
            if parsed.segments:
                node_paths.setdefault(parsed.segments, ref)

    fuzzy = [(path, ref) for path, ref in paths.items() if path != "/"]
    tree = build_tree(snapshot.nodes, snapshot.products)

    index = CatalogIndex(
        urls=MappingProxyType(urls),
        paths=MappingProxyType(paths),
        node_paths=MappingProxyType(node_paths),
        gtins=MappingProxyType(gtins),
        tokens=MappingProxyType(tokens),
        fuzzy_choices=tuple(path for path, _ in fuzzy),
        fuzzy_targets=tuple(ref for _, ref in fuzzy),
        tree=tree,
    )
    log.info(
        "Built catalog index: nodes=%s, products=%s, urls=%s, gtins=%s, issues=%s in %.1fms",
        len(snapshot.nodes),
        len(snapshot.products),
        len(urls),
        len(gtins),
        len(tree.issues),
        (time.perf_counter() - started) * 1000,
    )
    return index
