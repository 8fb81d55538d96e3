"""Validated catalog tree stored as an index-addressed arena.

Parent links in a catalog snapshot are not trusted: a node may point at a parent that is
missing from the snapshot, or a chain of parents may loop back on itself. Validation walks
each parent chain once, iteratively, and quarantines every node whose chain ends in a cycle
or an orphaned reference together with everything below it. Only the remaining nodes get a
depth and take part in the rollup.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from types import MappingProxyType
from typing import TYPE_CHECKING

from taxometrics.domain.model import EntityRef, EntityType

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Mapping

    from taxometrics.domain.model import CatalogNode, CatalogProduct

log = getLogger(__name__)

_UNSEEN = 0
_ON_PATH = 1
_DONE = 2


class TreeIssueReason(StrEnum):
    CYCLE = "tree_cycle"
    ORPHANED_PARENT = "orphaned_parent"


@dataclass(frozen=True, slots=True)
class TreeValidationIssue:
    """One malformed structure found in the snapshot.

    ``node_ids`` names the nodes that form the defect (cycle members or the node with the
    dangling parent); ``affected_ids`` additionally includes every descendant that was
    excluded because of it.
    """

    reason: TreeIssueReason
    node_ids: tuple[str, ...]
    affected_ids: tuple[str, ...]

    def describe(self) -> str:
        members = ", ".join(self.node_ids)
        return f"{self.reason}: {members} ({len(self.affected_ids)} node(s) excluded)"


@dataclass(frozen=True, slots=True, kw_only=True)
class CatalogTree:
    node_ids: tuple[str, ...]
    parents: tuple[int | None, ...]
    children: tuple[tuple[int, ...], ...]
    depths: tuple[int | None, ...]
    issues: tuple[TreeValidationIssue, ...] = ()
    products_by_node: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    product_categories: Mapping[str, str | None] = field(
        default_factory=lambda: MappingProxyType({})
    )
    index_by_id: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def quarantined(self) -> frozenset[str]:
        return frozenset(
            node_id for node_id, depth in zip(self.node_ids, self.depths, strict=True)
            if depth is None
        )

    def has_node(self, node_id: str) -> bool:
        """Whether ``node_id`` is a valid (non-quarantined) node."""

        index = self.index_by_id.get(node_id)
        return index is not None and self.depths[index] is not None

    def has_product(self, product_id: str) -> bool:
        """Whether ``product_id`` is known and not filed under a quarantined node."""

        if product_id not in self.product_categories:
            return False
        category = self.product_categories[product_id]
        return category is None or self.has_node(category)

    def contains(self, ref: EntityRef) -> bool:
        if ref.entity_type is EntityType.PRODUCT:
            return self.has_product(ref.entity_id)
        return self.has_node(ref.entity_id)

    def child_ids(self, node_id: str) -> tuple[str, ...]:
        index = self.index_by_id[node_id]
        return tuple(self.node_ids[child] for child in self.children[index])

    def products_of(self, node_id: str) -> tuple[str, ...]:
        return self.products_by_node.get(node_id, ())

    def levels(self) -> list[tuple[str, ...]]:
        """Valid node ids grouped by depth, deepest level first."""

        by_depth: dict[int, list[str]] = {}
        for node_id, depth in zip(self.node_ids, self.depths, strict=True):
            if depth is not None:
                by_depth.setdefault(depth, []).append(node_id)
        return [tuple(sorted(by_depth[depth])) for depth in sorted(by_depth, reverse=True)]

    def root_of(self, ref: EntityRef) -> str | None:
        """Walk a valid entity up to its root node; ``None`` if it never reaches one."""

        if ref.entity_type is EntityType.PRODUCT:
            node_id = self.product_categories.get(ref.entity_id)
            if node_id is None:
                return None
        else:
            node_id = ref.entity_id
        if not self.has_node(node_id):
            return None

        index = self.index_by_id[node_id]
        parent = self.parents[index]
        while parent is not None:
            index = parent
            parent = self.parents[index]
        return self.node_ids[index]

    def subtree(self, node_id: str) -> Iterator[EntityRef]:
        """Yield the node, its valid descendants and their products."""

        if not self.has_node(node_id):
            return
        queue = deque([self.index_by_id[node_id]])
        while queue:
            index = queue.popleft()
            current = self.node_ids[index]
            yield EntityRef(EntityType.NODE, current)
            for product_id in self.products_of(current):
                yield EntityRef(EntityType.PRODUCT, product_id)
            queue.extend(self.children[index])


def build_tree(
    nodes: Iterable[CatalogNode],
    products: Iterable[CatalogProduct] = (),
) -> CatalogTree:
    ordered: list[CatalogNode] = []
    index_by_id: dict[str, int] = {}
    for node in nodes:
        if node.id in index_by_id:
            log.warning("Ignoring duplicate catalog node %s", node.id)
            continue
        index_by_id[node.id] = len(ordered)
        ordered.append(node)

    count = len(ordered)
    parent_of: list[int | None] = [None] * count
    orphans: set[int] = set()
    for index, node in enumerate(ordered):
        if node.parent_id is None:
            continue
        parent_index = index_by_id.get(node.parent_id)
        if parent_index is None:
            orphans.add(index)
        else:
            parent_of[index] = parent_index

    cause, raw_issues = _classify(parent_of, orphans)
    depths = _compute_depths(parent_of, cause)

    children: list[list[int]] = [[] for _ in range(count)]
    for index, parent in enumerate(parent_of):
        if parent is not None and depths[index] is not None:
            children[parent].append(index)

    affected: dict[int, list[str]] = {}
    for index, issue_no in enumerate(cause):
        if issue_no is not None:
            affected.setdefault(issue_no, []).append(ordered[index].id)

    issues: list[TreeValidationIssue] = []
    for issue_no, (reason, members) in enumerate(raw_issues):
        issue = TreeValidationIssue(
            reason=reason,
            node_ids=tuple(sorted(ordered[member].id for member in members)),
            affected_ids=tuple(sorted(affected.get(issue_no, ()))),
        )
        log.warning("Catalog tree validation failed: %s", issue.describe())
        issues.append(issue)

    products_by_node: dict[str, list[str]] = {}
    product_categories: dict[str, str | None] = {}
    for product in products:
        if product.id in product_categories:
            log.warning("Ignoring duplicate catalog product %s", product.id)
            continue
        product_categories[product.id] = product.category_id
        category = index_by_id.get(product.category_id) if product.category_id else None
        if category is not None and depths[category] is not None:
            products_by_node.setdefault(ordered[category].id, []).append(product.id)

    return CatalogTree(
        node_ids=tuple(node.id for node in ordered),
        parents=tuple(
            parent if depths[index] is not None else None
            for index, parent in enumerate(parent_of)
        ),
        children=tuple(tuple(sorted(kids, key=lambda i: ordered[i].id)) for kids in children),
        depths=tuple(depths),
        issues=tuple(issues),
        products_by_node=MappingProxyType(
            {node_id: tuple(sorted(ids)) for node_id, ids in products_by_node.items()}
        ),
        product_categories=MappingProxyType(product_categories),
        index_by_id=MappingProxyType(index_by_id),
    )


def _classify(
    parent_of: list[int | None],
    orphans: set[int],
) -> tuple[list[int | None], list[tuple[TreeIssueReason, tuple[int, ...]]]]:
    """Assign each node the issue that invalidates it, or ``None`` if its chain is sound."""

    count = len(parent_of)
    state = [_UNSEEN] * count
    cause: list[int | None] = [None] * count
    issues: list[tuple[TreeIssueReason, tuple[int, ...]]] = []

    def record(reason: TreeIssueReason, members: tuple[int, ...]) -> int:
        issues.append((reason, members))
        for member in members:
            cause[member] = len(issues) - 1
            state[member] = _DONE
        return len(issues) - 1

    for start in range(count):
        if state[start] != _UNSEEN:
            continue
        chain: list[int] = []
        current: int | None = start
        inherited: int | None = None
        while current is not None:
            if state[current] == _DONE:
                inherited = cause[current]
                break
            if state[current] == _ON_PATH:
                loop_start = chain.index(current)
                inherited = record(TreeIssueReason.CYCLE, tuple(chain[loop_start:]))
                del chain[loop_start:]
                break
            state[current] = _ON_PATH
            chain.append(current)
            if current in orphans:
                chain.pop()
                inherited = record(TreeIssueReason.ORPHANED_PARENT, (current,))
                break
            current = parent_of[current]

        for index in chain:
            cause[index] = inherited
            state[index] = _DONE

    return cause, issues


def _compute_depths(parent_of: list[int | None], cause: list[int | None]) -> list[int | None]:
    count = len(parent_of)
    children: list[list[int]] = [[] for _ in range(count)]
    roots: list[int] = []
    for index, parent in enumerate(parent_of):
        if cause[index] is not None:
            continue
        if parent is None:
            roots.append(index)
        else:
            children[parent].append(index)

    depths: list[int | None] = [None] * count
    queue: deque[int] = deque()
    for root in roots:
        depths[root] = 0
        queue.append(root)
    while queue:
        index = queue.popleft()
        depth = depths[index]
        assert depth is not None
        for child in children[index]:
            depths[child] = depth + 1
            queue.append(child)
    return depths
