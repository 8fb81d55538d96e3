from __future__ import annotations

from taxometrics.domain.matching import TreeIssueReason, build_catalog_index, build_tree
from taxometrics.domain.model import EntityRef, EntityType
from tests.helpers.catalog import make_node, make_product, make_snapshot, outerwear_catalog


def _node(node_id: str) -> EntityRef:
    return EntityRef(EntityType.NODE, node_id)


def _product(product_id: str) -> EntityRef:
    return EntityRef(EntityType.PRODUCT, product_id)


def test_build_catalog_index_populates_lookups() -> None:
    index = build_catalog_index(outerwear_catalog())

    assert index.urls["shop.example.com/outerwear/winter-boots"] == _node("winter-boots")
    assert index.urls["shop.example.com/product/parka-1"] == _product("parka-1")
    assert index.paths["/garden"] == _node("garden")
    assert index.node_paths[("outerwear", "winter-jackets")] == _node("winter-jackets")
    assert index.gtins["12345678905"] == _product("parka-1")
    assert index.tokens["pk-1"] == _product("parka-1")
    assert index.tokens["parka-1"] == _product("parka-1")
    assert index.issues == ()


def test_products_take_precedence_over_nodes_on_shared_urls() -> None:
    snapshot = make_snapshot(
        nodes=[make_node("sale", url="https://example.com/sale")],
        products=[make_product("sale-bundle", "sale", url="https://example.com/sale")],
    )

    index = build_catalog_index(snapshot)

    assert index.urls["example.com/sale"] == _product("sale-bundle")


def test_tree_levels_are_deepest_first() -> None:
    tree = build_tree(outerwear_catalog().nodes, outerwear_catalog().products)

    assert tree.levels() == [("winter-boots", "winter-jackets"), ("garden", "outerwear")]
    assert tree.child_ids("outerwear") == ("winter-boots", "winter-jackets")
    assert tree.products_of("winter-jackets") == ("parka-1",)
    assert tree.root_of(_product("parka-1")) == "outerwear"


def test_tree_detects_two_node_cycle() -> None:
    nodes = [
        make_node("root"),
        make_node("child", "root"),
        make_node("a", "b"),
        make_node("b", "a"),
        make_node("under-a", "a"),
    ]

    tree = build_tree(nodes)

    assert len(tree.issues) == 1
    issue = tree.issues[0]
    assert issue.reason is TreeIssueReason.CYCLE
    assert issue.node_ids == ("a", "b")
    assert issue.affected_ids == ("a", "b", "under-a")
    assert tree.quarantined == frozenset({"a", "b", "under-a"})
    assert tree.has_node("child")
    assert not tree.has_node("a")
    assert tree.levels() == [("child",), ("root",)]


def test_tree_detects_self_loop() -> None:
    tree = build_tree([make_node("loop", "loop")])

    assert [issue.reason for issue in tree.issues] == [TreeIssueReason.CYCLE]
    assert tree.issues[0].node_ids == ("loop",)


def test_tree_quarantines_orphaned_parents_and_descendants() -> None:
    nodes = [
        make_node("stray", "missing"),
        make_node("stray-child", "stray"),
        make_node("root"),
    ]

    tree = build_tree(nodes, [make_product("lost", "stray-child")])

    assert len(tree.issues) == 1
    issue = tree.issues[0]
    assert issue.reason is TreeIssueReason.ORPHANED_PARENT
    assert issue.node_ids == ("stray",)
    assert issue.affected_ids == ("stray", "stray-child")
    assert tree.products_of("stray-child") == ()
    assert tree.root_of(_product("lost")) is None
    assert not tree.contains(_product("lost"))
    assert tree.levels() == [("root",)]


def test_tree_handles_deep_chains_without_recursion() -> None:
    depth = 5000
    nodes = [make_node("n0")]
    nodes.extend(make_node(f"n{i}", f"n{i - 1}") for i in range(1, depth))

    tree = build_tree(nodes)

    assert tree.issues == ()
    assert len(tree.levels()) == depth
    assert tree.root_of(_node(f"n{depth - 1}")) == "n0"


def test_subtree_yields_nodes_and_products() -> None:
    tree = build_tree(outerwear_catalog().nodes, outerwear_catalog().products)

    refs = set(tree.subtree("outerwear"))

    assert refs == {
        _node("outerwear"),
        _node("winter-jackets"),
        _node("winter-boots"),
        _product("parka-1"),
    }
