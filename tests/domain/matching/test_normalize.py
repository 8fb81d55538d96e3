from __future__ import annotations

import pytest

from taxometrics.domain.matching import (
    canonical_gtin,
    extract_product_tokens,
    identifier_key,
    normalize_path,
    normalize_url,
    parse_url,
    path_segments,
)
from taxometrics.domain.model import IdentifierType


@pytest.mark.parametrize(
    "raw",
    [
        "https://example.com/categories/winter-boots/",
        "http://www.example.com/categories/winter-boots",
        "HTTPS://WWW.Example.com/Categories/Winter-Boots?utm_source=x#reviews",
        "example.com/categories/winter-boots",
    ],
)
def test_normalize_url_collapses_variants(raw: str) -> None:
    assert normalize_url(raw) == "example.com/categories/winter-boots"


def test_normalize_url_keeps_root_slash() -> None:
    assert normalize_url("https://www.example.com/") == "example.com/"
    assert normalize_url("https://example.com") == "example.com/"


def test_normalize_url_decodes_and_collapses_slashes() -> None:
    assert normalize_url("https://example.com//sale%20items//") == "example.com/sale items"


def test_normalize_path_treats_bare_segments_as_path() -> None:
    assert normalize_path("outerwear/winter-boots/") == "/outerwear/winter-boots"
    assert normalize_path("/Outerwear") == "/outerwear"
    assert normalize_path("") == "/"


def test_parse_url_detects_hosts_without_scheme() -> None:
    parsed = parse_url("shop.example.com/outerwear")

    assert parsed.host == "shop.example.com"
    assert parsed.path == "/outerwear"
    assert parsed.segments == ("outerwear",)


def test_path_segments() -> None:
    assert path_segments("/outerwear/winter-boots/") == ("outerwear", "winter-boots")
    assert path_segments("/") == ()


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("0012345678905", "12345678905"),
        ("0012-3456-78905", "12345678905"),
        ("012345678905", "12345678905"),
        ("12345678905", "12345678905"),
        ("96385074", "96385074"),
    ],
)
def test_canonical_gtin_strips_formatting_and_padding(raw: str, expected: str) -> None:
    assert canonical_gtin(raw) == expected


def test_canonical_gtin_rejects_short_values() -> None:
    assert canonical_gtin("1234") is None
    assert canonical_gtin("abc") is None


def test_extract_product_tokens_orders_patterns_first() -> None:
    tokens = extract_product_tokens("https://shop.example.com/product/PARKA-1?sku=PK-1")

    assert tokens[0] == "parka-1"
    assert "pk-1" in tokens


def test_extract_product_tokens_finds_marketplace_ids() -> None:
    tokens = extract_product_tokens("https://market.example.com/dp/B07XJ8C8F5/ref=sr_1")

    assert "b07xj8c8f5" in tokens


def test_extract_product_tokens_skips_numeric_date_segments() -> None:
    assert extract_product_tokens("/news/202401/SPRING-SALE") == ("spring-sale",)


def test_extract_product_tokens_falls_back_to_last_segment() -> None:
    assert extract_product_tokens("/blog/post-123") == ("post-123",)


def test_identifier_key_by_type() -> None:
    assert identifier_key("https://www.example.com/a/", IdentifierType.URL) == "url:example.com/a"
    assert identifier_key("a/b", IdentifierType.PATH) == "path:/a/b"
    assert identifier_key("0012-3456-78905", IdentifierType.GTIN) == "gtin:12345678905"
    assert identifier_key(" PK-1 ", IdentifierType.SKU) == "sku:pk-1"
    assert identifier_key("123", IdentifierType.GTIN) is None
    assert identifier_key("anything", None) is None
