"""Identifier normalization shared by the index builder and the matcher.

URLs collapse to ``host + path``: scheme, a leading ``www.``, query string and fragment
are dropped, everything is lower-cased and a trailing slash is removed unless the path
is the root. GTINs collapse to their digits with leading zeros stripped so that the
8/12/13/14-digit paddings of one item compare equal.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import unquote, urlsplit

from taxometrics.domain.model import IdentifierType

_WWW_PREFIX = "www."
_HOST_LIKE = re.compile(r"^[a-z0-9-]+(?:\.[a-z0-9-]+)+(?::\d+)?$")
_REPEATED_SLASHES = re.compile(r"/{2,}")
_NON_DIGITS = re.compile(r"\D")
MIN_GTIN_DIGITS = 8

_PRODUCT_ID_PATTERNS = (
    re.compile(r"/products?/([^/?#]+)", re.IGNORECASE),
    re.compile(r"/p/([^/?#]+)", re.IGNORECASE),
    re.compile(r"/item/([^/?#]+)", re.IGNORECASE),
    re.compile(r"[?&](?:id|product_id|sku)=([^&#]+)", re.IGNORECASE),
    # Marketplace-style identifiers such as ASINs; at least one letter, so dates stay out.
    re.compile(r"/((?=[A-Z0-9]*[A-Z])[A-Z0-9]{6,})(?:[/?#]|$)"),
)


@dataclass(frozen=True, slots=True)
class NormalizedUrl:
    host: str
    path: str

    @property
    def key(self) -> str:
        return f"{self.host}{self.path}"

    @property
    def segments(self) -> tuple[str, ...]:
        return tuple(segment for segment in self.path.split("/") if segment)


def parse_url(raw: str, *, assume_path: bool = False) -> NormalizedUrl:
    value = raw.strip()
    if "://" not in value and not value.startswith("/"):
        head = re.split(r"[/?#]", value, maxsplit=1)[0].lower()
        value = f"//{value}" if not assume_path and _HOST_LIKE.match(head) else f"/{value}"
    elif assume_path and value.startswith("//"):
        value = _REPEATED_SLASHES.sub("/", value)

    parts = urlsplit(value)
    host = parts.netloc.lower()
    host = host.removeprefix(_WWW_PREFIX)

    path = _REPEATED_SLASHES.sub("/", unquote(parts.path).lower())
    if not path.startswith("/"):
        path = f"/{path}"
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return NormalizedUrl(host=host, path=path)


def normalize_url(raw: str) -> str:
    return parse_url(raw).key


def normalize_path(raw: str) -> str:
    return parse_url(raw, assume_path=True).path


def path_segments(raw: str) -> tuple[str, ...]:
    return parse_url(raw, assume_path=True).segments


def canonical_gtin(raw: str) -> str | None:
    """Return the comparable form of a GTIN, or ``None`` if it cannot be one."""

    digits = _NON_DIGITS.sub("", raw)
    if len(digits) < MIN_GTIN_DIGITS:
        return None
    return digits.lstrip("0") or "0"


def extract_product_tokens(raw: str) -> tuple[str, ...]:
    """Candidate product ids/slugs embedded in a URL or path, most specific first."""

    tokens: list[str] = []
    for pattern in _PRODUCT_ID_PATTERNS:
        for match in pattern.finditer(raw):
            token = unquote(match.group(1)).strip().lower()
            if token and token not in tokens:
                tokens.append(token)

    segments = parse_url(raw).segments
    if segments and segments[-1] not in tokens:
        tokens.append(segments[-1])
    return tuple(tokens)


def identifier_key(identifier: str, identifier_type: IdentifierType | None) -> str | None:
    """Typed comparison key for an identifier; ``None`` when no normalized form exists."""

    match identifier_type:
        case IdentifierType.URL:
            return f"url:{normalize_url(identifier)}"
        case IdentifierType.PATH:
            return f"path:{normalize_path(identifier)}"
        case IdentifierType.GTIN:
            gtin = canonical_gtin(identifier)
            return f"gtin:{gtin}" if gtin is not None else None
        case IdentifierType.SKU:
            return f"sku:{identifier.strip().lower()}"
        case None:
            return None
