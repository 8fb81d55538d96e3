"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class EntityType(StrEnum):
    """Kind of catalog entity an external signal is attributed to."""

    NODE = "node"
    PRODUCT = "product"


class Source(StrEnum):
    """External metric feeds."""

    GSC = "gsc"
    GA4 = "ga4"
    MARKET = "market"


class IdentifierType(StrEnum):
    URL = "url"
    PATH = "path"
    GTIN = "gtin"
    SKU = "sku"


class MatchStrategy(StrEnum):
    """Strategy tags, listed in the order the matcher tries them."""

    MANUAL = "manual"
    EXACT_URL = "exact_url"
    GTIN_EXACT = "gtin_exact"
    PATH_MATCH = "path_match"
    PRODUCT_ID = "product_id"
    CATEGORY_MATCH = "category_match"
    FUZZY_MATCH = "fuzzy_match"


class ConfidenceLevel(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SyncMode(StrEnum):
    FULL = "full"
    INCREMENTAL = "incremental"


class RunState(StrEnum):
    IDLE = "idle"
    LOADING = "loading"
    MATCHING = "matching"
    AGGREGATING = "aggregating"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    FAILED = "failed"


class SourceStatus(StrEnum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    DEFERRED = "deferred"
    SKIPPED = "skipped"
