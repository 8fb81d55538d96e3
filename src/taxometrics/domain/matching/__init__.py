"""Identifier matching against the catalog.

Responsibilities of this package:
- build per-run lookup indices and the validated tree from a catalog snapshot
- resolve one external record at a time through the ordered strategies
- score each strategy's confidence
"""

from __future__ import annotations

from .confidence import (
    CONFIDENCE_FLOOR,
    STRATEGY_CONFIDENCE,
    confidence_level,
    meets_threshold,
    score_match,
)
from .index import CatalogIndex, build_catalog_index
from .manual import MAPPING_CONFLICT_REASON, ManualMappingIndex, MappingConflict, MappingEntry
from .matcher import Matcher
from .normalize import (
    canonical_gtin,
    extract_product_tokens,
    identifier_key,
    normalize_path,
    normalize_url,
    parse_url,
    path_segments,
)
from .results import (
    FuzzyMatchDetails,
    HierarchyMatchDetails,
    KeyMatchDetails,
    ManualMatchDetails,
    MatchDetails,
    MatchOutcome,
    MatchResult,
)
from .similarity import best_similar, path_similarity
from .strategies import (
    DEFAULT_STRATEGIES,
    MatchContext,
    Strategy,
    category_hierarchy_strategy,
    embedded_product_id_strategy,
    exact_identifier_strategy,
    first_success,
    fuzzy_strategy,
    manual_mapping_strategy,
    path_strategy,
)
from .tree import CatalogTree, TreeIssueReason, TreeValidationIssue, build_tree

__all__ = [
    "CONFIDENCE_FLOOR",
    "DEFAULT_STRATEGIES",
    "MAPPING_CONFLICT_REASON",
    "STRATEGY_CONFIDENCE",
    "CatalogIndex",
    "CatalogTree",
    "FuzzyMatchDetails",
    "HierarchyMatchDetails",
    "KeyMatchDetails",
    "ManualMappingIndex",
    "ManualMatchDetails",
    "MappingConflict",
    "MappingEntry",
    "MatchContext",
    "MatchDetails",
    "MatchOutcome",
    "MatchResult",
    "Matcher",
    "Strategy",
    "TreeIssueReason",
    "TreeValidationIssue",
    "best_similar",
    "build_catalog_index",
    "build_tree",
    "canonical_gtin",
    "category_hierarchy_strategy",
    "confidence_level",
    "embedded_product_id_strategy",
    "exact_identifier_strategy",
    "extract_product_tokens",
    "first_success",
    "fuzzy_strategy",
    "identifier_key",
    "manual_mapping_strategy",
    "meets_threshold",
    "normalize_path",
    "normalize_url",
    "parse_url",
    "path_segments",
    "path_similarity",
    "path_strategy",
    "score_match",
]
