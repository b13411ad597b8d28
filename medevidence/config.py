"""
MedEvidence Configuration

Environment-backed defaults plus the tunable settings objects used by the
reranker, the fuser, the sufficiency scorer and the aggregator.
"""

import os
from dataclasses import dataclass, field, replace

# ============================================
# Environment Defaults
# ============================================

REDIS_URL = os.environ.get("REDIS_URL", "")
EVIDENCE_CACHE_TTL_SECONDS = int(os.environ.get("EVIDENCE_CACHE_TTL_SECONDS", "86400"))
CACHE_TIMEOUT_SECONDS = float(os.environ.get("CACHE_TIMEOUT_SECONDS", "0.5"))

EMBEDDING_MODEL = os.environ.get(
    "EMBEDDING_MODEL", "sentence-transformers/all-MiniLM-L6-v2"
)
EMBEDDING_DIMENSION = int(os.environ.get("EMBEDDING_DIMENSION", "384"))
EMBEDDING_BATCH_SIZE = int(os.environ.get("EMBEDDING_BATCH_SIZE", "32"))

SOURCE_TIMEOUT_SECONDS = float(os.environ.get("SOURCE_TIMEOUT_SECONDS", "10"))
RERANK_ENABLED = os.environ.get("RERANK_ENABLED", "true").lower() == "true"
PICO_ENABLED = os.environ.get("PICO_ENABLED", "true").lower() == "true"
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


def _clamp(value, low, high=None):
    if value < low:
        return low
    if high is not None and value > high:
        return high
    return value


# ============================================
# Semantic Search Settings
# ============================================


@dataclass
class SemanticSettings:
    """Tunables for reranking, fusion and query expansion.

    Out-of-range values are clamped on construction rather than rejected:
    top_k to [1, 1000], min_similarity to [0, 1], max_expanded_queries to
    [1, 20], and counts, TTLs and weights to be non-negative (rrf_k >= 1).
    """

    top_k: int = 50
    min_similarity: float = 0.0
    skip_if_few_results: int = 10
    enable_reranking: bool = RERANK_ENABLED
    use_cache: bool = True
    cache_ttl: int = EVIDENCE_CACHE_TTL_SECONDS
    rrf_k: int = 60
    keyword_weight: float = 1.0
    semantic_weight: float = 1.0
    enable_pico: bool = PICO_ENABLED
    max_expanded_queries: int = 5

    def __post_init__(self) -> None:
        self.top_k = _clamp(self.top_k, 1, 1000)
        self.min_similarity = _clamp(self.min_similarity, 0.0, 1.0)
        self.skip_if_few_results = _clamp(self.skip_if_few_results, 0)
        self.cache_ttl = _clamp(self.cache_ttl, 0)
        self.rrf_k = _clamp(self.rrf_k, 1)
        self.keyword_weight = _clamp(self.keyword_weight, 0.0)
        self.semantic_weight = _clamp(self.semantic_weight, 0.0)
        self.max_expanded_queries = _clamp(self.max_expanded_queries, 1, 20)

    def updated(self, **changes) -> "SemanticSettings":
        """Return a copy with the given fields replaced (and clamped)."""
        return replace(self, **changes)


def default_settings() -> SemanticSettings:
    """Fresh settings with every default applied."""
    return SemanticSettings()


# ============================================
# Sufficiency Weights
# ============================================


@dataclass(frozen=True)
class SufficiencyWeights:
    """Points awarded per evidence rule and the level cut-offs."""

    gold_standard_reviews: int = 30
    guidelines: int = 25
    rcts: int = 20
    recent_articles: int = 15
    systematic_reviews: int = 10
    recent_years: int = 5
    recent_minimum: int = 5
    excellent_threshold: int = 70
    good_threshold: int = 50
    limited_threshold: int = 30


# ============================================
# Aggregator Settings
# ============================================


@dataclass(frozen=True)
class CategoryPolicy:
    """Rerank policy for one evidence category.

    Lists shorter than ``skip_if_few_results`` are kept in source order.
    """

    skip_if_few_results: int
    top_k: int
    min_similarity: float = 0.0


def _default_policies() -> dict[str, CategoryPolicy]:
    return {
        "literature": CategoryPolicy(skip_if_few_results=10, top_k=50),
        "systematic_reviews": CategoryPolicy(skip_if_few_results=5, top_k=20),
        "gold_standard_reviews": CategoryPolicy(skip_if_few_results=3, top_k=10),
    }


@dataclass
class AggregatorSettings:
    """Orchestration settings for a single gather call."""

    source_timeout: float = SOURCE_TIMEOUT_SECONDS
    variants_per_source: int = 3
    enable_hybrid: bool = False
    category_policies: dict[str, CategoryPolicy] = field(
        default_factory=_default_policies
    )
    # Fallback sources run only when primary evidence is thin
    fallback_min_high_quality: int = 3
    fallback_min_total: int = 5
    semantic: SemanticSettings = field(default_factory=SemanticSettings)
    sufficiency: SufficiencyWeights = field(default_factory=SufficiencyWeights)

    def __post_init__(self) -> None:
        self.source_timeout = _clamp(self.source_timeout, 0.0)
        self.variants_per_source = _clamp(self.variants_per_source, 1)

    def policy_for(self, category: str) -> CategoryPolicy | None:
        return self.category_policies.get(category)
