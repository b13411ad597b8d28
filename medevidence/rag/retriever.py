"""
Hybrid Ranking for MedEvidence

BM25 keyword ranking over fetched evidence, optionally fused with the
semantic ranking through reciprocal rank fusion. Unlike score blending,
RRF needs no calibration between BM25 and cosine scores.
"""

import logging
import re
from collections.abc import Callable, Hashable, Sequence
from typing import TypeVar

from rank_bm25 import BM25Okapi

from medevidence.models import RankedResult
from medevidence.rag.fusion import RankFuser
from medevidence.rag.reranker import SemanticReranker

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ============================================
# Query Normalization
# ============================================

MEDICAL_ABBREVIATIONS: dict[str, str] = {
    "MI": "myocardial infarction",
    "CHF": "congestive heart failure",
    "HF": "heart failure",
    "DVT": "deep vein thrombosis",
    "PE": "pulmonary embolism",
    "COPD": "chronic obstructive pulmonary disease",
    "HTN": "hypertension",
    "DM": "diabetes mellitus",
    "T2DM": "type 2 diabetes mellitus",
    "CAD": "coronary artery disease",
    "AF": "atrial fibrillation",
    "AFib": "atrial fibrillation",
    "ACS": "acute coronary syndrome",
    "CKD": "chronic kidney disease",
    "RCT": "randomized controlled trial",
    "ACEi": "ace inhibitor",
    "ARB": "angiotensin receptor blocker",
    "SGLT2": "sodium glucose cotransporter 2",
    "NSAID": "nonsteroidal anti-inflammatory drug",
}

STOP_WORDS: set[str] = {
    "a", "an", "and", "are", "as", "at", "be", "by", "can", "do", "does",
    "for", "from", "has", "have", "how", "in", "is", "it", "of", "on", "or",
    "should", "than", "that", "the", "their", "this", "to", "vs", "was",
    "what", "when", "which", "who", "with",
}  # fmt: skip

_TOKEN_PATTERN = re.compile(r"[a-z0-9][a-z0-9\-]*")

_COMPILED_ABBREVIATION_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"\b" + re.escape(abbr) + r"\b"), expansion)
    for abbr, expansion in MEDICAL_ABBREVIATIONS.items()
]


def expand_abbreviations(text: str) -> str:
    """Replace case-sensitive clinical abbreviations with full terms."""
    for pattern, expansion in _COMPILED_ABBREVIATION_PATTERNS:
        text = pattern.sub(expansion, text)
    return text


def tokenize(text: str) -> list[str]:
    """Expand abbreviations, lowercase, and drop stop words."""
    tokens = _TOKEN_PATTERN.findall(expand_abbreviations(text).lower())
    return [t for t in tokens if t not in STOP_WORDS]


# ============================================
# KeywordRanker
# ============================================


class KeywordRanker:
    """BM25 ranking of an in-memory list of items."""

    def rank(
        self,
        query: str,
        items: Sequence[T],
        extract_text: Callable[[T], str],
    ) -> list[RankedResult[T]]:
        """
        Order items by BM25 score against the query.

        Scores are normalized to 0.0-1.0. Items with no keyword overlap
        keep their relative input order after the matches.
        """
        if not items:
            return []

        corpus = [tokenize(extract_text(item)) for item in items]
        query_tokens = tokenize(query)
        if not query_tokens or all(len(doc) == 0 for doc in corpus):
            return [
                RankedResult(item=item, score=0.0, original_rank=i)
                for i, item in enumerate(items)
            ]

        scores = BM25Okapi(corpus).get_scores(query_tokens)
        top = max(scores)
        max_score = top if top > 0 else 1.0

        ranked = [
            RankedResult(item=item, score=max(0.0, float(s) / max_score), original_rank=i)
            for i, (item, s) in enumerate(zip(items, scores, strict=True))
        ]
        ranked.sort(key=lambda r: r.score, reverse=True)
        return ranked


# ============================================
# HybridSearch
# ============================================


class HybridSearch:
    """Fuses keyword and semantic rankings of the same items with RRF."""

    def __init__(
        self,
        reranker: SemanticReranker,
        keyword_ranker: KeywordRanker | None = None,
        fuser: RankFuser | None = None,
    ):
        self._reranker = reranker
        self._keyword = keyword_ranker or KeywordRanker()
        self._fuser = fuser or RankFuser()

    async def search(
        self,
        query: str,
        items: Sequence[T],
        extract_text: Callable[[T], str],
        key_fn: Callable[[T], Hashable],
        top_k: int = 50,
        keyword_weight: float = 1.0,
        semantic_weight: float = 1.0,
        k: int | None = None,
    ) -> list[RankedResult[T]]:
        """Rank items both ways and fuse. Sources are "keyword"/"semantic"."""
        if not items:
            return []

        keyword = [r.item for r in self._keyword.rank(query, items, extract_text)]
        semantic = [
            r.item
            for r in await self._reranker.rerank(
                query,
                items,
                extract_text,
                top_k=len(items),
                skip_if_few_results=0,
            )
        ]

        fused = self._fuser.fuse(
            keyword,
            semantic,
            key_fn,
            k=k,
            weight_a=keyword_weight,
            weight_b=semantic_weight,
        )
        return fused[: max(1, top_k)]
