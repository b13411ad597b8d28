"""
Semantic Reranker for MedEvidence

Reorders records or sentence chunks by embedding cosine similarity to the
query. Short lists skip the embedding call entirely, and any embedding
failure falls back to the input order so a search never fails because
ranking did.
"""

import logging
from collections.abc import Callable, Sequence
from typing import TypeVar

from medevidence.models import Chunk, EvidenceRecord, RankedResult
from medevidence.rag.cache import EvidenceCache
from medevidence.rag.embedding import EmbeddingProvider, cosine_similarity

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TOP_K = 50
DEFAULT_SKIP_IF_FEW_RESULTS = 10


def record_text(record: EvidenceRecord) -> str:
    """Title plus abstract (or summary), the text a record is ranked on."""
    return " ".join(part for part in (record.title, record.body) if part)


def chunk_text(chunk: Chunk) -> str:
    return chunk.text


class SemanticReranker:
    """Embedding-similarity reranker with optional embedding cache."""

    def __init__(
        self,
        embeddings: EmbeddingProvider,
        cache: EvidenceCache | None = None,
    ) -> None:
        self._embeddings = embeddings
        self._cache = cache

    async def rerank(
        self,
        query: str,
        items: Sequence[T],
        extract_text: Callable[[T], str],
        top_k: int = DEFAULT_TOP_K,
        min_similarity: float = 0.0,
        skip_if_few_results: int = DEFAULT_SKIP_IF_FEW_RESULTS,
        use_cache: bool = True,
    ) -> list[RankedResult[T]]:
        """
        Rank items by cosine similarity to the query.

        Lists shorter than skip_if_few_results come back in input order
        with score 1.0. Otherwise results below min_similarity are dropped,
        the rest sorted descending (stable) and truncated to top_k.
        """
        if not items:
            return []

        if len(items) < skip_if_few_results:
            return self._original_order(items)

        texts = [extract_text(item) for item in items]
        try:
            query_vector = await self._embeddings.embed(query)
            vectors = await self._embed_texts(texts, use_cache)
            scores = [cosine_similarity(query_vector, v) for v in vectors]
        except Exception as e:
            logger.warning("Semantic reranking failed, keeping source order: %s", e)
            return self._original_order(items)

        ranked = [
            RankedResult(item=item, score=max(0.0, score), original_rank=i)
            for i, (item, score) in enumerate(zip(items, scores, strict=True))
            if score >= min_similarity
        ]
        ranked.sort(key=lambda r: r.score, reverse=True)
        return ranked[: max(1, top_k)]

    async def _embed_texts(self, texts: list[str], use_cache: bool) -> list[list[float]]:
        """Embed texts in one batch, reusing cached vectors when allowed."""
        if not use_cache or self._cache is None:
            return await self._embeddings.embed_batch(texts)

        cached = await self._cache.get_embeddings(texts)
        missing = [i for i, vector in enumerate(cached) if vector is None]
        if missing:
            fresh = await self._embeddings.embed_batch([texts[i] for i in missing])
            for idx, vector in zip(missing, fresh, strict=True):
                cached[idx] = vector
            # one batched write, off the ranking path
            self._cache.set_embeddings_nowait([(texts[i], cached[i]) for i in missing])
        return [v for v in cached if v is not None]

    @staticmethod
    def _original_order(items: Sequence[T]) -> list[RankedResult[T]]:
        return [
            RankedResult(item=item, score=1.0, original_rank=i)
            for i, item in enumerate(items)
        ]

    async def rerank_records(
        self, query: str, records: Sequence[EvidenceRecord], **options
    ) -> list[RankedResult[EvidenceRecord]]:
        return await self.rerank(query, records, record_text, **options)

    async def rerank_chunks(
        self, query: str, chunks: Sequence[Chunk], **options
    ) -> list[RankedResult[Chunk]]:
        """Rank sentence chunks; the chunk itself carries its provenance."""
        return await self.rerank(query, chunks, chunk_text, **options)

    async def rerank_items(
        self,
        query: str,
        items: Sequence[T],
        extract_text: Callable[[T], str],
        **options,
    ) -> list[T]:
        results = await self.rerank(query, items, extract_text, **options)
        return [r.item for r in results]
