"""
MedEvidence RAG Module

Retrieval and ranking building blocks: result caching, query expansion,
embeddings, sentence chunking, rank fusion and semantic reranking.
"""

from medevidence.rag.cache import EvidenceCache, hash_query
from medevidence.rag.chunker import SentenceSplitter
from medevidence.rag.embedding import (
    EmbeddingProvider,
    SentenceTransformerEmbeddings,
    cosine_similarity,
)
from medevidence.rag.fusion import RankFuser, deduplicate, fuse_search_results
from medevidence.rag.query_expansion import ExpandedQuery, PICOElements, PICOExtractor
from medevidence.rag.reranker import SemanticReranker
from medevidence.rag.retriever import HybridSearch, KeywordRanker

__all__ = [
    # Cache
    "EvidenceCache",
    "hash_query",
    # Chunker
    "SentenceSplitter",
    # Embedding
    "EmbeddingProvider",
    "SentenceTransformerEmbeddings",
    "cosine_similarity",
    # Fusion
    "RankFuser",
    "deduplicate",
    "fuse_search_results",
    # Query expansion
    "PICOExtractor",
    "PICOElements",
    "ExpandedQuery",
    # Ranking
    "SemanticReranker",
    "KeywordRanker",
    "HybridSearch",
]
