import asyncio
import logging
from functools import lru_cache
from typing import Protocol, runtime_checkable

import numpy as np

from medevidence.config import (
    EMBEDDING_BATCH_SIZE,
    EMBEDDING_DIMENSION,
    EMBEDDING_MODEL,
)
from medevidence.errors import DimensionMismatchError

logger = logging.getLogger(__name__)


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Anything that turns text into fixed-dimension unit vectors.

    Overlong input is truncated by the provider, never rejected, and an
    empty batch yields an empty list.
    """

    dimension: int

    async def embed(self, text: str) -> list[float]: ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]: ...


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity in [-1, 1]; 0.0 if either vector is all zeros."""
    if len(a) != len(b):
        raise DimensionMismatchError(
            f"Vector dimensions differ: {len(a)} != {len(b)}"
        )
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / norm, -1.0, 1.0))


@lru_cache(maxsize=2)
def _load_st_model(model_name: str):
    """Load sentence-transformers model once and cache it."""
    from sentence_transformers import SentenceTransformer

    logger.info("Loading sentence-transformers model: %s", model_name)
    model = SentenceTransformer(model_name)
    logger.info(
        "Model loaded, dimension: %d", model.get_sentence_embedding_dimension()
    )
    return model


def _encode_sync(model, texts: list[str], batch_size: int) -> list[list[float]]:
    """Run model.encode synchronously; called via to_thread.

    Inputs longer than the model's max_seq_length are truncated by the
    tokenizer. Vectors come back L2-normalized.
    """
    vectors = model.encode(
        texts,
        batch_size=batch_size,
        show_progress_bar=False,
        normalize_embeddings=True,
    )
    return [v.tolist() for v in vectors]


class SentenceTransformerEmbeddings:
    """Local sentence-transformers embedding provider."""

    def __init__(
        self,
        model_name: str | None = None,
        batch_size: int = EMBEDDING_BATCH_SIZE,
        dimension: int = EMBEDDING_DIMENSION,
    ):
        self.model_name = model_name or EMBEDDING_MODEL
        self.batch_size = batch_size
        self.dimension = dimension
        self._st_model = None

    def _get_model(self):
        """Lazy-load the model and pick up its true dimension."""
        if self._st_model is None:
            self._st_model = _load_st_model(self.model_name)
            self.dimension = self._st_model.get_sentence_embedding_dimension()
        return self._st_model

    async def embed(self, text: str) -> list[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed many texts in one pass without blocking the event loop."""
        if not texts:
            return []
        model = self._get_model()
        return await asyncio.to_thread(_encode_sync, model, texts, self.batch_size)
