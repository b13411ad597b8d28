"""
MedEvidence Cache Module

Redis-backed cache for per-source query results and text embeddings.
A missing or failing backend degrades to "always miss": reads return
None, writes are silent no-ops, and nothing is raised to the caller.
Writes on the request path are scheduled as tracked background tasks;
close() waits for them.
"""

import asyncio
import hashlib
import json
import logging
from typing import Any

from medevidence.config import (
    CACHE_TIMEOUT_SECONDS,
    EVIDENCE_CACHE_TTL_SECONDS,
    REDIS_URL,
)
from medevidence.observability.metrics import CacheStats

logger = logging.getLogger(__name__)

# ============================================
# Constants
# ============================================

EVIDENCE_KEY_PREFIX = "evidence:"
EMBEDDING_KEY_PREFIX = "emb:"

# Embeddings are content-addressed and never go stale
EMBEDDING_TTL_SECONDS = 7 * 24 * 60 * 60


# ============================================
# Query Hasher
# ============================================


def hash_query(query: str) -> str:
    """Deterministic SHA-256 hex digest of a normalized query.

    Normalization strips surrounding whitespace and case-folds, so
    "  Metformin " and "metformin" share a digest.
    """
    normalized = query.strip().casefold()
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def hash_text(text: str) -> str:
    """SHA-256 of raw text, used to address cached embeddings."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


# ============================================
# Evidence Cache
# ============================================


class EvidenceCache:
    """Cache of source results keyed by ``evidence:<hash(query)>:<source>``.

    Attributes:
        ttl_seconds: Default time-to-live for stored results.
        stats: Hit/miss/error counters shared with metrics reporting.
    """

    def __init__(
        self,
        redis_url: str | None = None,
        ttl_seconds: int = EVIDENCE_CACHE_TTL_SECONDS,
        timeout: float = CACHE_TIMEOUT_SECONDS,
        stats: CacheStats | None = None,
    ) -> None:
        """Initialize the cache.

        Args:
            redis_url: Redis connection URL. If None, uses REDIS_URL env var.
                An empty URL disables the cache.
            ttl_seconds: Default TTL for evidence entries.
            timeout: Upper bound in seconds for any single backend call.
            stats: Counters to update; a private instance is created if None.
        """
        self.ttl_seconds = ttl_seconds
        self.timeout = timeout
        self.stats = stats or CacheStats()
        self._redis_url = REDIS_URL if redis_url is None else redis_url
        self._redis: Any = None
        self._pending: set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return bool(self._redis_url)

    async def _get_redis(self) -> Any:
        """Lazily initialize the Redis connection."""
        if self._redis is None:
            import redis.asyncio as redis

            self._redis = redis.from_url(self._redis_url, decode_responses=True)
        return self._redis

    @staticmethod
    def _make_key(query: str, source: str) -> str:
        return f"{EVIDENCE_KEY_PREFIX}{hash_query(query)}:{source}"

    async def get(self, query: str, source: str) -> Any | None:
        """Return the cached payload for (query, source), or None on a miss.

        Backend failures and timeouts are reported as misses.
        """
        if not self.enabled:
            self.stats.record_miss()
            return None

        try:
            redis = await self._get_redis()
            cached = await asyncio.wait_for(
                redis.get(self._make_key(query, source)), timeout=self.timeout
            )
        except Exception as e:
            logger.warning("Evidence cache read failed for %s: %s", source, e)
            self.stats.record_error()
            return None

        if cached is None:
            self.stats.record_miss()
            return None

        try:
            payload = json.loads(cached)
        except (TypeError, ValueError) as e:
            logger.warning("Discarding undecodable cache entry for %s: %s", source, e)
            self.stats.record_error()
            return None

        self.stats.record_hit()
        return payload

    async def put(
        self,
        query: str,
        source: str,
        payload: Any,
        ttl: int | None = None,
    ) -> None:
        """Store a JSON-serializable payload. Failures are logged and ignored."""
        if not self.enabled:
            return

        ttl_seconds = ttl if ttl is not None else self.ttl_seconds
        try:
            redis = await self._get_redis()
            await asyncio.wait_for(
                redis.set(
                    self._make_key(query, source), json.dumps(payload), ex=ttl_seconds
                ),
                timeout=self.timeout,
            )
        except Exception as e:
            logger.warning("Evidence cache write failed for %s: %s", source, e)

    # ----------------------------------------
    # Embedding cache
    # ----------------------------------------

    async def get_embeddings(self, texts: list[str]) -> list[list[float] | None]:
        """Look up cached embeddings; entries are None where not cached."""
        if not texts:
            return []
        if not self.enabled:
            return [None] * len(texts)

        keys = [f"{EMBEDDING_KEY_PREFIX}{hash_text(t)}" for t in texts]
        try:
            redis = await self._get_redis()
            raw = await asyncio.wait_for(redis.mget(keys), timeout=self.timeout)
        except Exception as e:
            logger.warning("Embedding cache read failed: %s", e)
            return [None] * len(texts)

        results: list[list[float] | None] = []
        for value in raw:
            try:
                results.append(json.loads(value) if value else None)
            except (TypeError, ValueError):
                results.append(None)
        return results

    async def set_embeddings(self, items: list[tuple[str, list[float]]]) -> bool:
        """Store several embeddings in one round, bounded by a single timeout.

        Returns True if every write completed.
        """
        if not self.enabled or not items:
            return False
        try:
            redis = await self._get_redis()
            writes = [
                redis.set(
                    f"{EMBEDDING_KEY_PREFIX}{hash_text(text)}",
                    json.dumps(embedding),
                    ex=EMBEDDING_TTL_SECONDS,
                )
                for text, embedding in items
            ]
            await asyncio.wait_for(asyncio.gather(*writes), timeout=self.timeout)
            return True
        except Exception as e:
            logger.warning("Embedding cache write failed: %s", e)
            return False

    # ----------------------------------------
    # Background writes
    # ----------------------------------------

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def put_nowait(
        self,
        query: str,
        source: str,
        payload: Any,
        ttl: int | None = None,
    ) -> None:
        """Schedule put() without waiting for the backend."""
        if self.enabled:
            self._spawn(self.put(query, source, payload, ttl))

    def set_embeddings_nowait(self, items: list[tuple[str, list[float]]]) -> None:
        """Schedule set_embeddings() without waiting for the backend."""
        if self.enabled and items:
            self._spawn(self.set_embeddings(items))

    async def drain(self) -> None:
        """Wait for scheduled writes to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def flush(self) -> int:
        """Delete all evidence entries. Returns the number of keys removed."""
        if not self.enabled:
            return 0
        try:
            redis = await self._get_redis()
            deleted = 0
            async for key in redis.scan_iter(match=f"{EVIDENCE_KEY_PREFIX}*"):
                deleted += await redis.delete(key)
            return deleted
        except Exception as e:
            logger.warning("Evidence cache flush failed: %s", e)
            return 0

    async def close(self) -> None:
        """Finish scheduled writes, then close the Redis connection."""
        await self.drain()
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
