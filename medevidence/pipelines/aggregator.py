"""
Evidence Aggregator for MedEvidence

Runs the full gather flow for one clinical question:

expand query -> query every source in parallel (cache first) ->
merge variant results with RRF -> rerank large lists -> consult fallback
sources when evidence is thin -> assemble the package -> build the
sentence-chunk corpus -> score sufficiency and detect conflicts.

A failing or slow source yields no results for that source only, and the
advisory enhancements never fail the call.
"""

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from medevidence.config import AggregatorSettings
from medevidence.errors import SourceQueryError
from medevidence.llm.citation_validator import CitationValidator
from medevidence.models import (
    CitationValidationResult,
    EvidencePackage,
    EvidenceRecord,
    ReferenceValidationResult,
    SufficiencyScore,
)
from medevidence.observability.metrics import DailyCallCounter, get_metrics_text
from medevidence.pipelines.sources import SourceSpec, normalize_records
from medevidence.rag.cache import EvidenceCache
from medevidence.rag.chunker import SentenceSplitter
from medevidence.rag.embedding import EmbeddingProvider, SentenceTransformerEmbeddings
from medevidence.rag.fusion import RankFuser, deduplicate
from medevidence.rag.query_expansion import PICOExtractor
from medevidence.rag.reranker import SemanticReranker, record_text
from medevidence.rag.retriever import HybridSearch
from medevidence.scoring.conflicts import ConflictDetector
from medevidence.scoring.sufficiency import INSUFFICIENT, SufficiencyScorer

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _citation_key(record: EvidenceRecord) -> str:
    return record.citation_key


def _elapsed_ms(start: float) -> float:
    return round((time.time() - start) * 1000, 1)


# ============================================
# Optional Enhancements
# ============================================


@dataclass
class EnhancementResult(Generic[T]):
    """Outcome of an advisory step: a value, or the error that replaced it."""

    name: str
    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def run_enhancement(name: str, fn: Callable[..., T], *args: Any) -> EnhancementResult[T]:
    """Run fn(*args); an exception becomes a failed result instead of propagating."""
    try:
        return EnhancementResult(name=name, value=fn(*args))
    except Exception as e:
        logger.warning("%s failed, continuing without it: %s", name, e)
        return EnhancementResult(name=name, error=str(e) or type(e).__name__)


def _unscored() -> SufficiencyScore:
    return SufficiencyScore(
        score=0,
        level=INSUFFICIENT,
        breakdown={},
        reasoning=["Evidence quality could not be assessed"],
    )


# ============================================
# Aggregator
# ============================================


@dataclass
class _SourceOutcome:
    spec: SourceSpec
    records: list[EvidenceRecord]
    error: str | None = None


class EvidenceAggregator:
    """Orchestrates multi-source evidence gathering.

    Collaborators are injected; anything omitted gets a default instance
    owned by the aggregator.
    """

    def __init__(
        self,
        sources: Sequence[SourceSpec],
        settings: AggregatorSettings | None = None,
        embeddings: EmbeddingProvider | None = None,
        cache: EvidenceCache | None = None,
        expander: PICOExtractor | None = None,
        splitter: SentenceSplitter | None = None,
        fuser: RankFuser | None = None,
        scorer: SufficiencyScorer | None = None,
        conflict_detector: ConflictDetector | None = None,
        citation_validator: CitationValidator | None = None,
        call_counter: DailyCallCounter | None = None,
    ):
        names = [s.name for s in sources]
        if len(set(names)) != len(names):
            raise ValueError("source names must be unique")

        self.sources = list(sources)
        self.settings = settings or AggregatorSettings()
        self.cache = cache or EvidenceCache(ttl_seconds=self.settings.semantic.cache_ttl)
        self.call_counter = call_counter or DailyCallCounter()
        self._expander = expander or PICOExtractor()
        self._splitter = splitter or SentenceSplitter()
        self._fuser = fuser or RankFuser(self.settings.semantic.rrf_k)
        self._scorer = scorer or SufficiencyScorer(self.settings.sufficiency)
        self._conflicts = conflict_detector or ConflictDetector()
        self._validator = citation_validator or CitationValidator()
        self._reranker = SemanticReranker(
            embeddings or SentenceTransformerEmbeddings(), cache=self.cache
        )
        self._hybrid = HybridSearch(self._reranker, fuser=self._fuser)

    async def gather(
        self, query: str, auxiliary_terms: Sequence[str] | None = None
    ) -> EvidencePackage:
        """Gather, rank and annotate evidence for a query."""
        start_time = time.time()
        package = EvidencePackage(
            query=query, timestamp=datetime.now(timezone.utc).isoformat()
        )
        aux_terms = [t for t in (auxiliary_terms or []) if t and t.strip()]

        # --- Query expansion ---
        step_start = time.time()
        variants = [query]
        semantic = self.settings.semantic
        if semantic.enable_pico:
            try:
                expanded = self._expander.expand_query(
                    query, max_variants=semantic.max_expanded_queries
                )
                variants = expanded.expanded
                package.pico = expanded.pico
            except Exception as e:
                logger.warning("Query expansion failed, using original query: %s", e)
        package.expanded_queries = variants
        self._step(package, "expand_query", step_start, f"{len(variants)} query variants")

        # --- Primary sources ---
        step_start = time.time()
        primary = [s for s in self.sources if not s.fallback]
        outcomes = await self._fan_out(primary, query, variants, aux_terms)
        self._record_outcomes(package, outcomes)
        self._step(
            package,
            "fan_out",
            step_start,
            f"{len(primary)} sources, {len(package.source_errors)} failed",
        )

        step_start = time.time()
        await self._rerank_outcomes(query, outcomes)
        self._assemble(package, outcomes)
        self._step(package, "rerank", step_start, f"{package.total_count} records kept")

        # --- Fallback sources ---
        fallback = [s for s in self.sources if s.fallback]
        if fallback and self._needs_fallback(package):
            step_start = time.time()
            logger.info(
                "Thin evidence (%d high-quality, %d total), consulting %d fallback sources",
                package.high_quality_count,
                package.total_count,
                len(fallback),
            )
            extra = await self._fan_out(fallback, query, variants, aux_terms)
            self._record_outcomes(package, extra)
            await self._rerank_outcomes(query, extra)
            self._assemble(package, extra)
            package.fallback_used = True
            self._step(package, "fallback", step_start, f"{len(fallback)} sources")

        # --- Chunk corpus ---
        step_start = time.time()
        package.chunks = self._splitter.create_chunks_from_records(package.all_records())
        self._step(package, "chunk", step_start, f"{len(package.chunks)} sentence chunks")

        # --- Advisory enhancements ---
        step_start = time.time()
        sufficiency = run_enhancement("sufficiency", self._scorer.score, package)
        package.sufficiency = sufficiency.value if sufficiency.ok else _unscored()
        conflicts = run_enhancement("conflicts", self._conflicts.detect, package)
        package.conflicts = conflicts.value if conflicts.ok else []
        for result in (sufficiency, conflicts):
            if not result.ok:
                package.enhancement_errors[result.name] = result.error
        self._step(
            package,
            "annotate",
            step_start,
            f"sufficiency={package.sufficiency.level}, conflicts={len(package.conflicts)}",
        )

        logger.info(
            "Gathered %d records for %r in %.1f ms",
            package.total_count,
            query,
            _elapsed_ms(start_time),
        )
        return package

    # ----------------------------------------
    # Fan-out
    # ----------------------------------------

    async def _fan_out(
        self,
        specs: list[SourceSpec],
        query: str,
        variants: list[str],
        aux_terms: list[str],
    ) -> list[_SourceOutcome]:
        tasks = [self._run_source(spec, query, variants, aux_terms) for spec in specs]
        return list(await asyncio.gather(*tasks))

    async def _run_source(
        self,
        spec: SourceSpec,
        query: str,
        variants: list[str],
        aux_terms: list[str],
    ) -> _SourceOutcome:
        """Query one source for every applicable query string, isolated."""
        if spec.uses_auxiliary_terms:
            queries = list(aux_terms)
        elif spec.expand:
            queries = variants[: self.settings.variants_per_source]
        else:
            queries = [query]
        if not queries:
            return _SourceOutcome(spec=spec, records=[])

        # variants run concurrently
        results = await asyncio.gather(
            *(self._query_cached(spec, q) for q in queries), return_exceptions=True
        )

        lists: list[list[EvidenceRecord]] = []
        errors: list[str] = []
        for q, result in zip(queries, results, strict=True):
            if isinstance(result, SourceQueryError):
                logger.warning("Source %s failed for %r: %s", spec.name, q, result.message)
                errors.append(result.message)
            elif isinstance(result, BaseException):
                raise result
            else:
                lists.append(result)

        if not lists:
            return _SourceOutcome(spec=spec, records=[], error="; ".join(errors))

        if len(lists) == 1:
            records = deduplicate(lists[0], _citation_key)
        else:
            fused = self._fuser.fuse_multiple(
                lists, _citation_key, names=[f"variant_{i}" for i in range(len(lists))]
            )
            records = [r.item for r in fused]
        return _SourceOutcome(spec=spec, records=records)

    async def _query_cached(self, spec: SourceSpec, q: str) -> list[EvidenceRecord]:
        use_cache = self.settings.semantic.use_cache
        if use_cache:
            cached = await self.cache.get(q, spec.name)
            if cached is not None:
                try:
                    return normalize_records(cached, spec.name)
                except Exception as e:
                    logger.warning("Ignoring malformed cache entry for %s: %s", spec.name, e)

        records = await self._call_source(spec, q)
        if use_cache:
            self.cache.put_nowait(
                q,
                spec.name,
                [r.model_dump(mode="json") for r in records],
                ttl=self.settings.semantic.cache_ttl,
            )
        return records

    async def _call_source(self, spec: SourceSpec, q: str) -> list[EvidenceRecord]:
        """Invoke a querier under the source timeout.

        Raises:
            SourceQueryError: On timeout, querier exception or bad output.
        """
        if spec.is_async:
            call = spec.querier(q, spec.limit)
        else:
            call = asyncio.to_thread(spec.querier, q, spec.limit)

        try:
            raw = await asyncio.wait_for(call, timeout=self.settings.source_timeout)
            records = normalize_records(raw, spec.name)
        except asyncio.TimeoutError:
            self.call_counter.record(spec.name, success=False)
            raise SourceQueryError(
                spec.name, f"timed out after {self.settings.source_timeout}s"
            ) from None
        except Exception as e:
            self.call_counter.record(spec.name, success=False)
            raise SourceQueryError(spec.name, str(e) or type(e).__name__) from e

        self.call_counter.record(spec.name)
        return records

    @staticmethod
    def _record_outcomes(package: EvidencePackage, outcomes: list[_SourceOutcome]) -> None:
        for outcome in outcomes:
            if outcome.error is not None:
                package.source_errors[outcome.spec.name] = outcome.error

    # ----------------------------------------
    # Ranking and assembly
    # ----------------------------------------

    async def _rerank_outcomes(self, query: str, outcomes: list[_SourceOutcome]) -> None:
        semantic = self.settings.semantic
        if not semantic.enable_reranking:
            return
        for outcome in outcomes:
            policy = self.settings.policy_for(outcome.spec.category.value)
            if policy is None or len(outcome.records) < policy.skip_if_few_results:
                continue

            if self.settings.enable_hybrid:
                ranked = await self._hybrid.search(
                    query,
                    outcome.records,
                    record_text,
                    _citation_key,
                    top_k=policy.top_k,
                    keyword_weight=semantic.keyword_weight,
                    semantic_weight=semantic.semantic_weight,
                )
            else:
                ranked = await self._reranker.rerank_records(
                    query,
                    outcome.records,
                    top_k=policy.top_k,
                    min_similarity=policy.min_similarity,
                    skip_if_few_results=policy.skip_if_few_results,
                    use_cache=semantic.use_cache,
                )
            outcome.records = [r.item for r in ranked]

    @staticmethod
    def _assemble(package: EvidencePackage, outcomes: list[_SourceOutcome]) -> None:
        """File each source's records under its category, in registration order."""
        for outcome in outcomes:
            package.by_source[outcome.spec.name] = list(outcome.records)
            category = package.category(outcome.spec.category.value)
            present = {r.citation_key for r in category}
            for record in outcome.records:
                if record.citation_key not in present:
                    category.append(record)
                    present.add(record.citation_key)

    def _needs_fallback(self, package: EvidencePackage) -> bool:
        return (
            package.high_quality_count < self.settings.fallback_min_high_quality
            or package.total_count < self.settings.fallback_min_total
        )

    @staticmethod
    def _step(package: EvidencePackage, name: str, start: float, detail: str) -> None:
        package.steps.append(
            {"name": name, "duration_ms": _elapsed_ms(start), "detail": detail}
        )

    # ----------------------------------------
    # Post-generation checks
    # ----------------------------------------

    def validate_citations(
        self, text: str, package: EvidencePackage
    ) -> CitationValidationResult:
        """Resolve citation markers in generated text against the package chunks."""
        return self._validator.validate(text, package.chunks)

    def validate_references(
        self, answer: str, package: EvidencePackage
    ) -> ReferenceValidationResult:
        return self._validator.validate_references(answer, package.all_records())

    def metrics_text(self) -> str:
        return get_metrics_text(self.cache.stats, self.call_counter)

    async def close(self) -> None:
        await self.cache.close()


