"""
MedEvidence Data Models

Records returned by evidence sources, sentence chunks derived from them,
and the result types produced by ranking, scoring and validation.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")

_YEAR_PATTERN = re.compile(r"\b(\d{4})\b")


# ============================================
# Evidence Records
# ============================================


class EvidenceRecord(BaseModel):
    """One item returned by an evidence source.

    Attributes:
        id: Source identifier (PMID, DOI, NCT number, guideline id...).
        id_type: Identifier scheme, e.g. "PMID", "DOI" or "NCT".
        title: Record title.
        abstract: Abstract text, if the source provides one.
        summary: Recommendation or summary text (guidelines).
        source: Name of the source that returned the record.
        publication_date: Year-first date string ("2023" or "2023-01-15").
        type_tags: Publication type labels ("guideline", "rct"...).
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Source identifier")
    id_type: str = Field(default="PMID", description="Identifier scheme")
    title: str = Field(default="", description="Record title")
    abstract: str | None = None
    summary: str | None = None
    authors: list[str] = Field(default_factory=list)
    source: str = Field(default="", description="Name of the originating source")
    publication_date: str | None = None
    type_tags: list[str] = Field(default_factory=list)
    doi: str | None = None
    url: str | None = None
    journal: str | None = None
    study_type: str | None = None
    has_results: bool | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def citation_key(self) -> str:
        return f"{self.id_type}:{self.id}"

    @property
    def body(self) -> str:
        """Abstract if present, else summary, else empty string."""
        return self.abstract or self.summary or ""

    @property
    def publication_year(self) -> int | None:
        if not self.publication_date:
            return None
        match = _YEAR_PATTERN.search(self.publication_date)
        return int(match.group(1)) if match else None

    def has_tag(self, tag: str) -> bool:
        wanted = tag.lower()
        return any(t.lower() == wanted for t in self.type_tags)


# ============================================
# Sentence Chunks
# ============================================


class ChunkMetadata(BaseModel):
    """Citation information copied from the parent record."""

    model_config = ConfigDict(frozen=True)

    title: str = ""
    authors: list[str] = Field(default_factory=list)
    source: str = ""
    journal: str | None = None
    publication_date: str | None = None
    doi: str | None = None


class Chunk(BaseModel):
    """A single sentence of a record body, addressable for citation.

    The id has the form ``<ID_TYPE>:<id>:S:<index>``, e.g. ``PMID:12345:S:0``.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    source_id: str
    id_type: str = "PMID"
    sentence_index: int = Field(..., ge=0)
    text: str
    before: str | None = None
    after: str | None = None
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)


# ============================================
# Ranking
# ============================================


@dataclass
class RankedResult(Generic[T]):
    """An item with a relevance score and provenance of its rank.

    original_rank is the index in the reranker's input list; ranks maps a
    fused list name to the item's zero-based rank in that list.
    """

    item: T
    score: float
    original_rank: int | None = None
    ranks: dict[str, int] = field(default_factory=dict)
    sources: list[str] = field(default_factory=list)


# ============================================
# Scoring
# ============================================


@dataclass
class SufficiencyScore:
    """Evidence quality summary (0-100) with its per-rule breakdown."""

    score: int
    level: str
    breakdown: dict[str, int] = field(default_factory=dict)
    reasoning: list[str] = field(default_factory=list)


@dataclass
class Conflict:
    """Two guidelines from different sources disagreeing on a topic."""

    source_a: str
    source_b: str
    topic: str
    description: str


# ============================================
# Citation Validation
# ============================================


@dataclass
class InvalidCitation:
    identifier: str
    reason: str
    raw: str = ""
    position: int = 0
    sentence_index: int | None = None


@dataclass
class CitationValidationResult:
    total_citations: int
    valid_citations: int
    invalid_citations: list[InvalidCitation] = field(default_factory=list)
    precision: float = 1.0
    details: dict[str, int] = field(default_factory=dict)


@dataclass
class ReferenceIssue:
    citation: str
    reason: str


@dataclass
class ReferenceValidationResult:
    """Outcome of checking a References section against supplied records."""

    is_valid: bool
    total_references: int
    verified_references: int
    hallucinations: list[ReferenceIssue] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# ============================================
# Evidence Package
# ============================================

CATEGORIES = (
    "literature",
    "systematic_reviews",
    "gold_standard_reviews",
    "guidelines",
    "clinical_trials",
    "consumer_health",
)


@dataclass
class EvidencePackage:
    """Everything gathered for one query.

    Every field is always present; lists and dicts may be empty.
    """

    query: str
    expanded_queries: list[str] = field(default_factory=list)
    pico: Any = None
    literature: list[EvidenceRecord] = field(default_factory=list)
    systematic_reviews: list[EvidenceRecord] = field(default_factory=list)
    gold_standard_reviews: list[EvidenceRecord] = field(default_factory=list)
    guidelines: list[EvidenceRecord] = field(default_factory=list)
    clinical_trials: list[EvidenceRecord] = field(default_factory=list)
    consumer_health: list[EvidenceRecord] = field(default_factory=list)
    by_source: dict[str, list[EvidenceRecord]] = field(default_factory=dict)
    source_errors: dict[str, str] = field(default_factory=dict)
    fallback_used: bool = False
    sufficiency: SufficiencyScore | None = None
    conflicts: list[Conflict] = field(default_factory=list)
    chunks: list[Chunk] = field(default_factory=list)
    steps: list[dict] = field(default_factory=list)
    enhancement_errors: dict[str, str] = field(default_factory=dict)
    timestamp: str = ""

    def category(self, name: str) -> list[EvidenceRecord]:
        return getattr(self, name)

    def all_records(self) -> list[EvidenceRecord]:
        """Every record across categories, first occurrence per citation key."""
        seen: set[str] = set()
        records = []
        for name in CATEGORIES:
            for record in self.category(name):
                if record.citation_key in seen:
                    continue
                seen.add(record.citation_key)
                records.append(record)
        return records

    @property
    def total_count(self) -> int:
        return sum(len(self.category(name)) for name in CATEGORIES)

    @property
    def high_quality_count(self) -> int:
        return (
            len(self.guidelines)
            + len(self.systematic_reviews)
            + len(self.gold_standard_reviews)
        )
