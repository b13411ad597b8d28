"""
MedEvidence Test Configuration

Pytest fixtures and configuration for the test suite.
"""

import hashlib
import math
import re

import pytest

from medevidence.models import EvidencePackage, EvidenceRecord

# ============================================
# Embedding Fixtures
# ============================================

FAKE_DIMENSION = 64


class FakeEmbeddings:
    """Deterministic bag-of-words embeddings, L2-normalized.

    Texts sharing words get a positive cosine similarity, so ranking
    tests can reason about expected order without a model.
    """

    def __init__(self, dimension: int = FAKE_DIMENSION):
        self.dimension = dimension
        self.batch_calls: list[list[str]] = []
        self.query_calls: list[str] = []

    def _vector(self, text: str) -> list[float]:
        vec = [0.0] * self.dimension
        for word in re.findall(r"[a-z0-9]+", text.lower()):
            digest = hashlib.sha256(word.encode()).digest()
            vec[digest[0] % self.dimension] += 1.0
        norm = math.sqrt(sum(v * v for v in vec))
        if norm == 0:
            vec[0] = 1.0
            return vec
        return [v / norm for v in vec]

    async def embed(self, text: str) -> list[float]:
        self.query_calls.append(text)
        return self._vector(text)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.batch_calls.append(list(texts))
        return [self._vector(t) for t in texts]


class FailingEmbeddings:
    """Embedding provider whose every call raises."""

    dimension = FAKE_DIMENSION

    async def embed(self, text: str) -> list[float]:
        raise RuntimeError("embedding service unavailable")

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        raise RuntimeError("embedding service unavailable")


@pytest.fixture
def fake_embeddings() -> FakeEmbeddings:
    return FakeEmbeddings()


@pytest.fixture
def failing_embeddings() -> FailingEmbeddings:
    return FailingEmbeddings()


# ============================================
# Sample Data Fixtures
# ============================================


def make_record(record_id: str, title: str = "", **fields) -> EvidenceRecord:
    return EvidenceRecord(id=record_id, title=title or f"Article {record_id}", **fields)


@pytest.fixture
def record_factory():
    """Build EvidenceRecord instances with sensible defaults."""
    return make_record


@pytest.fixture
def sample_article() -> EvidenceRecord:
    return EvidenceRecord(
        id="12345",
        title="Metformin and cardiovascular outcomes in type 2 diabetes",
        abstract=(
            "Metformin is first-line therapy for type 2 diabetes. "
            "This trial enrolled 4,000 adults. "
            "Cardiovascular mortality was reduced by 15%."
        ),
        authors=["Smith J", "Lee K"],
        source="pubmed",
        publication_date="2023-01-15",
        journal="Diabetes Care",
        doi="10.2337/dc23-0001",
        type_tags=["rct"],
    )


@pytest.fixture
def conflicting_guidelines() -> list[EvidenceRecord]:
    return [
        EvidenceRecord(
            id="who-1",
            id_type="GUIDELINE",
            title="WHO Diabetes Management",
            summary="Recommend insulin therapy",
            source="WHO",
            publication_date="2024",
            type_tags=["guideline"],
        ),
        EvidenceRecord(
            id="cdc-1",
            id_type="GUIDELINE",
            title="CDC Diabetes Management",
            summary="Do not recommend insulin therapy",
            source="CDC",
            publication_date="2024",
            type_tags=["guideline"],
        ),
    ]


@pytest.fixture
def empty_package() -> EvidencePackage:
    return EvidencePackage(query="test query")


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")
    config.addinivalue_line("markers", "requires_redis: test requires Redis connection")
    config.addinivalue_line(
        "markers", "requires_model: test downloads a sentence-transformers model"
    )
