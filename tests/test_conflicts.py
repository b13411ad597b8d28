"""
Tests for guideline conflict detection.
"""

import pytest

from medevidence.models import EvidencePackage, EvidenceRecord
from medevidence.scoring.conflicts import (
    NEGATIVE,
    NEUTRAL,
    POSITIVE,
    ConflictDetector,
    format_conflicts_for_prompt,
    guideline_candidates,
    polarity,
)


def _guideline(record_id, source, title, summary):
    return EvidenceRecord(
        id=record_id,
        id_type="GUIDELINE",
        title=title,
        summary=summary,
        source=source,
        type_tags=["guideline"],
    )


@pytest.fixture
def detector():
    return ConflictDetector()


class TestPolarity:
    @pytest.mark.unit
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Recommend insulin therapy", POSITIVE),
            ("Metformin is first-line treatment", POSITIVE),
            ("Do not recommend insulin therapy", NEGATIVE),
            ("Aspirin is not recommended for primary prevention", NEGATIVE),
            ("Avoid NSAIDs in heart failure", NEGATIVE),
            ("Beta blockers are contraindicated", NEGATIVE),
            ("Insulin therapy lowers glucose", NEUTRAL),
        ],
    )
    def test_polarity(self, text, expected):
        assert polarity(text) == expected


class TestDetect:
    """Tests for pairwise detection over a package."""

    @pytest.mark.unit
    def test_opposite_recommendations(self, detector, conflicting_guidelines):
        package = EvidencePackage(query="q", guidelines=conflicting_guidelines)
        conflicts = detector.detect(package)

        assert len(conflicts) == 1
        conflict = conflicts[0]
        assert conflict.source_a == "GUIDELINE:who-1"
        assert conflict.source_b == "GUIDELINE:cdc-1"
        assert conflict.topic == "diabetes management"
        assert conflict.description == (
            "WHO recommends insulin therapy while CDC advises against it "
            "(diabetes management)"
        )

    @pytest.mark.unit
    def test_pro_source_named_first_in_description(self, detector, conflicting_guidelines):
        package = EvidencePackage(query="q", guidelines=list(reversed(conflicting_guidelines)))
        conflict = detector.detect(package)[0]
        assert conflict.source_a == "GUIDELINE:cdc-1"
        assert conflict.description.startswith("WHO recommends")

    @pytest.mark.unit
    def test_no_package(self, detector):
        assert detector.detect(None) == []

    @pytest.mark.unit
    def test_empty_package(self, detector, empty_package):
        assert detector.detect(empty_package) == []

    @pytest.mark.unit
    def test_no_guidelines(self, detector, sample_article):
        package = EvidencePackage(query="q", literature=[sample_article])
        assert detector.detect(package) == []

    @pytest.mark.unit
    def test_same_source_not_compared(self, detector):
        package = EvidencePackage(
            query="q",
            guidelines=[
                _guideline("1", "WHO", "Diabetes Management", "Recommend insulin therapy"),
                _guideline("2", "WHO", "Diabetes Management", "Do not recommend insulin therapy"),
            ],
        )
        assert detector.detect(package) == []

    @pytest.mark.unit
    def test_agreement_is_not_conflict(self, detector):
        package = EvidencePackage(
            query="q",
            guidelines=[
                _guideline("1", "WHO", "Diabetes Management", "Recommend insulin therapy"),
                _guideline("2", "CDC", "Diabetes Management", "Insulin therapy is recommended"),
            ],
        )
        assert detector.detect(package) == []

    @pytest.mark.unit
    def test_different_topics(self, detector):
        package = EvidencePackage(
            query="q",
            guidelines=[
                _guideline("1", "WHO", "Diabetes Management", "Recommend insulin therapy"),
                _guideline("2", "CDC", "Asthma Control", "Do not recommend insulin therapy"),
            ],
        )
        assert detector.detect(package) == []

    @pytest.mark.unit
    def test_different_interventions(self, detector):
        package = EvidencePackage(
            query="q",
            guidelines=[
                _guideline("1", "WHO", "Diabetes Management", "Recommend metformin"),
                _guideline("2", "CDC", "Diabetes Management", "Avoid sulfonylureas"),
            ],
        )
        assert detector.detect(package) == []

    @pytest.mark.unit
    def test_tagged_records_outside_guidelines(self, detector, conflicting_guidelines):
        package = EvidencePackage(
            query="q",
            guidelines=[conflicting_guidelines[0]],
            literature=[conflicting_guidelines[1]],
        )
        assert len(detector.detect(package)) == 1

    @pytest.mark.unit
    def test_malformed_record_does_not_abort_other_pairs(
        self, detector, conflicting_guidelines, caplog
    ):
        broken = EvidenceRecord.model_construct(
            id="broken", id_type="GUIDELINE", title=None, summary=None, source="NICE"
        )
        package = EvidencePackage(
            query="q", guidelines=[broken, *conflicting_guidelines]
        )
        conflicts = detector.detect(package)

        assert len(conflicts) == 1
        assert conflicts[0].source_a == "GUIDELINE:who-1"
        assert "Skipping malformed guideline pair" in caplog.text

    @pytest.mark.unit
    def test_malformed_collection(self, detector):
        package = EvidencePackage(query="q")
        package.guidelines = 5
        assert detector.detect(package) == []


class TestGuidelineCandidates:
    @pytest.mark.unit
    def test_no_duplicates(self, conflicting_guidelines):
        package = EvidencePackage(
            query="q",
            guidelines=conflicting_guidelines,
            literature=conflicting_guidelines,
        )
        assert len(guideline_candidates(package)) == 2


class TestFormatConflicts:
    @pytest.mark.unit
    def test_empty(self):
        assert format_conflicts_for_prompt([]) == ""

    @pytest.mark.unit
    def test_lists_sources(self, detector, conflicting_guidelines):
        conflicts = detector.detect(EvidencePackage(query="q", guidelines=conflicting_guidelines))
        text = format_conflicts_for_prompt(conflicts)
        assert "1. [diabetes management]" in text
        assert "Sources: GUIDELINE:who-1 vs GUIDELINE:cdc-1" in text
