"""
Tests for citation marker extraction and validation.
"""

import pytest

from medevidence.llm.citation_validator import NOT_FOUND_REASON, CitationValidator
from medevidence.models import Chunk, EvidenceRecord
from medevidence.rag.chunker import SentenceSplitter


def _chunk(source_id, sentence_index, id_type="PMID"):
    return Chunk(
        id=f"{id_type}:{source_id}:S:{sentence_index}",
        source_id=source_id,
        id_type=id_type,
        sentence_index=sentence_index,
        text=f"Sentence {sentence_index}.",
    )


@pytest.fixture
def validator():
    return CitationValidator()


@pytest.fixture
def corpus():
    return [_chunk("123", 0), _chunk("123", 1), _chunk("123", 2)]


class TestExtractCitations:
    @pytest.mark.unit
    def test_marker_forms(self, validator):
        text = "A [PMID:123, S:2]. B [DOI:10.1000/xyz]. C [NCT01234567]. D [12345]."
        markers = validator.extract_citations(text)

        assert [(m.scheme, m.identifier, m.sentence_index) for m in markers] == [
            ("PMID", "123", 2),
            ("DOI", "10.1000/xyz", None),
            ("NCT", "NCT01234567", None),
            (None, "12345", None),
        ]
        assert markers[0].raw == "[PMID:123, S:2]"
        assert markers[0].position == 2

    @pytest.mark.unit
    def test_ordinary_brackets_ignored(self, validator):
        text = "See [note: below], [1], [a] and [pmid:123]."
        assert validator.extract_citations(text) == []

    @pytest.mark.unit
    def test_empty_text(self, validator):
        assert validator.extract_citations("") == []


class TestValidate:
    """Tests for resolving markers against the chunk corpus."""

    @pytest.mark.unit
    def test_valid_and_invalid_ids(self, validator, corpus):
        result = validator.validate("Works [PMID:123]. Also [PMID:999].", corpus)

        assert result.total_citations == 2
        assert result.valid_citations == 1
        assert result.precision == pytest.approx(0.5)
        assert len(result.invalid_citations) == 1
        assert result.invalid_citations[0].identifier == "999"
        assert result.invalid_citations[0].reason == NOT_FOUND_REASON
        assert result.details["id_valid"] == 1
        assert result.details["id_invalid"] == 1

    @pytest.mark.unit
    def test_sentence_markers(self, validator, corpus):
        result = validator.validate("Yes [PMID:123, S:1]. No [PMID:123, S:9].", corpus)

        assert result.valid_citations == 1
        assert result.details == {
            "id_valid": 2,
            "sentence_valid": 1,
            "id_invalid": 0,
            "sentence_invalid": 1,
        }
        invalid = result.invalid_citations[0]
        assert invalid.sentence_index == 9
        assert invalid.reason == "sentence 9 not found for 123"

    @pytest.mark.unit
    def test_no_citations_full_precision(self, validator, corpus):
        result = validator.validate("No markers here.", corpus)
        assert result.total_citations == 0
        assert result.precision == 1.0

    @pytest.mark.unit
    def test_empty_corpus(self, validator):
        result = validator.validate("Claim [PMID:123].", [])
        assert result.precision == 0.0
        assert result.invalid_citations[0].reason == NOT_FOUND_REASON

    @pytest.mark.unit
    def test_scheme_must_match(self, validator, corpus):
        result = validator.validate("Claim [DOI:123].", corpus)
        assert result.valid_citations == 0

    @pytest.mark.unit
    def test_bare_id_matches_any_scheme(self, validator):
        corpus = [_chunk("55555", 0, id_type="GUIDELINE")]
        result = validator.validate("Claim [55555].", corpus)
        assert result.valid_citations == 1

    @pytest.mark.unit
    def test_trial_marker(self, validator):
        corpus = [_chunk("NCT01234567", 0, id_type="NCT")]
        assert validator.validate("Trial [NCT01234567].", corpus).precision == 1.0

    @pytest.mark.unit
    def test_against_split_article(self, validator, sample_article):
        corpus = SentenceSplitter().create_chunks(sample_article)
        result = validator.validate(
            "Mortality fell [PMID:12345, S:2] in a large trial [12345].", corpus
        )
        assert result.valid_citations == 2


class TestValidateReferences:
    """Tests for the References section check."""

    @pytest.mark.unit
    def test_verified_and_hallucinated_entries(self, validator, sample_article):
        answer = (
            "Metformin helps [1][2].\n\n"
            "References:\n"
            "1. Smith J. Metformin trial. Diabetes Care. PMID: 12345\n"
            "2. Made up paper. PMID: 99999\n"
        )
        result = validator.validate_references(answer, [sample_article])

        assert result.total_references == 2
        assert result.verified_references == 1
        assert not result.is_valid
        assert result.hallucinations[0].citation == "[2] PMID:99999"
        assert result.hallucinations[0].reason == "PMID:99999 not found in provided evidence"
        assert result.warnings == []

    @pytest.mark.unit
    def test_doi_reference(self, validator, sample_article):
        answer = "Text [1].\n\nReferences\n1. Smith J. Diabetes Care. doi:10.2337/dc23-0001.\n"
        result = validator.validate_references(answer, [sample_article])
        assert result.is_valid
        assert result.verified_references == 1

    @pytest.mark.unit
    def test_reference_without_identifier(self, validator, sample_article):
        answer = "Text [1].\n\n## References\n1. Some textbook chapter\n"
        result = validator.validate_references(answer, [sample_article])
        assert result.hallucinations[0].reason == "Reference 1 has no PMID, DOI, or NCT ID"

    @pytest.mark.unit
    def test_authoritative_source_without_identifier(self, validator, sample_article):
        answer = (
            "Text [1].\n\nReferences:\n"
            "1. American Diabetes Association. Standards of Care in Diabetes 2024.\n"
        )
        result = validator.validate_references(answer, [sample_article])
        assert result.is_valid
        assert result.verified_references == 1

    @pytest.mark.unit
    def test_missing_references_section(self, validator, sample_article):
        result = validator.validate_references("Claim [PMID:12345].", [sample_article])
        assert result.total_references == 0
        assert "Citations found in text but no References section detected" in result.warnings
        assert "Evidence was provided but no references were cited" in result.warnings

    @pytest.mark.unit
    def test_more_citations_than_references(self, validator, sample_article):
        answer = "A [1]. B [2]. C [3].\n\nReferences:\n1. Smith J. PMID: 12345\n"
        result = validator.validate_references(answer, [sample_article])
        assert "Found 3 citations but only 1 references" in result.warnings

    @pytest.mark.unit
    def test_trial_reference(self, validator):
        trial = EvidenceRecord(id="NCT01234567", id_type="NCT", title="Trial")
        answer = "A [1].\n\nReferences:\n1. Trial registry entry NCT01234567\n"
        assert validator.validate_references(answer, [trial]).is_valid
