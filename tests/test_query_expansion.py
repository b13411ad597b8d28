"""
Tests for PICO extraction and synonym expansion.
"""

import pytest

from medevidence.rag.query_expansion import MAX_EXPANDED_QUERIES, PICOExtractor


@pytest.fixture
def extractor():
    return PICOExtractor()


class TestExtractPICO:
    """Tests for PICO element extraction."""

    @pytest.mark.unit
    def test_population_terms(self, extractor):
        pico = extractor.extract_pico("Statin therapy in elderly patients")
        assert "elderly" in pico.population
        assert "patients" in pico.population

    @pytest.mark.unit
    def test_intervention_terms(self, extractor):
        pico = extractor.extract_pico("Exercise therapy for knee pain")
        assert pico.intervention == ["therapy", "exercise"]

    @pytest.mark.unit
    def test_drug_suffixes(self, extractor):
        pico = extractor.extract_pico("atorvastatin or lisinopril or losartan")
        assert pico.intervention == ["atorvastatin", "lisinopril", "losartan"]

    @pytest.mark.unit
    def test_comparator(self, extractor):
        pico = extractor.extract_pico("aspirin versus placebo")
        assert pico.comparator == ["versus placebo", "placebo"]

    @pytest.mark.unit
    def test_outcomes(self, extractor):
        pico = extractor.extract_pico("effect of metformin on mortality and quality of life")
        assert "mortality" in pico.outcome
        assert "quality of life" in pico.outcome

    @pytest.mark.unit
    def test_all_matching_rules_contribute(self, extractor):
        pico = extractor.extract_pico("adults with type 2 diabetes")
        assert pico.population[0] == "adults"
        assert "type 2" in pico.population
        assert "with type" in pico.population

    @pytest.mark.unit
    def test_terms_deduplicated(self, extractor):
        pico = extractor.extract_pico("therapy therapy therapy")
        assert pico.intervention == ["therapy"]

    @pytest.mark.unit
    def test_terms_are_lowercased(self, extractor):
        pico = extractor.extract_pico("MORTALITY in ADULTS")
        assert pico.outcome == ["mortality"]
        assert pico.population == ["adults"]

    @pytest.mark.unit
    def test_original_query_kept(self, extractor):
        assert extractor.extract_pico("Hello").original_query == "Hello"

    @pytest.mark.unit
    def test_nothing_found(self, extractor):
        pico = extractor.extract_pico("hello world")
        assert pico.population == []
        assert pico.intervention == []
        assert pico.comparator == []
        assert pico.outcome == []


class TestExpandQuery:
    """Tests for synonym expansion."""

    @pytest.mark.unit
    def test_original_first(self, extractor):
        expanded = extractor.expand_query("metformin for diabetes")
        assert expanded.expanded[0] == "metformin for diabetes"
        assert expanded.original == "metformin for diabetes"

    @pytest.mark.unit
    def test_synonym_substitution(self, extractor):
        expanded = extractor.expand_query("aspirin for headache")
        assert "acetylsalicylic acid for headache" in expanded.expanded

    @pytest.mark.unit
    def test_capped_at_five(self, extractor):
        expanded = extractor.expand_query("metformin for diabetes and heart attack mortality")
        assert len(expanded.expanded) == MAX_EXPANDED_QUERIES

    @pytest.mark.unit
    def test_custom_cap(self, extractor):
        expanded = extractor.expand_query("diabetes", max_variants=2)
        assert expanded.expanded == ["diabetes", "diabetes mellitus"]

    @pytest.mark.unit
    def test_no_known_terms(self, extractor):
        assert extractor.expand_query("knee pain").expanded == ["knee pain"]

    @pytest.mark.unit
    def test_case_insensitive_match(self, extractor):
        expanded = extractor.expand_query("Metformin dosing")
        assert "glucophage dosing" in expanded.expanded

    @pytest.mark.unit
    def test_word_boundaries(self, extractor):
        # "statin" is a key, but not as part of "atorvastatin"
        assert extractor.expand_query("atorvastatin dosing").expanded == ["atorvastatin dosing"]

    @pytest.mark.unit
    def test_variants_unique(self, extractor):
        expanded = extractor.expand_query("morbidity and adverse effects")
        assert len(expanded.expanded) == len(set(expanded.expanded))

    @pytest.mark.unit
    def test_pico_attached(self, extractor):
        expanded = extractor.expand_query("insulin therapy mortality")
        assert "therapy" in expanded.pico.intervention


class TestIsClinicalQuestion:
    @pytest.mark.unit
    @pytest.mark.parametrize(
        "query,expected",
        [
            ("Does statin therapy reduce mortality?", True),
            ("surgery for hip fracture", True),
            ("improvement in symptoms", True),
            ("what is the capital of france", False),
            ("elderly patients", False),
        ],
    )
    def test_requires_intervention_or_outcome(self, extractor, query, expected):
        assert extractor.is_clinical_question(query) is expected
