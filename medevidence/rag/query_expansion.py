"""
PICO Query Expansion

Pattern-based extraction of Population, Intervention, Comparator and
Outcome terms from a clinical question, plus synonym substitution to
widen recall across literature sources.

Extraction uses every matching rule per category (not first-match);
terms are deduplicated in order of discovery. Both tables are compiled
once at import.
"""

import logging
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

MAX_EXPANDED_QUERIES = 5

# ============================================
# Rule Tables
# ============================================

POPULATION = "population"
INTERVENTION = "intervention"
COMPARATOR = "comparator"
OUTCOME = "outcome"

PICO_RULES: list[tuple[str, re.Pattern]] = [
    (POPULATION, re.compile(r"\b(adult|adults|elderly|children|pediatric|infant|adolescent|geriatric)\b")),
    (POPULATION, re.compile(r"\b(men|women|male|female|patient|patients)\b")),
    (POPULATION, re.compile(r"\b(with|having|diagnosed with)\s+([a-z\s]+)")),
    (POPULATION, re.compile(r"\b(type\s+\d+)\b")),
    (INTERVENTION, re.compile(r"\b(treatment|therapy|medication|drug|intervention)\b")),
    (INTERVENTION, re.compile(r"\b(surgery|procedure|operation)\b")),
    (INTERVENTION, re.compile(r"\b(exercise|diet|lifestyle)\b")),
    # drug name suffixes
    (INTERVENTION, re.compile(r"\b([a-z]+mycin|[a-z]+cillin|[a-z]+statin|[a-z]+pril|[a-z]+sartan)\b")),
    (COMPARATOR, re.compile(r"\b(vs|versus|compared to|compared with|against)\s+([a-z\s]+)")),
    (COMPARATOR, re.compile(r"\b(placebo|control|standard care)\b")),
    (OUTCOME, re.compile(r"\b(mortality|death|survival)\b")),
    (OUTCOME, re.compile(r"\b(efficacy|effectiveness|benefit)\b")),
    (OUTCOME, re.compile(r"\b(adverse|side effects|complications|toxicity)\b")),
    (OUTCOME, re.compile(r"\b(quality of life|qol)\b")),
    (OUTCOME, re.compile(r"\b(reduction|improvement|decrease|increase)\b")),
]  # fmt: skip

MEDICAL_SYNONYMS: dict[str, list[str]] = {
    # Conditions
    "diabetes": ["diabetes mellitus", "diabetic", "hyperglycemia", "high blood sugar"],
    "heart attack": ["myocardial infarction", "MI", "cardiac infarction", "coronary thrombosis"],
    "high blood pressure": ["hypertension", "elevated blood pressure", "HTN"],
    "stroke": ["cerebrovascular accident", "CVA", "brain attack", "cerebral infarction"],
    "heart failure": ["cardiac failure", "congestive heart failure", "CHF"],
    "copd": ["chronic obstructive pulmonary disease", "emphysema", "chronic bronchitis"],
    "asthma": ["bronchial asthma", "reactive airway disease"],
    # Treatments
    "metformin": ["glucophage", "biguanide"],
    "aspirin": ["acetylsalicylic acid", "ASA"],
    "insulin": ["insulin therapy", "insulin treatment"],
    "statin": ["HMG-CoA reductase inhibitor", "atorvastatin", "simvastatin"],
    "beta blocker": ["beta-adrenergic blocker", "beta-adrenergic antagonist"],
    "ace inhibitor": ["ACE-I", "angiotensin-converting enzyme inhibitor"],
    # Outcomes
    "mortality": ["death", "survival", "fatality"],
    "morbidity": ["disease", "illness", "complications"],
    "quality of life": ["QOL", "life quality", "well-being"],
    "hospitalization": ["hospital admission", "inpatient care"],
    "adverse effects": ["side effects", "adverse events", "complications", "toxicity"],
}  # fmt: skip

_COMPILED_SYNONYM_PATTERNS: list[tuple[re.Pattern, list[str]]] = [
    (re.compile(r"\b" + re.escape(term) + r"\b", re.IGNORECASE), synonyms)
    for term, synonyms in MEDICAL_SYNONYMS.items()
]


# ============================================
# Data Models
# ============================================


@dataclass
class PICOElements:
    original_query: str
    population: list[str] = field(default_factory=list)
    intervention: list[str] = field(default_factory=list)
    comparator: list[str] = field(default_factory=list)
    outcome: list[str] = field(default_factory=list)

    def terms(self, category: str) -> list[str]:
        return getattr(self, category)


@dataclass
class ExpandedQuery:
    """The original query plus synonym variants, original always first."""

    original: str
    expanded: list[str]
    pico: PICOElements


# ============================================
# PICOExtractor
# ============================================


class PICOExtractor:
    """Rule-driven PICO extraction and synonym expansion."""

    def __init__(self, rules: list[tuple[str, re.Pattern]] | None = None):
        self._rules = rules if rules is not None else PICO_RULES

    def extract_pico(self, query: str) -> PICOElements:
        elements = PICOElements(original_query=query)
        lowered = query.lower()
        for category, pattern in self._rules:
            found = elements.terms(category)
            for match in pattern.finditer(lowered):
                term = match.group(0).strip()
                if term and term not in found:
                    found.append(term)
        return elements

    def expand_query(
        self, query: str, max_variants: int = MAX_EXPANDED_QUERIES
    ) -> ExpandedQuery:
        """Substitute each recognized term with each of its synonyms.

        One variant per synonym, in table order; capped at max_variants
        including the original.
        """
        variants = [query]
        for pattern, synonyms in _COMPILED_SYNONYM_PATTERNS:
            if not pattern.search(query):
                continue
            for synonym in synonyms:
                # a plain-string replacement, so backslashes are not escapes
                variant = pattern.sub(lambda _m, s=synonym: s, query)
                if variant != query and variant not in variants:
                    variants.append(variant)

        limit = max(1, max_variants)
        return ExpandedQuery(
            original=query,
            expanded=variants[:limit],
            pico=self.extract_pico(query),
        )

    def is_clinical_question(self, query: str) -> bool:
        pico = self.extract_pico(query)
        return bool(pico.intervention or pico.outcome)
