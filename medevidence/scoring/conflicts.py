"""
Guideline Conflict Detection

Flags pairs of guidelines from different sources that address the same
topic with opposite recommendation language. The rules are lexical:

- topic: significant terms shared by both titles
- polarity: negation patterns win over affirmation patterns
- conflict: opposite polarities and at least one shared intervention term

Conflicts are advisory annotations for the answer generator.
"""

import logging
import re
from itertools import combinations

from medevidence.models import Conflict, EvidencePackage, EvidenceRecord
from medevidence.rag.retriever import tokenize

logger = logging.getLogger(__name__)

POSITIVE = 1
NEUTRAL = 0
NEGATIVE = -1

NEGATION_PATTERNS: list[re.Pattern] = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\b(do|does|should|must)\s+not\s+(recommend|use|give|start|prescribe)",
        r"\bnot\s+recommended\b",
        r"\brecommends?\s+against\b",
        r"\bshould\s+not\b",
        r"\bavoid(ed|ance)?\b",
        r"\bcontraindicated\b",
        r"\bdiscourage[sd]?\b",
    )
]

AFFIRMATION_PATTERNS: list[re.Pattern] = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\brecommend(s|ed)?\b",
        r"\bshould\b",
        r"\bindicated\b",
        r"\bfirst[- ]line\b",
        r"\bpreferred\b",
        r"\bsuggest(s|ed)?\b",
    )
]

# Recommendation vocabulary, not subject matter
POLARITY_TERMS: set[str] = {
    "recommend", "recommends", "recommended", "recommendation", "recommendations",
    "not", "should", "must", "avoid", "avoided", "avoidance", "against",
    "contraindicated", "indicated", "first-line", "first", "line", "preferred",
    "suggest", "suggests", "suggested", "discourage", "discouraged", "use",
    "give", "start", "prescribe", "guideline", "guidelines",
}  # fmt: skip


def polarity(text: str) -> int:
    """-1 for negated advice, 1 for affirmed advice, 0 otherwise."""
    if any(p.search(text) for p in NEGATION_PATTERNS):
        return NEGATIVE
    if any(p.search(text) for p in AFFIRMATION_PATTERNS):
        return POSITIVE
    return NEUTRAL


def _significant_terms(text: str, exclude: set[str]) -> list[str]:
    terms = []
    for token in tokenize(text):
        if token in exclude or token in POLARITY_TERMS or len(token) < 3:
            continue
        if token not in terms:
            terms.append(token)
    return terms


def guideline_candidates(evidence: EvidencePackage) -> list[EvidenceRecord]:
    """Guidelines category plus records tagged "guideline" elsewhere."""
    candidates = list(getattr(evidence, "guidelines", None) or [])
    seen = {id(r) for r in candidates}
    for name in ("literature", "systematic_reviews", "gold_standard_reviews"):
        for record in getattr(evidence, name, None) or []:
            if id(record) in seen:
                continue
            try:
                tagged = record.has_tag("guideline")
            except Exception:
                tagged = False
            if tagged:
                candidates.append(record)
                seen.add(id(record))
    return candidates


class ConflictDetector:
    """Pairwise lexical comparison of guideline recommendations."""

    def detect(self, evidence: EvidencePackage | None) -> list[Conflict]:
        if evidence is None:
            return []

        try:
            candidates = guideline_candidates(evidence)
        except Exception as e:
            logger.warning("Collecting guidelines for conflict check failed: %s", e)
            return []

        conflicts: list[Conflict] = []
        for a, b in combinations(candidates, 2):
            try:
                conflict = self.compare(a, b)
            except Exception as e:
                logger.warning("Skipping malformed guideline pair: %s", e)
                continue
            if conflict is not None:
                conflicts.append(conflict)
        return conflicts

    def compare(self, a: EvidenceRecord, b: EvidenceRecord) -> Conflict | None:
        """Conflict between two records, or None.

        Raises on records missing title or recommendation text; detect()
        isolates that per pair.
        """
        if not a.source or not b.source or a.source == b.source:
            return None
        if not a.title or not b.title:
            raise ValueError("guideline record without title")
        text_a, text_b = a.body, b.body
        if not text_a or not text_b:
            raise ValueError("guideline record without recommendation text")

        source_terms = set(tokenize(f"{a.source} {b.source}"))
        title_b = set(_significant_terms(b.title, source_terms))
        topic_terms = [t for t in _significant_terms(a.title, source_terms) if t in title_b]
        if not topic_terms:
            return None

        pol_a, pol_b = polarity(text_a), polarity(text_b)
        if pol_a == NEUTRAL or pol_b == NEUTRAL or pol_a == pol_b:
            return None

        body_b = set(_significant_terms(text_b, source_terms))
        shared = [t for t in _significant_terms(text_a, source_terms) if t in body_b]
        if not shared:
            return None

        topic = " ".join(topic_terms)
        pro, con = (a, b) if pol_a == POSITIVE else (b, a)
        return Conflict(
            source_a=a.citation_key,
            source_b=b.citation_key,
            topic=topic,
            description=(
                f"{pro.source} recommends {' '.join(shared)} while "
                f"{con.source} advises against it ({topic})"
            ),
        )


def format_conflicts_for_prompt(conflicts: list[Conflict]) -> str:
    """Human-readable conflict notice; empty string when there are none."""
    if not conflicts:
        return ""
    lines = ["--- CONFLICTING GUIDANCE ---"]
    for i, conflict in enumerate(conflicts, 1):
        lines.append(f"{i}. [{conflict.topic}] {conflict.description}")
        lines.append(f"   Sources: {conflict.source_a} vs {conflict.source_b}")
    lines.append(
        "Acknowledge the disagreement and explain which recommendation applies."
    )
    lines.append("--- END CONFLICTING GUIDANCE ---")
    return "\n".join(lines)
