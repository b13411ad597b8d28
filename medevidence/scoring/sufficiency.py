"""
Evidence Sufficiency Scoring

Rates an evidence package 0-100 from the presence of high-quality source
types so the answer generator can flag thin evidence. Each rule is
evaluated on its own; a malformed collection zeroes only that rule.
"""

import logging
from collections.abc import Callable
from datetime import date

from medevidence.config import SufficiencyWeights
from medevidence.models import EvidencePackage, EvidenceRecord, SufficiencyScore

logger = logging.getLogger(__name__)

EXCELLENT = "excellent"
GOOD = "good"
LIMITED = "limited"
INSUFFICIENT = "insufficient"

NO_PACKAGE_REASON = "No evidence package provided"
NO_SOURCES_REASON = "No high-quality evidence sources found"


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'s' if count != 1 else ''}"


def _is_rct_with_results(record: EvidenceRecord) -> bool:
    if record.has_results is not True:
        return False
    study_type = (record.study_type or "").lower()
    return study_type == "interventional" or record.has_tag("rct")


class SufficiencyScorer:
    """Additive rule-based sufficiency scorer.

    Args:
        weights: Points per rule and level thresholds.
        today: Clock used for the recency rule; injectable for tests.
    """

    def __init__(
        self,
        weights: SufficiencyWeights | None = None,
        today: Callable[[], date] = date.today,
    ):
        self.weights = weights or SufficiencyWeights()
        self._today = today

    def level_for(self, score: int) -> str:
        w = self.weights
        if score >= w.excellent_threshold:
            return EXCELLENT
        if score >= w.good_threshold:
            return GOOD
        if score >= w.limited_threshold:
            return LIMITED
        return INSUFFICIENT

    def score(self, evidence: EvidencePackage | None) -> SufficiencyScore:
        if evidence is None:
            return SufficiencyScore(
                score=0,
                level=INSUFFICIENT,
                breakdown={},
                reasoning=[NO_PACKAGE_REASON],
            )

        w = self.weights
        breakdown = {
            "gold_standard_reviews": 0,
            "guidelines": 0,
            "rcts": 0,
            "recent_articles": 0,
            "systematic_reviews": 0,
        }
        reasoning: list[str] = []
        gold_count = 0

        # 1. Gold-standard systematic reviews
        try:
            gold_count = len(evidence.gold_standard_reviews or [])
            if gold_count > 0:
                breakdown["gold_standard_reviews"] = w.gold_standard_reviews
                reasoning.append(
                    f"{_plural(gold_count, 'gold-standard systematic review')}"
                )
        except Exception as e:
            gold_count = 0
            logger.warning("Scoring gold-standard reviews failed: %s", e)

        # 2. Clinical practice guidelines
        try:
            guideline_count = len(evidence.guidelines or [])
            if guideline_count > 0:
                breakdown["guidelines"] = w.guidelines
                reasoning.append(_plural(guideline_count, "clinical guideline"))
        except Exception as e:
            logger.warning("Scoring guidelines failed: %s", e)

        # 3. Randomized trials reporting results
        try:
            rcts = [t for t in evidence.clinical_trials or [] if _is_rct_with_results(t)]
            if rcts:
                breakdown["rcts"] = w.rcts
                reasoning.append(
                    f"{_plural(len(rcts), 'randomized controlled trial')} with results"
                )
        except Exception as e:
            logger.warning("Scoring randomized trials failed: %s", e)

        # 4. Recent literature
        try:
            threshold = self._today().year - w.recent_years
            recent = [
                a
                for a in evidence.literature or []
                if a.publication_year is not None and a.publication_year >= threshold
            ]
            if len(recent) >= w.recent_minimum:
                breakdown["recent_articles"] = w.recent_articles
                reasoning.append(
                    f"{len(recent)} recent articles (last {w.recent_years} years)"
                )
            elif recent:
                reasoning.append(
                    f"Only {len(recent)} recent articles "
                    f"(need {w.recent_minimum} or more for full credit)"
                )
        except Exception as e:
            logger.warning("Scoring recent articles failed: %s", e)

        # 5. Other systematic reviews, only without a gold-standard one
        try:
            review_count = len(evidence.systematic_reviews or [])
            if gold_count == 0 and review_count > 0:
                breakdown["systematic_reviews"] = w.systematic_reviews
                reasoning.append(
                    f"{_plural(review_count, 'systematic review')} (not gold-standard)"
                )
        except Exception as e:
            logger.warning("Scoring systematic reviews failed: %s", e)

        total = max(0, min(100, sum(breakdown.values())))
        if not reasoning:
            reasoning.append(NO_SOURCES_REASON)

        return SufficiencyScore(
            score=total,
            level=self.level_for(total),
            breakdown=breakdown,
            reasoning=reasoning,
        )


# ============================================
# Prompt Helpers
# ============================================


def is_evidence_sufficient(score: SufficiencyScore) -> bool:
    return score.level in (EXCELLENT, GOOD)


def format_sufficiency_warning(score: SufficiencyScore) -> str | None:
    """Evidence-quality notice for limited evidence; None when good enough."""
    if is_evidence_sufficient(score):
        return None

    lines = ["--- EVIDENCE QUALITY NOTICE ---", ""]
    if score.level == INSUFFICIENT:
        lines.append(f"INSUFFICIENT EVIDENCE (Score: {score.score}/100)")
        lines.append(
            "The available evidence for this query is very limited. "
            "Recommendations should be made with caution."
        )
    else:
        lines.append(f"LIMITED EVIDENCE (Score: {score.score}/100)")
        lines.append("The available evidence for this query is limited.")

    gaps = []
    if not score.breakdown.get("gold_standard_reviews"):
        gaps.append("- No gold-standard systematic reviews found")
    if not score.breakdown.get("guidelines"):
        gaps.append("- No clinical practice guidelines found")
    if not score.breakdown.get("rcts"):
        gaps.append("- No randomized controlled trials with results found")
    if not score.breakdown.get("recent_articles"):
        gaps.append("- Limited recent research")
    if gaps:
        lines += ["", "Evidence gaps:", *gaps]

    lines += ["", "--- END EVIDENCE QUALITY NOTICE ---"]
    return "\n".join(lines)


def format_sufficiency_for_prompt(score: SufficiencyScore) -> str:
    lines = [
        "--- EVIDENCE QUALITY ASSESSMENT ---",
        f"Overall quality: {score.level.upper()} ({score.score}/100)",
        "Evidence breakdown:",
        *(f"- {r}" for r in score.reasoning),
        "--- END EVIDENCE QUALITY ASSESSMENT ---",
    ]
    return "\n".join(lines)
