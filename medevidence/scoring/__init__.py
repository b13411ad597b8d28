"""
MedEvidence Scoring Module

Advisory annotations over an assembled evidence package:
- SufficiencyScorer: 0-100 evidence quality score
- ConflictDetector: opposing guideline recommendations
"""

from medevidence.scoring.conflicts import ConflictDetector, format_conflicts_for_prompt
from medevidence.scoring.sufficiency import (
    SufficiencyScorer,
    format_sufficiency_for_prompt,
    format_sufficiency_warning,
    is_evidence_sufficient,
)

__all__ = [
    "ConflictDetector",
    "SufficiencyScorer",
    "format_conflicts_for_prompt",
    "format_sufficiency_for_prompt",
    "format_sufficiency_warning",
    "is_evidence_sufficient",
]
