"""
MedEvidence Pipelines

- EvidenceAggregator: parallel multi-source gather with ranking and annotations
- SourceSpec: registration of one evidence source
"""

from medevidence.pipelines.aggregator import (
    EnhancementResult,
    EvidenceAggregator,
    run_enhancement,
)
from medevidence.pipelines.sources import EvidenceCategory, SourceSpec

__all__ = [
    "EnhancementResult",
    "EvidenceAggregator",
    "EvidenceCategory",
    "SourceSpec",
    "run_enhancement",
]
