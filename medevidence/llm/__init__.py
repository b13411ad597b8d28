"""
MedEvidence LLM Module

Checks applied to generated answers:
- CitationValidator: inline citation markers and References sections
"""

from medevidence.llm.citation_validator import CitationMarker, CitationValidator

__all__ = ["CitationValidator", "CitationMarker"]
