"""
MedEvidence - Evidence Retrieval & Ranking Engine

Gathers clinical evidence from many independent literature and guideline
sources and prepares it for a downstream answer generator.

Features:
- Parallel multi-source fan-out with per-source isolation
- PICO query expansion with medical synonyms
- Reciprocal rank fusion and embedding-based reranking
- Sentence-level chunks with citation provenance
- Evidence sufficiency scoring and guideline conflict detection
- Post-hoc citation validation
"""

__version__ = "0.1.0"
__author__ = "MedEvidence Team"
