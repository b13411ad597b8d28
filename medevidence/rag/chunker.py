"""
MedEvidence Sentence Chunker

Splits record abstracts into sentence chunks that can be ranked and cited
individually. Each chunk keeps its neighbouring sentences as context and
carries the parent record's citation information.
"""

import re

from medevidence.models import Chunk, ChunkMetadata, EvidenceRecord

# ============================================
# Sentence Splitting
# ============================================

SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")

# Abbreviations that never end a sentence
ABBREVIATIONS = [
    "et al.",
    "Dr.",
    "Mr.",
    "Mrs.",
    "Ms.",
    "Prof.",
    "Sr.",
    "Jr.",
    "vs.",
    "etc.",
    "e.g.",
    "i.e.",
    "approx.",
    "Fig.",
    "Figs.",
    "No.",
    "Vol.",
    "dept.",
]
_ABBR_PLACEHOLDER = "\x00"
_COMPILED_ABBREVIATIONS: list[tuple[re.Pattern, str]] = [
    (
        re.compile(r"(?<![\w.])" + re.escape(abbr)),
        abbr.replace(".", _ABBR_PLACEHOLDER),
    )
    for abbr in ABBREVIATIONS
]


def make_chunk_id(id_type: str, source_id: str, sentence_index: int) -> str:
    return f"{id_type}:{source_id}:S:{sentence_index}"


class SentenceSplitter:
    """Sentence splitting and chunk bookkeeping for evidence records."""

    def split(self, text: str | None) -> list[str]:
        """Split text into sentences.

        Empty or whitespace-only text gives no sentences; text without
        terminal punctuation is returned whole.
        """
        if not text or not text.strip():
            return []

        protected = text.strip()
        for pattern, replacement in _COMPILED_ABBREVIATIONS:
            protected = pattern.sub(replacement, protected)

        sentences = []
        for part in SENTENCE_BOUNDARY.split(protected):
            restored = part.strip().replace(_ABBR_PLACEHOLDER, ".")
            if restored:
                sentences.append(restored)
        return sentences

    def create_chunks(
        self, record: EvidenceRecord, with_context: bool = True
    ) -> list[Chunk]:
        """One chunk per sentence of the record's abstract (or summary)."""
        sentences = self.split(record.body)
        metadata = ChunkMetadata(
            title=record.title,
            authors=list(record.authors),
            source=record.source,
            journal=record.journal,
            publication_date=record.publication_date,
            doi=record.doi,
        )

        chunks = []
        for i, sentence in enumerate(sentences):
            before = after = None
            if with_context:
                before = sentences[i - 1] if i > 0 else None
                after = sentences[i + 1] if i + 1 < len(sentences) else None
            chunks.append(
                Chunk(
                    id=make_chunk_id(record.id_type, record.id, i),
                    source_id=record.id,
                    id_type=record.id_type,
                    sentence_index=i,
                    text=sentence,
                    before=before,
                    after=after,
                    metadata=metadata,
                )
            )
        return chunks

    def create_chunks_from_records(
        self, records: list[EvidenceRecord], with_context: bool = True
    ) -> list[Chunk]:
        chunks: list[Chunk] = []
        for record in records:
            chunks.extend(self.create_chunks(record, with_context=with_context))
        return chunks

    @staticmethod
    def get_chunk_by_id(chunks: list[Chunk], chunk_id: str) -> Chunk | None:
        for chunk in chunks:
            if chunk.id == chunk_id:
                return chunk
        return None

    @staticmethod
    def get_chunks_by_source(chunks: list[Chunk], source_id: str) -> list[Chunk]:
        """All chunks of one record, in the order given."""
        return [c for c in chunks if c.source_id == source_id]

    @staticmethod
    def reconstruct(chunks: list[Chunk]) -> str:
        """Rebuild the text by sentence index, regardless of input order."""
        ordered = sorted(chunks, key=lambda c: c.sentence_index)
        return " ".join(c.text for c in ordered)
