"""
Citation Validator for MedEvidence

Checks that citation markers in generated text point at evidence that was
actually supplied for the query:

- inline markers ([PMID:123, S:2], [PMID:123], [DOI:10.1/x], [NCT01234567],
  [12345]) are resolved against the sentence-chunk corpus
- the References section is checked entry by entry against the records
"""

import logging
import re
from dataclasses import dataclass

from medevidence.models import (
    Chunk,
    CitationValidationResult,
    EvidenceRecord,
    InvalidCitation,
    ReferenceIssue,
    ReferenceValidationResult,
)

logger = logging.getLogger(__name__)

NOT_FOUND_REASON = "identifier not found in supplied evidence"

# [SCHEME:id] or [SCHEME:id, S:n]; bare trial ids; bare 5-8 digit PMIDs
CITATION_PATTERN = re.compile(
    r"\[(?:"
    r"(?P<scheme>[A-Z]{2,10}):\s*(?P<ident>[^\],\s]+)(?:,\s*S:\s*(?P<sentence>\d+))?"
    r"|(?P<nct>NCT\d{8})"
    r"|(?P<bare>\d{5,8})"
    r")\]"
)

REFERENCES_SECTION = re.compile(
    r"^#{0,3}\s*\**References?\**:?\s*\n(?P<body>[\s\S]*?)(?=\n#|\Z)",
    re.IGNORECASE | re.MULTILINE,
)
REFERENCE_ENTRY = re.compile(r"^\s*(\d+)\.\s*(.+(?:\n(?!\s*\d+\.).+)*)", re.MULTILINE)
PMID_PATTERN = re.compile(r"PMID:?\s*(\d+)", re.IGNORECASE)
DOI_PATTERN = re.compile(r"DOI:?\s*(10\.\d{4,}/\S+)", re.IGNORECASE)
NCT_PATTERN = re.compile(r"\b(NCT\d{8})\b", re.IGNORECASE)

# Authoritative sources cited without a literature identifier
UNIDENTIFIED_SOURCE_MARKERS = (
    "openfda",
    "fda faers",
    "dailymed",
    "source: fda",
    "source: who",
    "source: cdc",
    "source: nice",
    "source: ada",
    "source: aha",
    "source: acc",
    "who guidelines",
    "nice guideline",
    "american diabetes association",
    "standards of care in diabetes",
)


@dataclass
class CitationMarker:
    """One citation marker found in generated text."""

    identifier: str
    scheme: str | None
    position: int
    raw: str
    sentence_index: int | None = None


def _strip_trailing_punctuation(value: str) -> str:
    return value.rstrip(".,;:)")


class CitationValidator:
    """Resolves citation markers against the evidence supplied for a query."""

    def extract_citations(self, text: str) -> list[CitationMarker]:
        """All markers, ordered by position in the text."""
        if not text:
            return []

        markers = []
        for match in CITATION_PATTERN.finditer(text):
            if match.group("scheme"):
                scheme = match.group("scheme").upper()
                ident = match.group("ident")
                sentence = match.group("sentence")
                markers.append(
                    CitationMarker(
                        identifier=ident,
                        scheme=scheme,
                        position=match.start(),
                        raw=match.group(0),
                        sentence_index=int(sentence) if sentence is not None else None,
                    )
                )
            elif match.group("nct"):
                markers.append(
                    CitationMarker(
                        identifier=match.group("nct"),
                        scheme="NCT",
                        position=match.start(),
                        raw=match.group(0),
                    )
                )
            else:
                # bare numbers carry no scheme and match any identifier type
                markers.append(
                    CitationMarker(
                        identifier=match.group("bare"),
                        scheme=None,
                        position=match.start(),
                        raw=match.group(0),
                    )
                )
        return markers

    def validate(self, generated_text: str, chunk_corpus: list[Chunk]) -> CitationValidationResult:
        markers = self.extract_citations(generated_text)

        # (scheme, id) -> sentence indices present for that record
        sentences: dict[tuple[str, str], set[int]] = {}
        for chunk in chunk_corpus or []:
            key = (chunk.id_type.upper(), chunk.source_id)
            sentences.setdefault(key, set()).add(chunk.sentence_index)

        details = {"id_valid": 0, "sentence_valid": 0, "id_invalid": 0, "sentence_invalid": 0}
        invalid: list[InvalidCitation] = []
        valid = 0

        for marker in markers:
            present = self._sentences_for(marker, sentences)
            if present is None:
                details["id_invalid"] += 1
                invalid.append(
                    InvalidCitation(
                        identifier=marker.identifier,
                        reason=NOT_FOUND_REASON,
                        raw=marker.raw,
                        position=marker.position,
                        sentence_index=marker.sentence_index,
                    )
                )
                continue

            details["id_valid"] += 1
            if marker.sentence_index is not None:
                if marker.sentence_index not in present:
                    details["sentence_invalid"] += 1
                    invalid.append(
                        InvalidCitation(
                            identifier=marker.identifier,
                            reason=f"sentence {marker.sentence_index} not found for {marker.identifier}",
                            raw=marker.raw,
                            position=marker.position,
                            sentence_index=marker.sentence_index,
                        )
                    )
                    continue
                details["sentence_valid"] += 1
            valid += 1

        total = len(markers)
        if invalid:
            logger.info("%d of %d citations could not be resolved", len(invalid), total)

        return CitationValidationResult(
            total_citations=total,
            valid_citations=valid,
            invalid_citations=invalid,
            precision=valid / total if total > 0 else 1.0,
            details=details,
        )

    @staticmethod
    def _sentences_for(
        marker: CitationMarker, sentences: dict[tuple[str, str], set[int]]
    ) -> set[int] | None:
        if marker.scheme is not None:
            return sentences.get((marker.scheme, marker.identifier))
        merged: set[int] | None = None
        for (_scheme, ident), indices in sentences.items():
            if ident == marker.identifier:
                merged = (merged or set()) | indices
        return merged

    # ----------------------------------------
    # References section
    # ----------------------------------------

    def validate_references(
        self, answer: str, records: list[EvidenceRecord]
    ) -> ReferenceValidationResult:
        """Check every References entry against the records actually supplied."""
        pmids, dois, ncts = set(), set(), set()
        for record in records or []:
            scheme = record.id_type.upper()
            if scheme == "PMID":
                pmids.add(record.id)
            elif scheme == "DOI":
                dois.add(record.id.lower())
            elif scheme == "NCT":
                ncts.add(record.id.upper())
            if record.doi:
                dois.add(record.doi.lower())

        inline = {m.identifier for m in self.extract_citations(answer or "")}
        inline |= set(re.findall(r"\^?\[(\d{1,3})\]\^?", answer or ""))

        hallucinations: list[ReferenceIssue] = []
        warnings: list[str] = []
        entries = self._extract_references(answer or "")
        verified = 0

        for number, text in entries:
            pmid = PMID_PATTERN.search(text)
            doi = DOI_PATTERN.search(text)
            nct = NCT_PATTERN.search(text)
            lowered = text.lower()

            if not (pmid or doi or nct):
                if any(marker in lowered for marker in UNIDENTIFIED_SOURCE_MARKERS):
                    verified += 1
                else:
                    hallucinations.append(
                        ReferenceIssue(
                            citation=f"[{number}] {text[:100]}",
                            reason=f"Reference {number} has no PMID, DOI, or NCT ID",
                        )
                    )
                continue

            checks = []
            if pmid:
                checks.append((f"PMID:{pmid.group(1)}", pmid.group(1) in pmids))
            if doi:
                value = _strip_trailing_punctuation(doi.group(1))
                checks.append((f"DOI:{value}", value.lower() in dois))
            if nct:
                checks.append((f"NCT:{nct.group(1).upper()}", nct.group(1).upper() in ncts))

            if any(found for _label, found in checks):
                verified += 1
                continue
            for label, _found in checks:
                hallucinations.append(
                    ReferenceIssue(
                        citation=f"[{number}] {label}",
                        reason=f"{label} not found in provided evidence",
                    )
                )

        if not entries and inline:
            warnings.append("Citations found in text but no References section detected")
        elif len(inline) > len(entries):
            warnings.append(
                f"Found {len(inline)} citations but only {len(entries)} references"
            )
        if records and not entries:
            warnings.append("Evidence was provided but no references were cited")

        return ReferenceValidationResult(
            is_valid=not hallucinations,
            total_references=len(entries),
            verified_references=verified,
            hallucinations=hallucinations,
            warnings=warnings,
        )

    @staticmethod
    def _extract_references(answer: str) -> list[tuple[str, str]]:
        section = REFERENCES_SECTION.search(answer)
        if not section:
            return []
        return [
            (m.group(1), m.group(2).strip())
            for m in REFERENCE_ENTRY.finditer(section.group("body"))
        ]
