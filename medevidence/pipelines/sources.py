"""
Evidence source registry.

A source is just a named querier, ``query(text, limit) -> records``, plus
the evidence category its results belong to. Queriers may be coroutine
functions or plain functions; plain ones run in a worker thread.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from pydantic import ValidationError

from medevidence.models import EvidenceRecord

logger = logging.getLogger(__name__)


class EvidenceCategory(str, Enum):
    LITERATURE = "literature"
    SYSTEMATIC_REVIEWS = "systematic_reviews"
    GOLD_STANDARD_REVIEWS = "gold_standard_reviews"
    GUIDELINES = "guidelines"
    CLINICAL_TRIALS = "clinical_trials"
    CONSUMER_HEALTH = "consumer_health"


RawResults = list[Union[EvidenceRecord, dict[str, Any]]]
Querier = Callable[[str, int], Union[RawResults, Awaitable[RawResults]]]


@dataclass(frozen=True)
class SourceSpec:
    """Registration of one evidence source.

    Attributes:
        name: Unique source name, also used in cache keys.
        category: Package category the results are filed under.
        querier: Callable taking (query, limit).
        limit: Maximum results requested per call.
        uses_auxiliary_terms: Query with the caller's auxiliary terms
            (e.g. drug names) instead of the query variants.
        fallback: Only consulted when primary evidence is thin.
        expand: Issue every query variant rather than just the original.
    """

    name: str
    category: EvidenceCategory
    querier: Querier
    limit: int = 20
    uses_auxiliary_terms: bool = False
    fallback: bool = False
    expand: bool = True

    @property
    def is_async(self) -> bool:
        if inspect.iscoroutinefunction(self.querier):
            return True
        call = getattr(self.querier, "__call__", None)
        return inspect.iscoroutinefunction(call)


def normalize_records(raw: RawResults | None, source: str) -> list[EvidenceRecord]:
    """Coerce querier output to records stamped with the source name.

    Items that are not valid records are logged and skipped; the rest
    are kept.
    """
    records = []
    for position, item in enumerate(raw or []):
        if isinstance(item, EvidenceRecord):
            records.append(item if item.source else item.model_copy(update={"source": source}))
            continue
        if not isinstance(item, dict):
            logger.warning(
                "Skipping %s result %d: expected a record, got %s",
                source,
                position,
                type(item).__name__,
            )
            continue
        try:
            record = EvidenceRecord.model_validate({**item, "source": item.get("source") or source})
        except ValidationError as e:
            logger.warning("Skipping malformed %s result %d: %s", source, position, e)
            continue
        records.append(record)
    return records
