"""
Reciprocal Rank Fusion

Merges ranked lists without score calibration: an item at zero-based rank
r in a list with weight w contributes w / (k + r + 1), and contributions
add up across lists.
"""

import logging
from collections.abc import Callable, Hashable, Sequence
from typing import TypeVar

from medevidence.models import RankedResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RRF_K = 60


def deduplicate(items: Sequence[T], key_fn: Callable[[T], Hashable]) -> list[T]:
    """Drop repeated keys, keeping the first occurrence."""
    seen: set = set()
    unique = []
    for item in items:
        key = key_fn(item)
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


class RankFuser:
    """RRF over two or more ranked lists."""

    def __init__(self, k: int = DEFAULT_RRF_K) -> None:
        self.k = max(1, k)

    def fuse(
        self,
        list_a: Sequence[T],
        list_b: Sequence[T],
        key_fn: Callable[[T], Hashable],
        k: int | None = None,
        weight_a: float = 1.0,
        weight_b: float = 1.0,
        names: tuple[str, str] = ("keyword", "semantic"),
    ) -> list[RankedResult[T]]:
        """Fuse two lists, e.g. a keyword and a semantic ranking."""
        return self.fuse_multiple(
            [list_a, list_b],
            key_fn,
            k=k,
            weights=[weight_a, weight_b],
            names=list(names),
        )

    def fuse_multiple(
        self,
        lists: Sequence[Sequence[T]],
        key_fn: Callable[[T], Hashable],
        k: int | None = None,
        weights: Sequence[float] | None = None,
        names: Sequence[str] | None = None,
    ) -> list[RankedResult[T]]:
        """Fuse any number of lists.

        Returns one result per distinct key, sorted by fused score
        descending. Ties keep first-seen order. The item kept for a key is
        its first occurrence across the lists in order.
        """
        k = self.k if k is None else max(1, k)
        if weights is None:
            weights = [1.0] * len(lists)
        if names is None:
            names = [f"list_{i}" for i in range(len(lists))]
        if len(weights) != len(lists) or len(names) != len(lists):
            raise ValueError("weights and names must match the number of lists")

        results: dict[Hashable, RankedResult[T]] = {}
        for ranked, weight, name in zip(lists, weights, names, strict=True):
            seen_in_list: set = set()
            for rank, item in enumerate(ranked):
                key = key_fn(item)
                # Only the first rank of a duplicate counts within one list
                if key in seen_in_list:
                    continue
                seen_in_list.add(key)

                entry = results.get(key)
                if entry is None:
                    entry = RankedResult(item=item, score=0.0)
                    results[key] = entry
                entry.score += weight / (k + rank + 1)
                entry.ranks[name] = rank
                entry.sources.append(name)

        fused = list(results.values())
        # sort is stable, so insertion order breaks ties
        fused.sort(key=lambda r: r.score, reverse=True)
        return fused

    @staticmethod
    def deduplicate(items: Sequence[T], key_fn: Callable[[T], Hashable]) -> list[T]:
        return deduplicate(items, key_fn)


def fuse_search_results(
    lists: Sequence[Sequence[T]],
    key_fn: Callable[[T], Hashable],
    k: int = DEFAULT_RRF_K,
    weights: Sequence[float] | None = None,
) -> list[T]:
    """Fuse lists and return just the items, best first."""
    fused = RankFuser(k).fuse_multiple(lists, key_fn, weights=weights)
    return [r.item for r in fused]
