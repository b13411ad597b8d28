"""
Metrics for MedEvidence

Tracks:
- evidence cache hits, misses and backend errors
- per-source calls and failures for the current day, with a short history
"""

import logging
import threading
from collections.abc import Callable
from datetime import date

logger = logging.getLogger(__name__)

HISTORY_DAYS = 30


# ============================================
# Cache Statistics
# ============================================


class CacheStats:
    """Thread-safe cumulative cache counters.

    A backend error counts as both an error and a miss.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._errors = 0

    def record_hit(self) -> None:
        with self._lock:
            self._hits += 1

    def record_miss(self) -> None:
        with self._lock:
            self._misses += 1

    def record_error(self) -> None:
        with self._lock:
            self._errors += 1
            self._misses += 1

    @property
    def hits(self) -> int:
        with self._lock:
            return self._hits

    @property
    def misses(self) -> int:
        with self._lock:
            return self._misses

    @property
    def errors(self) -> int:
        with self._lock:
            return self._errors

    @property
    def total(self) -> int:
        with self._lock:
            return self._hits + self._misses

    @property
    def hit_rate(self) -> float:
        with self._lock:
            total = self._hits + self._misses
            return self._hits / total if total > 0 else 0.0

    def snapshot(self) -> dict[str, float]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "hits": self._hits,
                "misses": self._misses,
                "errors": self._errors,
                "total": total,
                "hit_rate": self._hits / total if total > 0 else 0.0,
            }

    def reset(self) -> None:
        """Zero all counters. Safe to call repeatedly."""
        with self._lock:
            self._hits = 0
            self._misses = 0
            self._errors = 0


# ============================================
# Daily Call Counter
# ============================================


class DailyCallCounter:
    """Counts calls per name for the current day.

    When the day changes, the previous day's counts move into a history
    capped at HISTORY_DAYS entries.
    """

    def __init__(self, today: Callable[[], date] = date.today) -> None:
        self._lock = threading.Lock()
        self._today = today
        self._day = today()
        self._calls: dict[str, int] = {}
        self._failures: dict[str, int] = {}
        self._history: list[dict] = []

    def _roll_over(self) -> None:
        current = self._today()
        if current == self._day:
            return
        if self._calls or self._failures:
            self._history.append(
                {
                    "date": self._day.isoformat(),
                    "calls": dict(self._calls),
                    "failures": dict(self._failures),
                }
            )
            del self._history[:-HISTORY_DAYS]
        logger.info("Daily call counters rolled over to %s", current.isoformat())
        self._day = current
        self._calls = {}
        self._failures = {}

    def record(self, name: str, success: bool = True) -> None:
        with self._lock:
            self._roll_over()
            self._calls[name] = self._calls.get(name, 0) + 1
            if not success:
                self._failures[name] = self._failures.get(name, 0) + 1

    def calls_today(self) -> dict[str, int]:
        with self._lock:
            self._roll_over()
            return dict(self._calls)

    def failures_today(self) -> dict[str, int]:
        with self._lock:
            self._roll_over()
            return dict(self._failures)

    def history(self) -> list[dict]:
        with self._lock:
            self._roll_over()
            return [dict(entry) for entry in self._history]

    def reset(self) -> None:
        """Clear today's counts and the history. Safe to call repeatedly."""
        with self._lock:
            self._day = self._today()
            self._calls = {}
            self._failures = {}
            self._history = []


# ============================================
# Prometheus Text
# ============================================


def get_metrics_text(
    cache_stats: CacheStats | None = None,
    call_counter: DailyCallCounter | None = None,
) -> str:
    """Generate Prometheus-compatible metrics text."""
    lines: list[str] = []

    if cache_stats is not None:
        snap = cache_stats.snapshot()
        lines += [
            "# HELP evidence_cache_hits_total Evidence cache hits",
            "# TYPE evidence_cache_hits_total counter",
            f'evidence_cache_hits_total {int(snap["hits"])}',
            "",
            "# HELP evidence_cache_misses_total Evidence cache misses",
            "# TYPE evidence_cache_misses_total counter",
            f'evidence_cache_misses_total {int(snap["misses"])}',
            "",
            "# HELP evidence_cache_errors_total Evidence cache backend errors",
            "# TYPE evidence_cache_errors_total counter",
            f'evidence_cache_errors_total {int(snap["errors"])}',
            "",
            "# HELP evidence_cache_hit_rate Evidence cache hit ratio",
            "# TYPE evidence_cache_hit_rate gauge",
            f'evidence_cache_hit_rate {snap["hit_rate"]:.4f}',
            "",
        ]

    if call_counter is not None:
        lines += [
            "# HELP source_calls_today Source calls since midnight",
            "# TYPE source_calls_today gauge",
        ]
        for name, count in sorted(call_counter.calls_today().items()):
            lines.append(f'source_calls_today{{source="{name}"}} {count}')
        lines += [
            "",
            "# HELP source_failures_today Failed source calls since midnight",
            "# TYPE source_failures_today gauge",
        ]
        for name, count in sorted(call_counter.failures_today().items()):
            lines.append(f'source_failures_today{{source="{name}"}} {count}')

    return "\n".join(lines).rstrip("\n") + "\n"
