"""
MedEvidence Observability Module

- Cache statistics and daily source call counters
- Prometheus metrics text
- Logging setup
"""

from medevidence.observability.logging import configure_logging
from medevidence.observability.metrics import (
    CacheStats,
    DailyCallCounter,
    get_metrics_text,
)

__all__ = ["CacheStats", "DailyCallCounter", "configure_logging", "get_metrics_text"]
