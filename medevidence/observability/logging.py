"""Logging setup shared by applications embedding the engine."""

import logging

from medevidence.config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str | int | None = None) -> None:
    """Configure root logging with the standard format.

    Args:
        level: Logging level name or number. Defaults to LOG_LEVEL.
    """
    resolved = level if level is not None else LOG_LEVEL
    if isinstance(resolved, str):
        resolved = getattr(logging, resolved.upper(), logging.INFO)
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    # sentence-transformers logs every model load at INFO
    logging.getLogger("sentence_transformers").setLevel(logging.WARNING)
