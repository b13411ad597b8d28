"""Exceptions raised by the evidence engine."""


class MedEvidenceError(Exception):
    """Base class for all engine errors."""

    pass


class DimensionMismatchError(MedEvidenceError, ValueError):
    """Raised when two vectors of different length are compared."""

    pass


class SourceQueryError(MedEvidenceError):
    """Raised when a single evidence source fails or times out.

    Attributes:
        source: Name of the failing source.
    """

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source
        self.message = message
