from __future__ import annotations


class EngineError(Exception):
    """Base class for failures raised by the work accounting engine."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(EngineError):
    """Malformed article, non-positive quantity, time or overtime."""


class DuplicateError(EngineError):
    """Article collision on norm create or update."""


class LockedError(EngineError):
    """Edit attempted on a plan item whose completion reached the plan."""


class NotFoundError(EngineError):
    """Unknown identity referenced by an update-style command or query."""


class ImportFormatError(EngineError):
    """An imported or persisted document could not be read."""


__all__ = [
    "EngineError",
    "ValidationError",
    "DuplicateError",
    "LockedError",
    "NotFoundError",
    "ImportFormatError",
]
