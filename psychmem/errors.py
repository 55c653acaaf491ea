"""Shared error types for psychmem.

Expected outcomes (unknown id on feedback, reconsolidating a pinned memory)
are reported as result values carrying an ``ErrorKind``. Exceptions are kept
for construction-time and infrastructure failures.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Typed failure reasons shared by exceptions and result objects."""
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    CONFIG_INVALID = "config_invalid"


class PsychMemError(Exception):
    """Base error for psychmem."""

    kind: ErrorKind | None = None


class NotFoundError(PsychMemError):
    """Memory (or session) id is unknown to the store."""

    kind = ErrorKind.NOT_FOUND


class InvalidStateError(PsychMemError):
    """Operation is not allowed for the memory's current status."""

    kind = ErrorKind.INVALID_STATE


class ConfigInvalidError(PsychMemError, ValueError):
    """Weights or thresholds out of range, detected at construction."""

    kind = ErrorKind.CONFIG_INVALID
