"""Exception types raised by vizier for unrecoverable conditions."""

from __future__ import annotations


class VizierError(RuntimeError):
    """Base class for fatal vizier errors."""


class ClockError(VizierError):
    """Raised when the wall clock cannot be read."""


class EncodingError(VizierError, ValueError):
    """Raised when a record cannot be reduced to its canonical JSON tree."""


class PatchError(VizierError, ValueError):
    """Raised when a structural patch cannot be applied to a document."""
