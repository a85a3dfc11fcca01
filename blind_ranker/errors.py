"""
Error types raised by the ranking engine.

The server translates these into HTTP status codes; the CLI prints them.
"""


class RankerError(Exception):
    """Base class for all ranking errors."""

    status_code = 500


class NotFound(RankerError):
    """Unknown subset, image or group."""

    status_code = 404


class ValidationError(RankerError):
    """Bad parameters or insufficient data. No state was mutated."""

    status_code = 400


class InsufficientCandidates(RankerError):
    """Fewer than two initialized images are available for a match."""

    status_code = 400


class PersistenceFailure(RankerError):
    """Ratings could not be read from or written to storage."""

    status_code = 500
