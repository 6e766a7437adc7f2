"""Exception types shared across creator_lens.

Insufficient data is never an error here: callers get ``None``, ``[]`` or a
neutral default instead.
"""
import logging

_log = logging.getLogger(__name__)


class CreatorLensError(Exception):
    """Base class for all creator_lens errors."""


class InvariantViolation(CreatorLensError, ValueError):
    """A value escaped the closed key space or a distribution drifted off 1.0."""


class SuggestionLimitExceeded(CreatorLensError):
    def __init__(self, limit: int, requested: int, existing: int = 0) -> None:
        self.limit = limit
        self.requested = requested
        self.existing = existing
        super().__init__(
            f"daily suggestion limit reached (limit={limit}, requested={requested}, existing={existing})"
        )


class ConcurrentUpdateError(CreatorLensError):
    """Optimistic persona write lost the race more times than allowed."""


class NotFoundError(CreatorLensError):
    pass


def report_invariant(message: str, *, strict: bool) -> None:
    """Raise in strict mode; otherwise log so the caller can repair and continue."""
    if strict:
        raise InvariantViolation(message)
    _log.error("invariant violated (repairing): %s", message)
