"""
This file contains custom, application-specific exceptions.
"""

class BookingEngineError(Exception):
    """Base class for every error the scheduling engine raises on purpose."""
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BookingEngineError):
    """Raised for malformed input, before any side effect happens."""
    pass


class EmptyScheduleError(ValidationError):
    """Raised when a recurring schedule expands to zero occurrences."""
    pass


class SlotUnavailableError(BookingEngineError):
    """Raised when a requested slot is no longer free at commit time."""
    pass


class InsufficientCreditsError(BookingEngineError):
    """Raised when a ledger precondition fails. Carries the shortfall."""
    def __init__(self, required: int, available: int, message: str | None = None):
        self.required = required
        self.available = available
        self.shortfall = max(required - available, 0)
        super().__init__(
            message or f"Insufficient credits: {required} required, {available} available (short by {self.shortfall})."
        )


class InvalidStateTransitionError(BookingEngineError):
    """Raised when an entity is asked to move to a status it cannot reach."""
    pass


class NotFoundError(BookingEngineError):
    """Raised when a referenced tutor, session, contract or period does not exist."""
    pass
