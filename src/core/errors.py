"""Exception types raised by the scheduling and bracket engine."""


class TournamentError(Exception):
    """Base error class."""

    def __init__(self, message, status_code=400):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class InputError(TournamentError):
    """Raised when caller-supplied input is rejected. No state is mutated."""

    def __init__(self, message="Invalid input."):
        super().__init__(message, 400)


class ConsistencyError(TournamentError):
    """Raised when a mutation would corrupt schedule or bracket state."""

    def __init__(self, message="Inconsistent tournament state."):
        super().__init__(message, 409)


class PersistenceError(TournamentError):
    """Raised when the store cannot be read or written."""

    def __init__(self, message="Storage unavailable."):
        super().__init__(message, 503)
