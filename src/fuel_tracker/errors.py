"""Exceptions raised by the session engine."""


class FuelTrackerError(Exception):
    """Base class for engine errors."""


class SessionNotFoundError(FuelTrackerError):
    """Raised when a session row does not exist."""

    def __init__(self, session_id: int) -> None:
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class InvalidSessionStateError(FuelTrackerError):
    """Raised when an operation is not valid in the current lifecycle state."""


class StorageError(FuelTrackerError):
    """Raised when the persistence layer fails a read or write."""
