"""Exceptions raised by the study timer core."""

from __future__ import annotations


class StudyTimerError(Exception):
    """Base exception for all study timer errors."""

    pass


class InvalidTransition(StudyTimerError):
    """Raised when an operation is not allowed in the current timer state."""

    def __init__(self, operation: str, state: str) -> None:
        self.operation = operation
        self.state = state
        super().__init__(f"Cannot {operation} while timer is {state}")


class ValidationError(StudyTimerError):
    """Raised when settings input is rejected.

    ``errors`` maps each offending field name to a human readable message.
    """

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = dict(errors)
        fields = ", ".join(sorted(self.errors))
        super().__init__(f"Invalid timer settings: {fields}")

    @property
    def fields(self) -> list[str]:
        return sorted(self.errors)


class StorageError(StudyTimerError):
    """Raised when the storage backend fails or times out."""

    pass
