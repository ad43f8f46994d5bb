class AttendanceError(Exception):
    """Base exception for the attendance core."""


class DimensionMismatch(AttendanceError):
    """Raised when two face descriptors of different lengths are compared."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Descriptor length mismatch: expected {expected}, got {actual}.")
        self.expected = expected
        self.actual = actual


class DecodeError(AttendanceError):
    """Raised when a stored descriptor string cannot be decoded."""


class FetchFailure(AttendanceError):
    """Raised when a historical query or live subscription fails."""


class ValidationError(AttendanceError):
    """Raised when a capture or registration request is invalid. Nothing is written."""


class StoreError(AttendanceError):
    """Raised when the persistence layer rejects a read or write."""
