"""Exceptions raised by the bug lifecycle engine.

Routers translate these into HTTP responses:
- BugValidationError / InvalidReferenceError -> 400
- BugNotFoundError -> 404
- StoreError -> 500 with a generic message
"""


class BugValidationError(ValueError):
    """Raised for malformed, missing or out-of-range input."""
    pass


class InvalidReferenceError(BugValidationError):
    """Raised when a project or assignee reference does not resolve."""

    def __init__(self, message: str, field_name: str, value):
        super().__init__(message)
        self.field_name = field_name
        self.value = value


class BugNotFoundError(LookupError):
    """Raised when a bug id does not resolve to a row."""

    def __init__(self, bug_id: int):
        super().__init__("Bug not found")
        self.bug_id = bug_id


class StoreError(RuntimeError):
    """Raised when the database rejects an operation.

    The message is safe to show to callers; the original SQLAlchemy error is
    chained as ``__cause__`` and logged, never surfaced.
    """
    pass
