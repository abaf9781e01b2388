"""Custom exceptions for django-visits.

Every error the engine raises on caller input is a VisitsError subclass.
The HTTP layer maps each subclass to a status code (see views.ERROR_STATUS).
"""


class VisitsError(Exception):
    """Base exception for visit engine errors."""

    code = "visits_error"


class ValidationError(VisitsError):
    """Raised when input is malformed (negative amount, empty item list, ...)."""

    code = "validation_error"

    def __init__(self, message: str, errors: dict = None):
        self.errors = errors or {}
        super().__init__(message)


class GuardNotSatisfied(VisitsError):
    """Raised when a business rule blocks an otherwise valid request."""

    code = "guard_not_satisfied"

    def __init__(self, reasons: list[str]):
        self.reasons = list(reasons)
        message = "Guard not satisfied: " + "; ".join(self.reasons)
        super().__init__(message)


class InvalidTransition(VisitsError):
    """Raised when the requested state change is not an edge of the graph."""

    code = "invalid_transition"

    def __init__(self, from_status: str, to_status: str, reason: str = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason or f"Cannot transition from '{from_status}' to '{to_status}'"
        super().__init__(self.reason)


class ConcurrencyConflict(VisitsError):
    """Raised when a row changed underneath the caller. Re-read and retry."""

    code = "concurrency_conflict"


class NotFound(VisitsError):
    """Raised when a referenced entity does not exist."""

    code = "not_found"

    def __init__(self, entity: str, pk):
        self.entity = entity
        self.pk = pk
        super().__init__(f"{entity} '{pk}' not found")


class StorageError(VisitsError):
    """Raised when the database fails for reasons unrelated to the caller."""

    code = "storage_error"


class ImmutableRecordError(VisitsError):
    """Raised when attempting to modify or delete an append-only record."""

    code = "immutable_record"


class GuardLoadError(VisitsError):
    """Raised when a configured guard cannot be loaded."""

    code = "guard_load_error"

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot load guard '{path}': {reason}")
