"""Error taxonomy shared by the editing services."""

from __future__ import annotations


class TableStudioError(RuntimeError):
    """Base class for table editing failures."""


class RecordValidationError(TableStudioError):
    """Raised when record values fail type or nullability rules."""

    def __init__(self, field_errors: dict[str, str]) -> None:
        self.field_errors = dict(field_errors)
        summary = "; ".join(f"{name}: {message}" for name, message in sorted(self.field_errors.items()))
        super().__init__(f"Record validation failed: {summary}")


class StructuredParseError(TableStudioError):
    """Raised when structured (JSON) cell input does not parse."""


class DiffConflictError(TableStudioError):
    """Raised when an edited schema cannot be expressed as a safe operation list."""

    def __init__(self, conflicts: list[str]) -> None:
        self.conflicts = list(conflicts)
        super().__init__("Schema edit has conflicts: " + "; ".join(self.conflicts))


class PersistenceError(TableStudioError):
    """Raised when the external schema/record service rejects or fails a call."""


class SubmitInProgressError(TableStudioError):
    """Raised when a second submit is attempted while one is in flight."""


class InvalidEditError(TableStudioError):
    """Raised when an edit operation is not allowed for the current session state."""


class StaleSchemaError(InvalidEditError):
    """Raised when edits are attempted against a base schema that must be re-fetched."""


class TableNotFoundError(PersistenceError):
    """Raised when the schema service does not know the requested table."""


class RecordNotFoundError(TableStudioError):
    """Raised when a record addressed by primary key does not exist."""
