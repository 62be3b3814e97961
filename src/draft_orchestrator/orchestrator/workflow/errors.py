"""Errors raised by the workflow engine.

Every error carries a short, user-facing message plus a stable ``reason`` code so
callers (HTTP layer, CLI, client controller) can tell a form error from an
"already in progress" situation without parsing text.
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for workflow engine failures."""

    reason = "workflow_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class WorkflowValidationError(WorkflowError):
    """Request rejected before any state was touched."""

    reason = "validation"


class PayloadTooLargeError(WorkflowValidationError):
    reason = "payload_too_large"

    def __init__(self, *, field: str, size: int, limit: int) -> None:
        super().__init__(
            f"{field} is too large ({size} bytes); the limit is {limit} bytes"
        )
        self.field = field
        self.size = size
        self.limit = limit


class RunNotFoundError(WorkflowError):
    """No run (or document) visible to the caller.

    Ownership failures raise this too, so a caller never learns whether a run it
    does not own exists.
    """

    reason = "not_found"


class RunConflictError(WorkflowError):
    """The run is not in the state the operation requires."""

    reason = "conflict"


class PersistenceError(WorkflowError):
    """A checkpoint could not be written after a step ran."""

    reason = "persistence"
