"""Domain error hierarchy for the approval workflow.

Services raise these; the API layer maps them to HTTP responses in a single
exception handler (see ``expenseflow.main``).
"""
from typing import Any


class ApprovalWorkflowError(Exception):
    """Base class for every failure the workflow reports to its caller."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


class ConversionError(ApprovalWorkflowError):
    """Exchange rate unobtainable, or the amount is not a finite positive number."""


class InvalidState(ApprovalWorkflowError):
    """Operation attempted on an expense or log not in the required state."""


class AlreadyProcessed(InvalidState):
    """Approval log was already approved or rejected."""


class NotFound(ApprovalWorkflowError):
    """Entity missing, or not visible to the acting principal."""


class InvalidInput(ApprovalWorkflowError):
    """Request data fails validation (e.g. rejection without a reason)."""


class InvariantViolation(ApprovalWorkflowError):
    """Stored data contradicts a structural invariant of the workflow."""
