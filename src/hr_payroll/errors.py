"""Error taxonomy for payroll and benefit operations.

Every error carries a ``kind`` so batch operations can report failures
per entity without losing the category, and an optional ``details`` dict
with structured context for the audit sink.
"""

from __future__ import annotations

from typing import Any


class PayrollError(Exception):
    """Base class for all engine errors."""

    kind = "payroll_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.kind, "message": self.message, "details": self.details}


class ValidationError(PayrollError):
    """Malformed or missing input (bad salary, invalid date range, bad row)."""

    kind = "validation"


class NotFoundError(PayrollError):
    """Referenced entity does not exist."""

    kind = "not_found"

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            f"{entity} {entity_id} not found",
            {"entity": entity, "id": str(entity_id)},
        )


class ConflictError(PayrollError):
    """Operation is illegal in the current state.

    ``blocking`` lists the specific items or conditions that prevented the
    operation, e.g. the payroll items that are not yet approved.
    """

    kind = "conflict"

    def __init__(
        self,
        message: str,
        blocking: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.blocking = blocking or []
        merged = dict(details or {})
        if self.blocking:
            merged["blocking"] = list(self.blocking)
        super().__init__(message, merged)


class InvalidTransitionError(ConflictError):
    """Raised when a payroll period status transition is not allowed."""

    def __init__(
        self,
        from_status: str,
        to_status: str,
        reason: str | None = None,
        blocking: list[str] | None = None,
    ):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(
            msg,
            blocking=blocking,
            details={"from_status": from_status, "to_status": to_status},
        )


class CalculationError(PayrollError):
    """Eligibility or data requirement for a calculation is not met."""

    kind = "calculation"


class PersistenceError(PayrollError):
    """Storage failure; the enclosing transaction has been rolled back."""

    kind = "persistence"
