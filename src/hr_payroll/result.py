"""Tagged result type for per-entity outcomes of batch operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar, Union

from hr_payroll.errors import PayrollError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying a value."""

    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """Failed outcome carrying the error kind and a human-readable message."""

    kind: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return False

    @classmethod
    def from_exception(cls, exc: Exception, **details: Any) -> Err:
        """Build an Err from an exception, keeping the engine error kind."""
        if isinstance(exc, PayrollError):
            return cls(kind=exc.kind, message=exc.message, details={**exc.details, **details})
        return cls(kind="unexpected", message=f"Unexpected error: {exc}", details=details)


Result = Union[Ok[T], Err]
