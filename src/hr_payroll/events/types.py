"""Domain event types emitted by the payroll engine.

Events are immutable records of what happened. Delivery and formatting
(audit log, notifications) belong to whoever subscribes.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    PAYROLL = "payroll"
    ATTENDANCE = "attendance"
    OVERRIDE = "override"
    BENEFITS = "benefits"


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: UUID
    timestamp: datetime
    actor: str | None
    correlation_id: UUID
    source_service: str

    @classmethod
    def create(
        cls,
        actor: str | None = None,
        correlation_id: UUID | None = None,
        source_service: str = "payroll",
    ) -> EventMetadata:
        """Create metadata with auto-generated fields."""
        return cls(
            event_id=uuid4(),
            timestamp=datetime.now(timezone.utc),
            actor=actor,
            correlation_id=correlation_id or uuid4(),
            source_service=source_service,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    @property
    def category(self) -> EventCategory:
        raise NotImplementedError("Subclasses must define category")

    def to_dict(self) -> dict[str, Any]:
        data = _serialize(asdict(self))
        data["event_type"] = self.event_type
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


def _serialize(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_serialize(v) for v in obj]
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    return obj


# =============================================================================
# Payroll Events
# =============================================================================


@dataclass(frozen=True)
class PeriodTransitioned(DomainEvent):
    """A payroll period moved between statuses."""

    period_id: UUID
    from_status: str
    to_status: str
    reason: str | None = None

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYROLL


@dataclass(frozen=True)
class PayrollGenerated(DomainEvent):
    """Payroll generation finished for a period."""

    period_id: UUID
    processed_count: int
    failed_count: int
    skipped_count: int
    total_net_pay: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYROLL


# =============================================================================
# Attendance Events
# =============================================================================


@dataclass(frozen=True)
class AttendanceImported(DomainEvent):
    """An attendance batch became the active batch of a period."""

    period_id: UUID
    batch_id: UUID
    row_count: int
    superseded_batch_id: UUID | None = None

    @property
    def category(self) -> EventCategory:
        return EventCategory.ATTENDANCE


@dataclass(frozen=True)
class AttendanceReimportWarned(DomainEvent):
    """An import hit an existing batch and was held for confirmation."""

    period_id: UUID
    existing_batch_id: UUID
    previous_row_count: int
    payroll_items_exist: bool

    @property
    def category(self) -> EventCategory:
        return EventCategory.ATTENDANCE


# =============================================================================
# Override Events
# =============================================================================


@dataclass(frozen=True)
class OverrideChanged(DomainEvent):
    """An allowance or deduction override was created or deactivated."""

    override_id: UUID
    override_kind: str
    employee_id: UUID
    type_id: UUID
    action: str
    amount: Decimal | None = None

    @property
    def category(self) -> EventCategory:
        return EventCategory.OVERRIDE


# =============================================================================
# Benefit Events
# =============================================================================


@dataclass(frozen=True)
class BenefitItemCreated(DomainEvent):
    """A benefit item was created within a cycle."""

    cycle_id: UUID
    item_id: UUID
    employee_id: UUID
    benefit_type: str
    calculated_amount: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.BENEFITS


@dataclass(frozen=True)
class CompensationBenefitProcessed(DomainEvent):
    """A one-off benefit payout was written to the ledger."""

    benefit_id: UUID
    employee_id: UUID
    benefit_type: str
    amount: Decimal
    days_used: Decimal | None = None

    @property
    def category(self) -> EventCategory:
        return EventCategory.BENEFITS


@dataclass(frozen=True)
class StepIncrementApplied(DomainEvent):
    """An employee advanced one salary step."""

    employee_id: UUID
    from_step: int
    to_step: int
    effective_date: date

    @property
    def category(self) -> EventCategory:
        return EventCategory.BENEFITS
