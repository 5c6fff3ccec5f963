"""Domain events and the emitter that delivers them."""

from hr_payroll.events.emitter import AuditLogHandler, EventBatch, EventEmitter, RecordingHandler
from hr_payroll.events.types import (
    AttendanceImported,
    AttendanceReimportWarned,
    BenefitItemCreated,
    CompensationBenefitProcessed,
    DomainEvent,
    EventCategory,
    EventMetadata,
    OverrideChanged,
    PayrollGenerated,
    PeriodTransitioned,
    StepIncrementApplied,
)

__all__ = [
    "EventEmitter",
    "EventBatch",
    "RecordingHandler",
    "AuditLogHandler",
    "DomainEvent",
    "EventCategory",
    "EventMetadata",
    "PeriodTransitioned",
    "PayrollGenerated",
    "AttendanceImported",
    "AttendanceReimportWarned",
    "OverrideChanged",
    "BenefitItemCreated",
    "CompensationBenefitProcessed",
    "StepIncrementApplied",
]
