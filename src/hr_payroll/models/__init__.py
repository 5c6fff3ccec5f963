"""ORM models for the payroll engine."""

from hr_payroll.models.base import Base, TimestampMixin
from hr_payroll.models.benefits import BenefitCycle, BenefitItem, CompensationBenefit
from hr_payroll.models.employee import Employee, EmployeeLeaveBalance, LeaveType
from hr_payroll.models.payroll import (
    AllowanceOverride,
    AllowanceType,
    AttendanceImportBatch,
    AttendanceRecord,
    DeductionOverride,
    DeductionType,
    PayrollItem,
    PayrollPeriod,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "Employee",
    "LeaveType",
    "EmployeeLeaveBalance",
    "PayrollPeriod",
    "AttendanceImportBatch",
    "AttendanceRecord",
    "PayrollItem",
    "AllowanceType",
    "DeductionType",
    "AllowanceOverride",
    "DeductionOverride",
    "BenefitCycle",
    "BenefitItem",
    "CompensationBenefit",
]
