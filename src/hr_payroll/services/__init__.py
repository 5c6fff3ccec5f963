"""HR payroll services."""

from hr_payroll.services.attendance_service import AttendanceStore, ReimportWarning
from hr_payroll.services.benefits_service import BenefitsService, BulkCalculationResult
from hr_payroll.services.employee_directory import EmployeeDirectory, SqlEmployeeDirectory
from hr_payroll.services.override_service import ActiveOverrides, OverrideService
from hr_payroll.services.payroll_service import GenerationSummary, PayrollGenerationService
from hr_payroll.services.period_service import PayrollPeriodService
from hr_payroll.services.state_machine import (
    PayrollItemStatus,
    PayrollPeriodStatus,
    PayrollStateMachine,
)
from hr_payroll.services.step_increment_service import StepIncrementService

__all__ = [
    "AttendanceStore",
    "ReimportWarning",
    "BenefitsService",
    "BulkCalculationResult",
    "EmployeeDirectory",
    "SqlEmployeeDirectory",
    "ActiveOverrides",
    "OverrideService",
    "GenerationSummary",
    "PayrollGenerationService",
    "PayrollPeriodService",
    "PayrollItemStatus",
    "PayrollPeriodStatus",
    "PayrollStateMachine",
    "StepIncrementService",
]
