"""Periodic salary step increments."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from hr_payroll.calculators.proration import evaluate_step_increment
from hr_payroll.events import EventEmitter, EventMetadata, StepIncrementApplied
from hr_payroll.result import Err
from hr_payroll.services.employee_directory import EmployeeDirectory

logger = logging.getLogger(__name__)


@dataclass
class StepIncrementRun:
    evaluation_date: date
    applied: list[UUID] = field(default_factory=list)
    not_eligible: Counter = field(default_factory=Counter)
    failures: dict[UUID, Err] = field(default_factory=dict)


class StepIncrementService:
    """Grants the next salary step to employees who reached their anniversary."""

    def __init__(
        self, session: AsyncSession, directory: EmployeeDirectory, emitter: EventEmitter | None = None
    ):
        self.session = session
        self.directory = directory
        self.emitter = emitter or EventEmitter()

    async def process(self, evaluation_date: date, actor: str = "system") -> StepIncrementRun:
        """Evaluate every active employee; one failure never blocks the others."""
        run = StepIncrementRun(evaluation_date=evaluation_date)

        for employee in await self.directory.get_active_employees():
            employee_id = employee.employee_id
            try:
                async with self.session.begin_nested():
                    verdict = evaluate_step_increment(
                        employee.step_increment,
                        employee.last_step_increment_date or employee.appointment_date,
                        evaluation_date,
                    )
                    if not verdict.eligible:
                        run.not_eligible[verdict.reason.value] += 1
                        continue
                    employee.step_increment = verdict.next_step
                    employee.last_step_increment_date = evaluation_date
                    await self.session.flush()
            except Exception as e:
                run.failures[employee_id] = Err.from_exception(e, employee_id=str(employee_id))
                logger.warning("Step increment failed for employee %s: %s", employee_id, e)
                continue

            run.applied.append(employee_id)
            logger.info(
                "Employee %s advanced to step %d", employee.employee_number, verdict.next_step
            )
            self.emitter.emit(
                StepIncrementApplied(
                    metadata=EventMetadata.create(actor=actor),
                    employee_id=employee_id,
                    from_step=verdict.current_step,
                    to_step=verdict.next_step,
                    effective_date=evaluation_date,
                )
            )

        return run
