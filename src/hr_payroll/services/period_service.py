"""Payroll period lifecycle service."""

from __future__ import annotations

import calendar
import logging
from datetime import date
from typing import Iterable, Sequence
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hr_payroll.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from hr_payroll.events import EventEmitter, EventMetadata, PeriodTransitioned
from hr_payroll.models import AttendanceImportBatch, PayrollItem, PayrollPeriod
from hr_payroll.models.base import utcnow
from hr_payroll.services.payroll_service import recompute_period_totals
from hr_payroll.services.state_machine import (
    PayrollItemStatus,
    PayrollPeriodStatus,
    PayrollStateMachine,
    status_value,
)

logger = logging.getLogger(__name__)


def half_month_bounds(year: int, month: int, period_number: int) -> tuple[date, date]:
    """Start and end dates of the 1-15 or 16-end half of a month."""
    if period_number == 1:
        return date(year, month, 1), date(year, month, 15)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 16), date(year, month, last_day)


class PayrollPeriodService:
    """Service for managing payroll period lifecycle.

    Operations:
    - create_period: Create a Draft half-month period
    - open_period: Draft → Open
    - approve_items: Calculated → Processed for some or all items
    - complete_period: Processing → Completed (review checkpoint)
    - finalize_period: Processing/Completed → Finalized, freezing amounts
    - mark_paid: Finalized → Paid, in bulk or per item
    - reopen_period: Completed/Finalized/Paid → Processing with a reason
    - lock_period: Paid → Locked (terminal)
    - cancel_processing: Processing → Draft, discarding items
    """

    def __init__(self, session: AsyncSession, emitter: EventEmitter | None = None):
        self.session = session
        self.emitter = emitter or EventEmitter()

    async def create_period(
        self,
        year: int,
        month: int,
        period_number: int,
        pay_date: date | None = None,
        created_by: str | None = None,
    ) -> PayrollPeriod:
        """Create a Draft period; (year, month, period_number) must be unique."""
        if not 1 <= month <= 12:
            raise ValidationError(f"Invalid month {month}")
        if period_number not in (1, 2):
            raise ValidationError(f"Invalid period number {period_number}; expected 1 or 2")

        start_date, end_date = half_month_bounds(year, month, period_number)
        period = PayrollPeriod(
            year=year,
            month=month,
            period_number=period_number,
            start_date=start_date,
            end_date=end_date,
            pay_date=pay_date or end_date,
            status=PayrollPeriodStatus.DRAFT.value,
            created_by=created_by,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(period)
                await self.session.flush()
        except IntegrityError as e:
            raise ConflictError(
                f"Payroll period {year}-{month:02d} P{period_number} already exists",
                details={"year": year, "month": month, "period_number": period_number},
            ) from e

        logger.info("Created payroll period %s", period.label)
        return period

    async def get_period(self, period_id: UUID) -> PayrollPeriod:
        period = await self.session.get(PayrollPeriod, period_id)
        if period is None:
            raise NotFoundError("PayrollPeriod", period_id)
        return period

    async def find_period(self, year: int, month: int, period_number: int) -> PayrollPeriod | None:
        result = await self.session.execute(
            select(PayrollPeriod).where(
                PayrollPeriod.year == year,
                PayrollPeriod.month == month,
                PayrollPeriod.period_number == period_number,
            )
        )
        return result.scalar_one_or_none()

    async def list_periods(self, year: int | None = None) -> Sequence[PayrollPeriod]:
        stmt = select(PayrollPeriod).order_by(
            PayrollPeriod.year, PayrollPeriod.month, PayrollPeriod.period_number
        )
        if year is not None:
            stmt = stmt.where(PayrollPeriod.year == year)
        return (await self.session.execute(stmt)).scalars().all()

    async def get_items(self, period_id: UUID) -> list[PayrollItem]:
        result = await self.session.execute(
            select(PayrollItem)
            .where(PayrollItem.period_id == period_id)
            .order_by(PayrollItem.created_at, PayrollItem.item_id)
        )
        return list(result.scalars().all())

    def can_edit(self, period: PayrollPeriod) -> bool:
        """True while attendance and generation are allowed."""
        return PayrollStateMachine.is_editable(period.status)

    # ----- Transitions -----

    async def transition_status(
        self,
        period: PayrollPeriod,
        to_status: str,
        actor: str | None = None,
        reason: str | None = None,
        items: list[PayrollItem] | None = None,
    ) -> PayrollPeriod:
        """Transition a period to a new status.

        Handles all side effects of transitions:
        - Open/Completed: status only
        - Finalized: approved items become Finalized, finalized_at set
        - Paid: finalized items become Paid, paid_at set
        - Locked: locked_at set
        - Processing (reopen): items back to Processed, reopen_count++
        - Draft (cancel): items and their totals discarded

        Raises InvalidTransitionError naming the blocking condition.
        """
        to_status = status_value(to_status)
        from_status = period.status
        if items is None:
            items = await self.get_items(period.period_id)
        has_attendance = await self._has_attendance(period.period_id)

        errors, blocking = PayrollStateMachine.validate_period_for_transition(
            period, to_status, items, reason=reason, has_attendance=has_attendance
        )
        if errors:
            raise InvalidTransitionError(from_status, to_status, "; ".join(errors), blocking)

        now = utcnow()
        if to_status == PayrollPeriodStatus.FINALIZED:
            for item in items:
                item.status = PayrollItemStatus.FINALIZED.value
            period.finalized_at = now

        elif to_status == PayrollPeriodStatus.PAID:
            for item in items:
                if item.status != PayrollItemStatus.PAID:
                    item.status = PayrollItemStatus.PAID.value
                    item.paid_at = now
            period.paid_at = now

        elif to_status == PayrollPeriodStatus.LOCKED:
            period.locked_at = now

        elif PayrollStateMachine.is_reopen(from_status, to_status):
            await self._handle_reopen(period, items, reason)

        elif to_status == PayrollPeriodStatus.DRAFT:
            await self._handle_cancel(period)

        period.status = to_status
        await self.session.flush()

        logger.info(
            "Period %s: %s -> %s%s",
            period.label,
            from_status,
            to_status,
            f" ({reason})" if reason else "",
        )
        self.emitter.emit(
            PeriodTransitioned(
                metadata=EventMetadata.create(actor=actor),
                period_id=period.period_id,
                from_status=from_status,
                to_status=to_status,
                reason=reason,
            )
        )
        return period

    async def open_period(self, period_id: UUID, actor: str | None = None) -> PayrollPeriod:
        period = await self.get_period(period_id)
        return await self.transition_status(period, PayrollPeriodStatus.OPEN, actor)

    async def approve_items(
        self,
        period_id: UUID,
        employee_ids: Iterable[UUID] | None = None,
        actor: str | None = None,
    ) -> list[PayrollItem]:
        """Approve Calculated items (Calculated → Processed).

        With no employee_ids every Calculated item is approved.
        """
        period = await self.get_period(period_id)
        if not PayrollStateMachine.can_recalculate(period.status):
            raise ConflictError(
                f"Items can only be approved while the period is Processing "
                f"(current: {period.status})",
                details={"period_id": str(period_id), "status": period.status},
            )

        items = await self.get_items(period_id)
        if employee_ids is not None:
            wanted = set(employee_ids)
            selected = [i for i in items if i.employee_id in wanted]
            missing = wanted - {i.employee_id for i in selected}
            if missing:
                raise NotFoundError("PayrollItem", ", ".join(sorted(str(m) for m in missing)))
        else:
            selected = items

        now = utcnow()
        approved: list[PayrollItem] = []
        for item in selected:
            if item.status == PayrollItemStatus.CALCULATED:
                item.status = PayrollItemStatus.PROCESSED.value
                item.approved_at = now
                item.approved_by = actor
                approved.append(item)
        await self.session.flush()
        logger.info("Approved %d item(s) in period %s", len(approved), period.label)
        return approved

    async def complete_period(self, period_id: UUID, actor: str | None = None) -> PayrollPeriod:
        period = await self.get_period(period_id)
        return await self.transition_status(period, PayrollPeriodStatus.COMPLETED, actor)

    async def finalize_period(self, period_id: UUID, actor: str | None = None) -> PayrollPeriod:
        period = await self.get_period(period_id)
        return await self.transition_status(period, PayrollPeriodStatus.FINALIZED, actor)

    async def mark_paid(
        self,
        period_id: UUID,
        employee_ids: Iterable[UUID] | None = None,
        actor: str | None = None,
    ) -> PayrollPeriod:
        """Mark items paid.

        Without employee_ids every item is paid and the period moves to
        Paid. With employee_ids only those Finalized items are paid; the
        period follows once no unpaid item remains.
        """
        period = await self.get_period(period_id)
        if employee_ids is None:
            return await self.transition_status(period, PayrollPeriodStatus.PAID, actor)

        if period.status != PayrollPeriodStatus.FINALIZED:
            raise InvalidTransitionError(
                period.status,
                PayrollPeriodStatus.PAID.value,
                "items can only be paid once the period is Finalized",
            )

        items = await self.get_items(period_id)
        by_employee = {i.employee_id: i for i in items}
        wanted = list(employee_ids)
        missing = [str(e) for e in wanted if e not in by_employee]
        if missing:
            raise NotFoundError("PayrollItem", ", ".join(missing))

        not_ready = [
            by_employee[e]
            for e in wanted
            if by_employee[e].status not in (PayrollItemStatus.FINALIZED, PayrollItemStatus.PAID)
        ]
        if not_ready:
            raise ConflictError(
                f"{len(not_ready)} payroll item(s) not finalized",
                blocking=[PayrollStateMachine.describe_item(i) for i in not_ready],
            )

        now = utcnow()
        for employee_id in wanted:
            item = by_employee[employee_id]
            if item.status != PayrollItemStatus.PAID:
                item.status = PayrollItemStatus.PAID.value
                item.paid_at = now
        await self.session.flush()

        if all(i.status == PayrollItemStatus.PAID for i in items):
            return await self.transition_status(period, PayrollPeriodStatus.PAID, actor, items=items)
        return period

    async def reopen_period(
        self, period_id: UUID, reason: str, actor: str | None = None
    ) -> PayrollPeriod:
        period = await self.get_period(period_id)
        if period.status == PayrollPeriodStatus.LOCKED:
            raise InvalidTransitionError(
                period.status,
                PayrollPeriodStatus.PROCESSING.value,
                "Locked periods cannot be reopened",
            )
        return await self.transition_status(
            period, PayrollPeriodStatus.PROCESSING, actor, reason=reason
        )

    async def lock_period(self, period_id: UUID, actor: str | None = None) -> PayrollPeriod:
        period = await self.get_period(period_id)
        return await self.transition_status(period, PayrollPeriodStatus.LOCKED, actor)

    async def cancel_processing(self, period_id: UUID, actor: str | None = None) -> PayrollPeriod:
        period = await self.get_period(period_id)
        return await self.transition_status(period, PayrollPeriodStatus.DRAFT, actor)

    # ----- Side effects -----

    async def _handle_reopen(
        self, period: PayrollPeriod, items: list[PayrollItem], reason: str | None
    ) -> None:
        for item in items:
            if item.status in (PayrollItemStatus.FINALIZED, PayrollItemStatus.PAID):
                item.status = PayrollItemStatus.PROCESSED.value
                item.paid_at = None
        period.reopen_count += 1
        period.last_reopen_reason = reason
        period.finalized_at = None
        period.paid_at = None

    async def _handle_cancel(self, period: PayrollPeriod) -> None:
        await self.session.execute(
            delete(PayrollItem)
            .where(PayrollItem.period_id == period.period_id)
            .execution_options(synchronize_session="fetch")
        )
        period.processed_at = None
        await recompute_period_totals(self.session, period)

    async def _has_attendance(self, period_id: UUID) -> bool:
        result = await self.session.execute(
            select(AttendanceImportBatch.batch_id).where(
                AttendanceImportBatch.period_id == period_id,
                AttendanceImportBatch.is_active.is_(True),
            )
        )
        return result.first() is not None
