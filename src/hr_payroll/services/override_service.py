"""Allowance and deduction overrides.

At most one override per (employee, type) may be active. The rule is
enforced by a partial unique index, so two concurrent creations cannot
both succeed; the loser gets a ConflictError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hr_payroll.errors import ConflictError, NotFoundError, PersistenceError
from hr_payroll.events import EventEmitter, EventMetadata, OverrideChanged
from hr_payroll.models import (
    AllowanceOverride,
    AllowanceType,
    DeductionOverride,
    DeductionType,
    Employee,
)
from hr_payroll.models.base import utcnow
from hr_payroll.schemas import OverrideCreate, parse_model

logger = logging.getLogger(__name__)

Override = Union[AllowanceOverride, DeductionOverride]


@dataclass(frozen=True)
class _OverrideKind:
    name: str
    model: type
    type_model: type
    type_fk: str


ALLOWANCE = _OverrideKind("allowance", AllowanceOverride, AllowanceType, "allowance_type_id")
DEDUCTION = _OverrideKind("deduction", DeductionOverride, DeductionType, "deduction_type_id")


@dataclass(frozen=True)
class ActiveOverrides:
    """Typed lookup of overrides in effect on a date, keyed by (employee, type)."""

    allowances: dict[tuple[UUID, UUID], Decimal]
    deductions: dict[tuple[UUID, UUID], Decimal]

    def allowance(self, employee_id: UUID, type_id: UUID) -> Decimal | None:
        return self.allowances.get((employee_id, type_id))

    def deduction(self, employee_id: UUID, type_id: UUID) -> Decimal | None:
        return self.deductions.get((employee_id, type_id))


class OverrideService:
    """Creates, deactivates, and resolves employee overrides."""

    def __init__(self, session: AsyncSession, emitter: EventEmitter | None = None):
        self.session = session
        self.emitter = emitter or EventEmitter()

    async def create_allowance_override(self, data: OverrideCreate | dict[str, Any]) -> AllowanceOverride:
        return await self._create(ALLOWANCE, data)

    async def create_deduction_override(self, data: OverrideCreate | dict[str, Any]) -> DeductionOverride:
        return await self._create(DEDUCTION, data)

    async def deactivate_allowance_override(self, override_id: UUID, actor: str | None = None) -> AllowanceOverride:
        return await self._deactivate(ALLOWANCE, override_id, actor)

    async def deactivate_deduction_override(self, override_id: UUID, actor: str | None = None) -> DeductionOverride:
        return await self._deactivate(DEDUCTION, override_id, actor)

    async def replace_allowance_override(self, data: OverrideCreate | dict[str, Any]) -> AllowanceOverride:
        """Deactivate the current active override (if any) and create a new one."""
        return await self._replace(ALLOWANCE, data)

    async def replace_deduction_override(self, data: OverrideCreate | dict[str, Any]) -> DeductionOverride:
        return await self._replace(DEDUCTION, data)

    async def get_active_allowance_override(
        self, employee_id: UUID, allowance_type_id: UUID, on_date: date | None = None
    ) -> AllowanceOverride | None:
        return await self._get_active(ALLOWANCE, employee_id, allowance_type_id, on_date)

    async def get_active_deduction_override(
        self, employee_id: UUID, deduction_type_id: UUID, on_date: date | None = None
    ) -> DeductionOverride | None:
        return await self._get_active(DEDUCTION, employee_id, deduction_type_id, on_date)

    async def load_active_overrides(self, on_date: date) -> ActiveOverrides:
        """All overrides in effect on a date, for the payroll pipeline."""
        return ActiveOverrides(
            allowances=await self._load_map(ALLOWANCE, on_date),
            deductions=await self._load_map(DEDUCTION, on_date),
        )

    # ----- Internals -----

    async def _create(self, kind: _OverrideKind, data: OverrideCreate | dict[str, Any]) -> Any:
        request: OverrideCreate = parse_model(OverrideCreate, data, context=f"{kind.name} override")
        await self._require_targets(kind, request)

        override = kind.model(
            employee_id=request.employee_id,
            amount=request.amount,
            effective_date=request.effective_date,
            end_date=request.end_date,
            is_active=True,
            reason=request.reason,
            created_by=request.created_by,
        )
        setattr(override, kind.type_fk, request.type_id)

        try:
            async with self.session.begin_nested():
                self.session.add(override)
                await self.session.flush()
        except IntegrityError as e:
            raise ConflictError(
                f"An active {kind.name} override already exists for employee "
                f"{request.employee_id} and type {request.type_id}",
                details={"employee_id": str(request.employee_id), "type_id": str(request.type_id)},
            ) from e
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to create {kind.name} override: {e}") from e

        logger.info(
            "Created %s override %s for employee %s (amount %s)",
            kind.name,
            override.override_id,
            request.employee_id,
            request.amount,
        )
        self.emitter.emit(
            OverrideChanged(
                metadata=EventMetadata.create(actor=request.created_by),
                override_id=override.override_id,
                override_kind=kind.name,
                employee_id=request.employee_id,
                type_id=request.type_id,
                action="created",
                amount=request.amount,
            )
        )
        return override

    async def _deactivate(self, kind: _OverrideKind, override_id: UUID, actor: str | None) -> Any:
        override = await self.session.get(kind.model, override_id)
        if override is None:
            raise NotFoundError(f"{kind.model.__name__}", override_id)
        if not override.is_active:
            return override

        override.is_active = False
        override.deactivated_at = utcnow()
        await self.session.flush()

        logger.info("Deactivated %s override %s", kind.name, override_id)
        self.emitter.emit(
            OverrideChanged(
                metadata=EventMetadata.create(actor=actor),
                override_id=override.override_id,
                override_kind=kind.name,
                employee_id=override.employee_id,
                type_id=getattr(override, kind.type_fk),
                action="deactivated",
            )
        )
        return override

    async def _replace(self, kind: _OverrideKind, data: OverrideCreate | dict[str, Any]) -> Any:
        """Deactivate the active override and create its successor as one unit."""
        request: OverrideCreate = parse_model(OverrideCreate, data, context=f"{kind.name} override")
        await self._require_targets(kind, request)
        async with self.session.begin_nested():
            current = await self.session.execute(
                select(kind.model).where(
                    kind.model.employee_id == request.employee_id,
                    getattr(kind.model, kind.type_fk) == request.type_id,
                    kind.model.is_active.is_(True),
                )
            )
            for previous in current.scalars().all():
                previous.is_active = False
                previous.deactivated_at = utcnow()
            await self.session.flush()
            return await self._create(kind, request)

    async def _require_targets(self, kind: _OverrideKind, request: OverrideCreate) -> None:
        if await self.session.get(Employee, request.employee_id) is None:
            raise NotFoundError("Employee", request.employee_id)
        if await self.session.get(kind.type_model, request.type_id) is None:
            raise NotFoundError(kind.type_model.__name__, request.type_id)

    async def _get_active(
        self, kind: _OverrideKind, employee_id: UUID, type_id: UUID, on_date: date | None
    ) -> Any:
        stmt = select(kind.model).where(
            kind.model.employee_id == employee_id,
            getattr(kind.model, kind.type_fk) == type_id,
            kind.model.is_active.is_(True),
        )
        if on_date is not None:
            stmt = stmt.where(*self._in_effect(kind, on_date))
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _load_map(self, kind: _OverrideKind, on_date: date) -> dict[tuple[UUID, UUID], Decimal]:
        type_col = getattr(kind.model, kind.type_fk)
        result = await self.session.execute(
            select(kind.model.employee_id, type_col, kind.model.amount).where(
                kind.model.is_active.is_(True), *self._in_effect(kind, on_date)
            )
        )
        return {(emp_id, type_id): amount for emp_id, type_id, amount in result.all()}

    @staticmethod
    def _in_effect(kind: _OverrideKind, on_date: date) -> tuple:
        return (
            kind.model.effective_date <= on_date,
            (kind.model.end_date.is_(None)) | (kind.model.end_date >= on_date),
        )
