"""Admin balance maintenance — corrective update, year-start rollover, overwrites.

Batch jobs walk employees one at a time. Each employee is written inside its
own savepoint, so a failure rolls back that employee only and is counted in
the job's ``errors`` tally.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.admin.schemas import (
    CorrectiveUpdateResult,
    EmployeeBalanceOut,
    InitialBalanceResult,
    RolloverResult,
)
from leavedesk.common.constants import ApprovalStatus, UserRole
from leavedesk.common.exceptions import NotFoundException
from leavedesk.config import settings
from leavedesk.employees.models import Employee
from leavedesk.leave import ledger
from leavedesk.leave.models import LeaveRequest
from leavedesk.leave.service import LeaveService

logger = logging.getLogger(__name__)


class BalanceMaintenanceService:
    """Static service class for admin balance operations."""

    # ── Helpers ─────────────────────────────────────────────────────

    @staticmethod
    async def _employees(
        db: AsyncSession,
        role: Optional[UserRole] = None,
    ) -> list[Employee]:
        query = select(Employee).order_by(Employee.id)
        if role is not None:
            query = query.where(Employee.role == role)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def _approved_annual_usage(db: AsyncSession, year: int) -> dict[int, int]:
        """Working days of approved annual leave lying wholly inside *year*."""
        result = await db.execute(
            select(LeaveRequest.user_id, func.sum(LeaveRequest.workingdays))
            .where(
                LeaveRequest.type == settings.ANNUAL_LEAVE_TYPE,
                LeaveRequest.status == ApprovalStatus.approved,
                LeaveRequest.start_date >= date(year, 1, 1),
                LeaveRequest.end_date <= date(year, 12, 31),
            )
            .group_by(LeaveRequest.user_id)
        )
        return {user_id: int(total or 0) for user_id, total in result.all()}

    # ── Corrective update ───────────────────────────────────────────

    @staticmethod
    async def run_corrective_balance_update(
        db: AsyncSession,
        *,
        actor_id: Optional[int] = None,
        as_of: Optional[date] = None,
    ) -> CorrectiveUpdateResult:
        """Fill missing years and cap the previous year for every employee."""
        current_year = (as_of or date.today()).year
        summary = CorrectiveUpdateResult()

        for employee in await BalanceMaintenanceService._employees(db):
            summary.total += 1
            capped_flag: dict[str, bool] = {}

            def cap_and_fill(balance: dict) -> dict:
                new_balance, capped = ledger.cap_and_fill_balance(balance, current_year)
                capped_flag["capped"] = capped
                return new_balance

            preview, _ = ledger.cap_and_fill_balance(employee.leave_balance, current_year)
            if preview == (employee.leave_balance or {}):
                continue

            try:
                async with db.begin_nested():
                    await LeaveService.write_balance(
                        db, employee, cap_and_fill,
                        actor_id=actor_id, action="leave_balance.corrective",
                    )
            except Exception:
                summary.errors += 1
                logger.exception("Corrective balance update failed for employee %s", employee.id)
                continue

            summary.updated += 1
            if capped_flag.get("capped"):
                summary.capped += 1

        logger.info(
            "Corrective balance update for %d: total=%d updated=%d capped=%d errors=%d",
            current_year, summary.total, summary.updated, summary.capped, summary.errors,
        )
        return summary

    # ── Year-start rollover ─────────────────────────────────────────

    @staticmethod
    async def run_year_start_rollover(
        db: AsyncSession,
        *,
        actor_id: Optional[int] = None,
        as_of: Optional[date] = None,
    ) -> RolloverResult:
        """Open the current year for every role-``user`` employee."""
        new_year = (as_of or date.today()).year
        usage = await BalanceMaintenanceService._approved_annual_usage(db, new_year - 1)
        summary = RolloverResult(year=new_year)

        for employee in await BalanceMaintenanceService._employees(db, UserRole.user):
            summary.total += 1
            used = usage.get(employee.id, 0)
            try:
                async with db.begin_nested():
                    await LeaveService.write_balance(
                        db,
                        employee,
                        lambda balance: ledger.rollover_balance(balance, new_year, used),
                        actor_id=actor_id,
                        action="leave_balance.rollover",
                    )
            except Exception:
                summary.errors += 1
                logger.exception("Year-start rollover failed for employee %s", employee.id)
                continue
            summary.updated += 1

        summary.success = summary.errors == 0
        logger.info(
            "Year-start rollover into %d: total=%d updated=%d errors=%d",
            new_year, summary.total, summary.updated, summary.errors,
        )
        return summary

    # ── Direct overwrites ───────────────────────────────────────────

    @staticmethod
    async def set_employee_balance(
        db: AsyncSession,
        employee_id: int,
        year: int,
        days: int,
        *,
        actor_id: Optional[int] = None,
    ) -> EmployeeBalanceOut:
        employee = await db.get(Employee, employee_id)
        if employee is None:
            raise NotFoundException("Employee", employee_id)

        _, new_balance = await LeaveService.write_balance(
            db,
            employee,
            lambda balance: ledger.set_year_balance(balance, year, days),
            actor_id=actor_id,
            action="leave_balance.overwrite",
        )
        return EmployeeBalanceOut(employee_id=employee.id, leave_balance=new_balance)

    @staticmethod
    async def set_initial_balance_for_all(
        db: AsyncSession,
        year: int,
        days: int,
        *,
        actor_id: Optional[int] = None,
    ) -> InitialBalanceResult:
        summary = InitialBalanceResult(year=year, days=days)

        for employee in await BalanceMaintenanceService._employees(db, UserRole.user):
            summary.total += 1
            try:
                async with db.begin_nested():
                    await LeaveService.write_balance(
                        db,
                        employee,
                        lambda balance: ledger.set_year_balance(balance, year, days),
                        actor_id=actor_id,
                        action="leave_balance.initial",
                    )
            except Exception:
                summary.errors += 1
                logger.exception("Initial balance failed for employee %s", employee.id)
                continue
            summary.updated += 1

        logger.info(
            "Initial balance %d day(s) for %d: total=%d updated=%d errors=%d",
            days, year, summary.total, summary.updated, summary.errors,
        )
        return summary
