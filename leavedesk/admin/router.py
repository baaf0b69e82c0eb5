"""Admin router — leave balance maintenance.

All endpoints require the admin role.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.admin.schemas import (
    BalanceOverwriteRequest,
    CorrectiveUpdateResult,
    EmployeeBalanceOut,
    InitialBalanceRequest,
    InitialBalanceResult,
    RolloverResult,
)
from leavedesk.admin.service import BalanceMaintenanceService
from leavedesk.auth.dependencies import require_role
from leavedesk.common.constants import UserRole
from leavedesk.common.rate_limit import limiter
from leavedesk.database import get_db
from leavedesk.employees.models import Employee

router = APIRouter(prefix="", tags=["admin"])

_admin_dep = require_role(UserRole.admin)


# ═══════════════════════════════════════════════════════════════════
# BATCH JOBS
# ═══════════════════════════════════════════════════════════════════

@router.post("/leave-balance/corrective-update", response_model=CorrectiveUpdateResult)
@limiter.limit("5/minute")
async def corrective_update(
    request: Request,
    admin: Employee = Depends(_admin_dep),
    db: AsyncSession = Depends(get_db),
):
    """Fill missing years and cap carry-over for every employee."""
    return await BalanceMaintenanceService.run_corrective_balance_update(db, actor_id=admin.id)


@router.post("/leave-balance/rollover", response_model=RolloverResult)
@limiter.limit("5/minute")
async def year_start_rollover(
    request: Request,
    admin: Employee = Depends(_admin_dep),
    db: AsyncSession = Depends(get_db),
):
    """Open the current year: carry over up to 6 days, reset the allotment to 12."""
    return await BalanceMaintenanceService.run_year_start_rollover(db, actor_id=admin.id)


# ═══════════════════════════════════════════════════════════════════
# OVERWRITES
# ═══════════════════════════════════════════════════════════════════

@router.patch("/leave-balance", response_model=EmployeeBalanceOut)
async def overwrite_balance(
    body: BalanceOverwriteRequest,
    admin: Employee = Depends(_admin_dep),
    db: AsyncSession = Depends(get_db),
):
    return await BalanceMaintenanceService.set_employee_balance(
        db, body.employee_id, body.year, body.days, actor_id=admin.id,
    )


@router.post("/leave-balance/initial", response_model=InitialBalanceResult)
async def initial_balance(
    body: InitialBalanceRequest,
    admin: Employee = Depends(_admin_dep),
    db: AsyncSession = Depends(get_db),
):
    """Set the same balance for one year on every role-``user`` employee."""
    return await BalanceMaintenanceService.set_initial_balance_for_all(
        db, body.year, body.days, actor_id=admin.id,
    )
