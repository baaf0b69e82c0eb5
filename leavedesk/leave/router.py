"""Leave router — submit, decide, read requests and balances.

All endpoints require authentication. Decisions are restricted to the
request's assigned approver (or an admin) inside the service layer.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leavedesk.auth.dependencies import get_current_user
from leavedesk.common.constants import ApprovalStatus
from leavedesk.common.exceptions import ForbiddenException
from leavedesk.common.pagination import PaginatedResponse, PaginationParams
from leavedesk.database import get_db, get_session_factory
from leavedesk.employees.models import Employee
from leavedesk.leave.documents import DocumentService
from leavedesk.leave.schemas import (
    BalanceSummaryOut,
    LeaveDecisionRequest,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveTypeOut,
)
from leavedesk.leave.service import LeaveService

router = APIRouter(prefix="", tags=["leave"])


# ── POST /requests ──────────────────────────────────────────────────

@router.post("/requests", response_model=LeaveRequestOut, status_code=201)
async def create_leave_request(
    body: LeaveRequestCreate,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Submit a leave request. Annual leave is deducted from the balance immediately."""
    return await LeaveService.create_leave_request(db, employee.id, body)


# ── GET /requests ───────────────────────────────────────────────────

@router.get("/requests", response_model=PaginatedResponse[LeaveRequestOut])
async def list_leave_requests(
    status: Optional[ApprovalStatus] = Query(None),
    year: Optional[int] = Query(None, ge=1900, le=9999),
    pagination: PaginationParams = Depends(),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Own requests plus those the caller supervises or signs off; admins see all."""
    items, meta = await LeaveService.list_leave_requests(
        db,
        employee,
        page=pagination.page,
        page_size=pagination.page_size,
        status=status,
        year=year,
    )
    return {"data": items, "meta": meta}


# ── GET /requests/{request_id} ──────────────────────────────────────

@router.get("/requests/{request_id}", response_model=LeaveRequestOut)
async def get_leave_request(
    request_id: str,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_leave_request(db, request_id, employee)


# ── GET /requests/{request_id}/document ─────────────────────────────

@router.get("/requests/{request_id}/document", response_class=RedirectResponse)
async def get_leave_document(
    request_id: str,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Redirect to the generated leave document."""
    link = await LeaveService.get_document_link(db, request_id, employee)
    return RedirectResponse(url=link, status_code=307)


# ── PUT /requests/{request_id}/supervisor-decision ──────────────────

@router.put("/requests/{request_id}/supervisor-decision", response_model=LeaveRequestOut)
async def supervisor_decision(
    request_id: str,
    body: LeaveDecisionRequest,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Supervisor approves or rejects. Rejection restores the consumed balance."""
    return await LeaveService.decide_as_supervisor(db, request_id, employee, body)


# ── PUT /requests/{request_id}/officer-decision ─────────────────────

@router.put("/requests/{request_id}/officer-decision", response_model=LeaveRequestOut)
async def officer_decision(
    request_id: str,
    body: LeaveDecisionRequest,
    background_tasks: BackgroundTasks,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Authorized officer approves or rejects, after supervisor approval.

    Final approval triggers document generation once the decision is
    committed.
    """
    result = await LeaveService.decide_as_authorized_officer(db, request_id, employee, body)
    if result.status == ApprovalStatus.approved:
        await db.commit()
        background_tasks.add_task(
            DocumentService.dispatch_approved_request, result.id, session_factory,
        )
    return result


# ── GET /types ──────────────────────────────────────────────────────

@router.get("/types", response_model=list[LeaveTypeOut])
async def list_leave_types(
    _employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_leave_types(db)


# ── GET /balance ────────────────────────────────────────────────────

@router.get("/balance", response_model=BalanceSummaryOut)
async def get_balance(
    year: Optional[int] = Query(None, ge=1900, le=9999),
    employee_id: Optional[int] = Query(None),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Balance buckets for the caller (admins may pass any ``employee_id``)."""
    target_id = employee_id if employee_id is not None else employee.id
    if target_id != employee.id and not employee.is_admin:
        raise ForbiddenException("Only admins can view another employee's balance.")
    return await LeaveService.get_balance_summary(
        db, target_id, year or date.today().year,
    )
