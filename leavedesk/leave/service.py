"""Leave service layer — balance ledger persistence, submission, approvals.

Business logic:
  - Compare-and-swap writes of the per-employee balance map
  - Leave submission with working-day calculation and bucket consumption
  - Two-tier approval (supervisor, then authorized officer) with balance
    restoration on rejection
  - Request visibility, listing and balance summaries
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from leavedesk.common.audit import create_audit_entry
from leavedesk.common.constants import (
    MAX_LEAVE_SPAN_DAYS,
    REQUEST_ID_PREFIX,
    ApproverType,
    Decision,
)
from leavedesk.common.exceptions import (
    ConflictError,
    ForbiddenException,
    InvalidStateException,
    NotFoundException,
    ValidationException,
)
from leavedesk.common.pagination import PaginationMeta
from leavedesk.config import settings
from leavedesk.employees.models import Employee
from leavedesk.holidays.service import get_holiday_dates
from leavedesk.leave import ledger
from leavedesk.leave.ledger import BalanceBuckets, Consumption
from leavedesk.leave.models import LeaveRequest, LeaveType
from leavedesk.leave.schemas import (
    BalanceSummaryOut,
    LeaveDecisionRequest,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveTypeOut,
)
from leavedesk.leave.workdays import calendar_span, count_working_days
from leavedesk.leave.workflow import STAGE_COLUMNS, next_stage, stage_of

logger = logging.getLogger(__name__)

BalanceMutation = Callable[[dict[str, Any]], dict[str, Any]]


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave operations: balances, requests, approvals."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def is_annual_leave(leave_type: str) -> bool:
        return leave_type == settings.ANNUAL_LEAVE_TYPE

    @staticmethod
    def generate_request_id(employee_id: int, now: Optional[datetime] = None) -> str:
        """``CUTI-YYYYMMDD-HHMMSS-<employee id>-<3 random digits>``."""
        now = now or datetime.now(timezone.utc)
        suffix = f"{random.randint(0, 999):03d}"
        return f"{REQUEST_ID_PREFIX}-{now:%Y%m%d-%H%M%S}-{employee_id}-{suffix}"

    @staticmethod
    async def _get_employee(db: AsyncSession, employee_id: int) -> Employee:
        employee = await db.get(Employee, employee_id)
        if employee is None:
            raise NotFoundException("Employee", employee_id)
        return employee

    @staticmethod
    async def _load_request(db: AsyncSession, request_id: str) -> LeaveRequest:
        result = await db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.id == request_id)
            .options(
                selectinload(LeaveRequest.requester),
                selectinload(LeaveRequest.supervisor),
                selectinload(LeaveRequest.authorized_officer),
            )
            .execution_options(populate_existing=True)
        )
        leave_req = result.scalars().first()
        if leave_req is None:
            raise NotFoundException("LeaveRequest", request_id)
        return leave_req

    @staticmethod
    def _consumption_of(leave_req: LeaveRequest) -> Consumption:
        return Consumption(
            used_n2=leave_req.used_n2_year or 0,
            used_carry=leave_req.used_carry_over_days or 0,
            used_current=leave_req.used_current_year_days or 0,
        )

    # ─────────────────────────────────────────────────────────────────
    # Balance persistence
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def write_balance(
        db: AsyncSession,
        employee: Employee,
        mutate: BalanceMutation,
        *,
        actor_id: Optional[int] = None,
        action: str = "leave_balance.update",
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        """Replace ``employee.leave_balance`` with ``mutate(current)``.

        The write only lands if ``balance_version`` is unchanged since the
        map was read. On a lost race the map is re-read and ``mutate`` is
        run again, so any checks it performs see the fresh balance. Returns
        ``(old_balance, new_balance)``.
        """
        attempts = settings.BALANCE_WRITE_RETRIES + 1
        for attempt in range(1, attempts + 1):
            seen_version = employee.balance_version or 0
            old_balance = dict(employee.leave_balance or {})
            new_balance = mutate(dict(old_balance))

            result = await db.execute(
                update(Employee)
                .where(
                    Employee.id == employee.id,
                    Employee.balance_version == seen_version,
                )
                .values(
                    leave_balance=new_balance,
                    balance_version=seen_version + 1,
                    updated_at=func.now(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                set_committed_value(employee, "leave_balance", new_balance)
                set_committed_value(employee, "balance_version", seen_version + 1)
                await create_audit_entry(
                    db,
                    actor_id=actor_id,
                    action=action,
                    entity_type="employee",
                    entity_id=employee.id,
                    old_values={"leave_balance": old_balance},
                    new_values={"leave_balance": new_balance},
                )
                logger.info(
                    "Balance of employee %s updated (%s): %s -> %s",
                    employee.id, action, old_balance, new_balance,
                )
                return old_balance, new_balance

            logger.warning(
                "Balance write conflict for employee %s (attempt %d/%d)",
                employee.id, attempt, attempts,
            )
            await db.refresh(employee, attribute_names=["leave_balance", "balance_version"])

        raise ConflictError(
            f"Leave balance of employee {employee.id} was modified concurrently; "
            "please retry."
        )

    # ─────────────────────────────────────────────────────────────────
    # Balance reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_remaining_balance(
        db: AsyncSession,
        employee_id: int,
        year: int,
    ) -> int:
        employee = await LeaveService._get_employee(db, employee_id)
        return ledger.remaining_balance(employee.leave_balance, year)

    @staticmethod
    async def get_balance_summary(
        db: AsyncSession,
        employee_id: int,
        year: int,
    ) -> BalanceSummaryOut:
        employee = await LeaveService._get_employee(db, employee_id)
        buckets = BalanceBuckets.resolve(employee.leave_balance, year)
        return BalanceSummaryOut(
            employee_id=employee.id,
            year=year,
            remaining=ledger.remaining_balance(employee.leave_balance, year),
            two_years_ago=buckets.two_years_ago,
            carry_over=buckets.carry_over,
            current=buckets.current,
            total_available=buckets.total,
        )

    # ─────────────────────────────────────────────────────────────────
    # Leave types
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_leave_types(db: AsyncSession) -> list[LeaveTypeOut]:
        result = await db.execute(select(LeaveType).order_by(LeaveType.name))
        return [LeaveTypeOut.model_validate(lt) for lt in result.scalars().all()]

    # ─────────────────────────────────────────────────────────────────
    # Submission
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _validate_approver(
        db: AsyncSession,
        approver_id: int,
        field: str,
        errors: dict[str, list[str]],
    ) -> None:
        approver = await db.get(Employee, approver_id)
        if approver is None:
            errors[field] = [f"Employee {approver_id} does not exist."]
        elif not approver.is_active:
            errors[field] = [f"Employee {approver_id} is not active."]

    @staticmethod
    async def create_leave_request(
        db: AsyncSession,
        employee_id: int,
        data: LeaveRequestCreate,
    ) -> LeaveRequestOut:
        """Submit a leave request.

        Steps:
          1. Validate requester, date range, reason, approvers and type
          2. Resolve working days (computed unless supplied)
          3. For annual leave, split the days across the balance buckets
             and write the reduced balance
          4. Persist the request with the pre-consumption snapshot
        """
        employee = await LeaveService._get_employee(db, employee_id)
        if not employee.is_active:
            raise ForbiddenException("Inactive employees cannot submit leave requests.")

        errors: dict[str, list[str]] = {}

        span = calendar_span(data.start_date, data.end_date)
        if data.end_date < data.start_date:
            errors["end_date"] = ["end_date must be on or after start_date."]
        elif span > MAX_LEAVE_SPAN_DAYS:
            errors["end_date"] = [
                f"A leave request may span at most {MAX_LEAVE_SPAN_DAYS} days."
            ]

        if not (data.reason or "").strip():
            errors["reason"] = ["A reason is required."]

        await LeaveService._validate_approver(db, data.supervisor_id, "supervisor_id", errors)
        await LeaveService._validate_approver(
            db, data.authorized_officer_id, "authorized_officer_id", errors
        )

        type_result = await db.execute(
            select(LeaveType.id).where(LeaveType.name == data.type)
        )
        if type_result.scalar() is None:
            errors["type"] = [f"Unknown leave type '{data.type}'."]

        if errors:
            raise ValidationException(errors)

        # ── Working days ────────────────────────────────────────────
        if data.workingdays is None:
            holidays = await get_holiday_dates(db, data.start_date, data.end_date)
            working_days = count_working_days(data.start_date, data.end_date, holidays)
            if working_days <= 0:
                raise ValidationException(
                    {"dates": ["No working days found in the selected range "
                               "(all days may be weekends or holidays)."]}
                )
        else:
            working_days = data.workingdays
            if not 1 <= working_days <= span:
                raise ValidationException(
                    {"workingdays": [
                        f"workingdays must be between 1 and {span} for this range."
                    ]}
                )

        now = datetime.now(timezone.utc)
        year = data.start_date.year
        leave_req = LeaveRequest(
            id=LeaveService.generate_request_id(employee.id, now),
            user_id=employee.id,
            type=data.type,
            start_date=data.start_date,
            end_date=data.end_date,
            workingdays=working_days,
            reason=data.reason.strip(),
            address=data.address if data.address is not None else employee.address,
            phone=data.phone if data.phone is not None else employee.phone,
            leave_year=year,
            supervisor_id=data.supervisor_id,
            authorized_officer_id=data.authorized_officer_id,
            created_at=now,
            updated_at=now,
        )

        # ── Balance consumption (annual leave only) ─────────────────
        if LeaveService.is_annual_leave(data.type):
            computed: dict[str, Any] = {}

            def consume(balance: dict[str, Any]) -> dict[str, Any]:
                buckets = BalanceBuckets.resolve(balance, year)
                consumption = ledger.compute_consumption(buckets, working_days)
                computed["buckets"], computed["consumption"] = buckets, consumption
                return ledger.apply_consumption(balance, year, consumption)

            await LeaveService.write_balance(
                db, employee, consume,
                actor_id=employee.id, action="leave_balance.consume",
            )
            buckets: BalanceBuckets = computed["buckets"]
            consumption: Consumption = computed["consumption"]

            leave_req.saldo_n2_year = buckets.two_years_ago
            leave_req.saldo_carry = buckets.carry_over
            leave_req.saldo_current_year = buckets.current
            leave_req.used_n2_year = consumption.used_n2
            leave_req.used_carry_over_days = consumption.used_carry
            leave_req.used_current_year_days = consumption.used_current

        db.add(leave_req)
        await db.flush()

        await create_audit_entry(
            db,
            actor_id=employee.id,
            action="leave_request.create",
            entity_type="leave_request",
            entity_id=leave_req.id,
            new_values={
                "type": data.type,
                "start_date": data.start_date.isoformat(),
                "end_date": data.end_date.isoformat(),
                "workingdays": working_days,
                "used_n2_year": leave_req.used_n2_year,
                "used_carry_over_days": leave_req.used_carry_over_days,
                "used_current_year_days": leave_req.used_current_year_days,
            },
        )
        logger.info(
            "Leave request %s created by employee %s (%s, %d working day(s))",
            leave_req.id, employee.id, data.type, working_days,
        )

        leave_req = await LeaveService._load_request(db, leave_req.id)
        return LeaveRequestOut.model_validate(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Decisions
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _decide(
        db: AsyncSession,
        request_id: str,
        actor: Employee,
        approver: ApproverType,
        data: LeaveDecisionRequest,
    ) -> LeaveRequestOut:
        leave_req = await LeaveService._load_request(db, request_id)

        assigned_id = (
            leave_req.supervisor_id
            if approver == ApproverType.supervisor
            else leave_req.authorized_officer_id
        )
        if actor.id != assigned_id and not actor.is_admin:
            raise ForbiddenException(
                f"You are not the assigned {approver.value.replace('_', ' ')} "
                "for this leave request."
            )

        reason = (data.reason or "").strip()
        if data.decision == Decision.rejected and not reason:
            raise ValidationException({"reason": ["A rejection requires a reason."]})

        current = stage_of(
            leave_req.status,
            leave_req.supervisor_status,
            leave_req.authorized_officer_status,
        )
        target = next_stage(current, approver, data.decision)
        before, after = STAGE_COLUMNS[current], STAGE_COLUMNS[target]

        now = datetime.now(timezone.utc)
        values: dict[str, Any] = {
            "status": after.status,
            "supervisor_status": after.supervisor_status,
            "authorized_officer_status": after.authorized_officer_status,
            "updated_at": now,
        }
        prefix = "supervisor" if approver == ApproverType.supervisor else "authorized_officer"
        values[f"{prefix}_viewed"] = True
        values[f"{prefix}_signed"] = True
        values[f"{prefix}_signature_date"] = now
        if data.decision == Decision.rejected:
            values["rejection_reason"] = reason

        # Only lands while the request is still in the stage we read.
        result = await db.execute(
            update(LeaveRequest)
            .where(
                LeaveRequest.id == leave_req.id,
                LeaveRequest.status == before.status,
                LeaveRequest.supervisor_status == before.supervisor_status,
                LeaveRequest.authorized_officer_status == before.authorized_officer_status,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidStateException(
                f"Leave request {leave_req.id} was already decided by another action."
            )
        for key, value in values.items():
            set_committed_value(leave_req, key, value)

        await create_audit_entry(
            db,
            actor_id=actor.id,
            action=f"leave_request.{prefix}_{data.decision.value.lower()}",
            entity_type="leave_request",
            entity_id=leave_req.id,
            old_values={"stage": current.value},
            new_values={"stage": target.value, "rejection_reason": reason or None},
        )
        logger.info(
            "Leave request %s: %s -> %s by employee %s",
            leave_req.id, current.value, target.value, actor.id,
        )

        # ── Restore consumed days on rejection ──────────────────────
        consumption = LeaveService._consumption_of(leave_req)
        if (
            target.is_rejected
            and LeaveService.is_annual_leave(leave_req.type)
            and consumption.total > 0
        ):
            year = leave_req.leave_year
            await LeaveService.write_balance(
                db,
                leave_req.requester,
                lambda balance: ledger.restore_consumption(balance, year, consumption),
                actor_id=actor.id,
                action="leave_balance.restore",
            )

        return LeaveRequestOut.model_validate(leave_req)

    @staticmethod
    async def decide_as_supervisor(
        db: AsyncSession,
        request_id: str,
        actor: Employee,
        data: LeaveDecisionRequest,
    ) -> LeaveRequestOut:
        """Supervisor decision; allowed only while the supervisor is Pending."""
        return await LeaveService._decide(
            db, request_id, actor, ApproverType.supervisor, data
        )

    @staticmethod
    async def decide_as_authorized_officer(
        db: AsyncSession,
        request_id: str,
        actor: Employee,
        data: LeaveDecisionRequest,
    ) -> LeaveRequestOut:
        """Officer decision; allowed only after supervisor approval."""
        return await LeaveService._decide(
            db, request_id, actor, ApproverType.authorized_officer, data
        )

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _can_view(leave_req: LeaveRequest, viewer: Employee) -> bool:
        return viewer.is_admin or viewer.id in (
            leave_req.user_id,
            leave_req.supervisor_id,
            leave_req.authorized_officer_id,
        )

    @staticmethod
    async def get_leave_request(
        db: AsyncSession,
        request_id: str,
        viewer: Employee,
    ) -> LeaveRequestOut:
        leave_req = await LeaveService._load_request(db, request_id)
        if not LeaveService._can_view(leave_req, viewer):
            raise ForbiddenException("You cannot view this leave request.")
        return LeaveRequestOut.model_validate(leave_req)

    @staticmethod
    async def get_document_link(
        db: AsyncSession,
        request_id: str,
        viewer: Employee,
    ) -> str:
        leave_req = await LeaveService._load_request(db, request_id)
        if not LeaveService._can_view(leave_req, viewer):
            raise ForbiddenException("You cannot view this leave request.")
        if not leave_req.link_file:
            raise NotFoundException("LeaveDocument", request_id)
        return leave_req.link_file

    @staticmethod
    async def list_leave_requests(
        db: AsyncSession,
        viewer: Employee,
        *,
        page: int = 1,
        page_size: int = 50,
        status: Optional[str] = None,
        year: Optional[int] = None,
    ) -> tuple[list[LeaveRequestOut], PaginationMeta]:
        """Requests the viewer owns, supervises or signs off; admins see all."""
        base = select(LeaveRequest)
        if not viewer.is_admin:
            base = base.where(
                or_(
                    LeaveRequest.user_id == viewer.id,
                    LeaveRequest.supervisor_id == viewer.id,
                    LeaveRequest.authorized_officer_id == viewer.id,
                )
            )
        if status:
            base = base.where(LeaveRequest.status == status)
        if year:
            base = base.where(LeaveRequest.leave_year == year)

        count_result = await db.execute(
            select(func.count()).select_from(base.subquery())
        )
        total = count_result.scalar() or 0

        result = await db.execute(
            base.options(
                selectinload(LeaveRequest.requester),
                selectinload(LeaveRequest.supervisor),
                selectinload(LeaveRequest.authorized_officer),
            )
            .order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        items = [LeaveRequestOut.model_validate(r) for r in result.scalars().all()]
        meta = PaginationMeta.build(page=page, page_size=page_size, total=total)
        return items, meta
