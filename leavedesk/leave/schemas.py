"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → response bodies (read)
  - *Brief              → compact embedded representations
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from leavedesk.common.constants import ApprovalStatus, Decision


# ═════════════════════════════════════════════════════════════════════
# Embedded / shared
# ═════════════════════════════════════════════════════════════════════


class EmployeeBrief(BaseModel):
    """Minimal employee info embedded in leave responses."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    nip: Optional[str] = None
    name: str
    position: Optional[str] = None
    workunit: Optional[str] = None


class LeaveTypeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Create / Decide
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for submitting a leave request.

    The bucket split is always computed server-side; any ``used_*`` keys in
    the body are ignored.
    """

    type: str = Field(..., min_length=1, max_length=100)
    start_date: date = Field(..., description="Leave start date (inclusive)")
    end_date: date = Field(..., description="Leave end date (inclusive)")
    reason: str = Field(..., max_length=1000)
    supervisor_id: int
    authorized_officer_id: int
    workingdays: Optional[int] = Field(
        default=None,
        description="Working days requested; computed from the calendar when omitted.",
    )
    address: Optional[str] = Field(None, max_length=500)
    phone: Optional[str] = Field(None, max_length=30)

    @model_validator(mode="after")
    def validate_dates(self) -> "LeaveRequestCreate":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class LeaveDecisionRequest(BaseModel):
    """Approver decision. A rejection must carry a reason."""

    decision: Decision
    reason: Optional[str] = Field(None, max_length=1000)


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Response
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: int
    type: str
    start_date: date
    end_date: date
    workingdays: int
    reason: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    leave_year: int

    status: ApprovalStatus
    supervisor_id: int
    supervisor_status: ApprovalStatus
    supervisor_viewed: bool = False
    supervisor_signed: bool = False
    supervisor_signature_date: Optional[datetime] = None
    authorized_officer_id: int
    authorized_officer_status: ApprovalStatus
    authorized_officer_viewed: bool = False
    authorized_officer_signed: bool = False
    authorized_officer_signature_date: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    saldo_n2_year: int = 0
    saldo_carry: int = 0
    saldo_current_year: int = 0
    used_n2_year: int = 0
    used_carry_over_days: int = 0
    used_current_year_days: int = 0

    link_file: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    requester: Optional[EmployeeBrief] = None
    supervisor: Optional[EmployeeBrief] = None
    authorized_officer: Optional[EmployeeBrief] = None


# ═════════════════════════════════════════════════════════════════════
# Balance
# ═════════════════════════════════════════════════════════════════════


class BalanceSummaryOut(BaseModel):
    """Balance as seen by a request starting in ``year``."""

    employee_id: int
    year: int
    remaining: int = Field(..., description="Raw current-year days")
    two_years_ago: int
    carry_over: int
    current: int
    total_available: int
