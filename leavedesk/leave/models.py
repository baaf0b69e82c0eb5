"""Leave ORM models: LeaveType, LeaveRequest."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leavedesk.common.constants import ApprovalStatus
from leavedesk.database import Base
from leavedesk.employees.models import Employee


def _status_column(name: str) -> Mapped[ApprovalStatus]:
    return mapped_column(
        sa.Enum(
            ApprovalStatus,
            name=name,
            native_enum=False,
            length=20,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=ApprovalStatus.pending,
        server_default=ApprovalStatus.pending.value,
    )


class LeaveType(Base):
    __tablename__ = "leave_types"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(sa.String(100), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.Index("ix_leave_requests_user_year", "user_id", "leave_year"),
        sa.CheckConstraint("end_date >= start_date", name="ck_leave_date_range"),
    )

    id: Mapped[str] = mapped_column(sa.String(64), primary_key=True)
    user_id: Mapped[int] = mapped_column(
        sa.Integer, sa.ForeignKey("employees.id"), nullable=False
    )
    type: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    workingdays: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    address: Mapped[Optional[str]] = mapped_column(sa.Text)
    phone: Mapped[Optional[str]] = mapped_column(sa.String(30))
    leave_year: Mapped[int] = mapped_column(sa.Integer, nullable=False)

    # ── Approval ────────────────────────────────────────────────────
    status: Mapped[ApprovalStatus] = _status_column("leave_status")
    supervisor_id: Mapped[int] = mapped_column(
        sa.Integer, sa.ForeignKey("employees.id"), nullable=False
    )
    supervisor_status: Mapped[ApprovalStatus] = _status_column("supervisor_status")
    supervisor_viewed: Mapped[bool] = mapped_column(
        sa.Boolean, default=False, server_default=sa.false()
    )
    supervisor_signed: Mapped[bool] = mapped_column(
        sa.Boolean, default=False, server_default=sa.false()
    )
    supervisor_signature_date: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    authorized_officer_id: Mapped[int] = mapped_column(
        sa.Integer, sa.ForeignKey("employees.id"), nullable=False
    )
    authorized_officer_status: Mapped[ApprovalStatus] = _status_column(
        "authorized_officer_status"
    )
    authorized_officer_viewed: Mapped[bool] = mapped_column(
        sa.Boolean, default=False, server_default=sa.false()
    )
    authorized_officer_signed: Mapped[bool] = mapped_column(
        sa.Boolean, default=False, server_default=sa.false()
    )
    authorized_officer_signature_date: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    rejection_reason: Mapped[Optional[str]] = mapped_column(sa.Text)

    # ── Balance snapshot at submission (available per bucket) ──────
    saldo_n2_year: Mapped[int] = mapped_column(
        sa.Integer, default=0, server_default=sa.text("0")
    )
    saldo_carry: Mapped[int] = mapped_column(
        sa.Integer, default=0, server_default=sa.text("0")
    )
    saldo_current_year: Mapped[int] = mapped_column(
        sa.Integer, default=0, server_default=sa.text("0")
    )

    # ── Balance consumed by this request ────────────────────────────
    used_n2_year: Mapped[int] = mapped_column(
        sa.Integer, default=0, server_default=sa.text("0")
    )
    used_carry_over_days: Mapped[int] = mapped_column(
        sa.Integer, default=0, server_default=sa.text("0")
    )
    used_current_year_days: Mapped[int] = mapped_column(
        sa.Integer, default=0, server_default=sa.text("0")
    )

    link_file: Mapped[Optional[str]] = mapped_column(sa.String(1000))
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now()
    )

    # Relationships
    requester: Mapped[Employee] = relationship(
        back_populates="leave_requests", foreign_keys=[user_id]
    )
    supervisor: Mapped[Employee] = relationship(foreign_keys=[supervisor_id])
    authorized_officer: Mapped[Employee] = relationship(
        foreign_keys=[authorized_officer_id]
    )
