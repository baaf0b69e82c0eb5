"""Employee ORM model.

``leave_balance`` is a JSON object keyed by calendar year (``{"2025": 12,
"2024": 6}``). It is only ever replaced wholesale through
``leavedesk.leave.service.write_balance``, which bumps ``balance_version``.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leavedesk.common.constants import UserRole
from leavedesk.database import Base

if TYPE_CHECKING:
    from leavedesk.leave.models import LeaveRequest


class Employee(Base):
    """Staff member; also the authenticated principal."""

    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    nip: Mapped[Optional[str]] = mapped_column(sa.String(30), unique=True)
    name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    email: Mapped[str] = mapped_column(sa.String(255), unique=True, nullable=False)
    position: Mapped[Optional[str]] = mapped_column(sa.String(200))
    workunit: Mapped[Optional[str]] = mapped_column(sa.String(200))
    address: Mapped[Optional[str]] = mapped_column(sa.Text)
    phone: Mapped[Optional[str]] = mapped_column(sa.String(30))
    role: Mapped[UserRole] = mapped_column(
        sa.Enum(
            UserRole,
            name="user_role",
            native_enum=False,
            length=20,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        server_default=UserRole.user.value,
    )
    is_active: Mapped[bool] = mapped_column(sa.Boolean, server_default=sa.true())

    # ── Leave balance (year → days) ─────────────────────────────────
    leave_balance: Mapped[dict] = mapped_column(
        JSONB, nullable=False, default=dict,
    )
    balance_version: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=0, server_default=sa.text("0"),
    )

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(),
    )

    # ── Relationships ───────────────────────────────────────────────
    leave_requests: Mapped[list[LeaveRequest]] = relationship(
        back_populates="requester", foreign_keys="LeaveRequest.user_id",
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin

    def __repr__(self) -> str:
        return f"<Employee {self.id} {self.name!r}>"
