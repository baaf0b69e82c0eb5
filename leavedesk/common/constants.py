"""Enums and constants for LeaveDesk — matching the stored column values."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    user = "user"
    admin = "admin"


# ── Leave approval ──────────────────────────────────────────────────

class ApprovalStatus(str, enum.Enum):
    """Stored value of ``status`` and of both approver sub-statuses."""

    pending = "Pending"
    approved = "Approved"
    rejected = "Rejected"


class Decision(str, enum.Enum):
    """What an approver may decide; a decision is never ``Pending``."""

    approved = "Approved"
    rejected = "Rejected"


class ApproverType(str, enum.Enum):
    supervisor = "supervisor"
    authorized_officer = "authorized_officer"


# ── Annual-leave policy ─────────────────────────────────────────────

ANNUAL_ALLOTMENT = 12             # fresh current-year days at rollover
CARRY_OVER_CAP = 6                # usable cap for the N-1 and N-2 buckets
FIRST_RUN_PREVIOUS_YEAR = 12      # corrective default when N-1 is missing

REQUEST_ID_PREFIX = "CUTI"

# ── Misc constants ──────────────────────────────────────────────────

MAX_LEAVE_SPAN_DAYS = 366
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
