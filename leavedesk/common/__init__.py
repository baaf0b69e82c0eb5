"""Common module — shared utilities for LeaveDesk."""

from leavedesk.common.audit import AuditTrail, create_audit_entry
from leavedesk.common.constants import (
    ANNUAL_ALLOTMENT,
    CARRY_OVER_CAP,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    ApprovalStatus,
    ApproverType,
    Decision,
    UserRole,
)
from leavedesk.common.exceptions import (
    AppException,
    ConflictError,
    ForbiddenException,
    InconsistentUsageException,
    InsufficientBalanceException,
    InvalidStateException,
    NotFoundException,
    ValidationException,
    register_exception_handlers,
)
from leavedesk.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    # Constants / Enums
    "ApprovalStatus",
    "ApproverType",
    "Decision",
    "UserRole",
    "ANNUAL_ALLOTMENT",
    "CARRY_OVER_CAP",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "ConflictError",
    "ForbiddenException",
    "InconsistentUsageException",
    "InsufficientBalanceException",
    "InvalidStateException",
    "NotFoundException",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
]
