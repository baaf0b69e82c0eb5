"""Admin Pydantic schemas — balance maintenance jobs and overwrites."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


# ── Balance overwrites ──────────────────────────────────────────────

class BalanceOverwriteRequest(BaseModel):
    employee_id: int
    year: int = Field(..., ge=1900, le=9999)
    days: int = Field(..., ge=0)


class InitialBalanceRequest(BaseModel):
    year: int = Field(..., ge=1900, le=9999)
    days: int = Field(..., ge=0)


class EmployeeBalanceOut(BaseModel):
    employee_id: int
    leave_balance: dict[str, Any]


# ── Batch job summaries ─────────────────────────────────────────────

class CorrectiveUpdateResult(BaseModel):
    total: int = 0
    updated: int = 0
    capped: int = 0
    errors: int = 0


class RolloverResult(BaseModel):
    success: bool = True
    year: Optional[int] = None
    total: int = 0
    updated: int = 0
    errors: int = 0


class InitialBalanceResult(BaseModel):
    year: int
    days: int
    total: int = 0
    updated: int = 0
    errors: int = 0
