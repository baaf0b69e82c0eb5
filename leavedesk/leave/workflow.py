"""Two-tier approval state machine for leave requests.

A request carries three persisted status columns (``status``,
``supervisor_status``, ``authorized_officer_status``). Only five
combinations are legal; each maps to one ``ApprovalStage``.
"""

from __future__ import annotations

import enum
from typing import NamedTuple

from leavedesk.common.constants import ApprovalStatus, ApproverType, Decision
from leavedesk.common.exceptions import InvalidStateException


class ApprovalStage(str, enum.Enum):
    pending_supervisor = "pending_supervisor"
    pending_officer = "pending_officer"
    approved = "approved"
    rejected_by_supervisor = "rejected_by_supervisor"
    rejected_by_officer = "rejected_by_officer"

    @property
    def is_terminal(self) -> bool:
        return self not in (
            ApprovalStage.pending_supervisor,
            ApprovalStage.pending_officer,
        )

    @property
    def is_rejected(self) -> bool:
        return self in (
            ApprovalStage.rejected_by_supervisor,
            ApprovalStage.rejected_by_officer,
        )


class StatusColumns(NamedTuple):
    status: ApprovalStatus
    supervisor_status: ApprovalStatus
    authorized_officer_status: ApprovalStatus


_P, _A, _R = ApprovalStatus.pending, ApprovalStatus.approved, ApprovalStatus.rejected

STAGE_COLUMNS: dict[ApprovalStage, StatusColumns] = {
    ApprovalStage.pending_supervisor: StatusColumns(_P, _P, _P),
    ApprovalStage.pending_officer: StatusColumns(_P, _A, _P),
    ApprovalStage.approved: StatusColumns(_A, _A, _A),
    ApprovalStage.rejected_by_supervisor: StatusColumns(_R, _R, _P),
    ApprovalStage.rejected_by_officer: StatusColumns(_R, _A, _R),
}

_STAGE_BY_COLUMNS = {cols: stage for stage, cols in STAGE_COLUMNS.items()}

_TRANSITIONS: dict[tuple[ApprovalStage, ApproverType, Decision], ApprovalStage] = {
    (ApprovalStage.pending_supervisor, ApproverType.supervisor, Decision.approved):
        ApprovalStage.pending_officer,
    (ApprovalStage.pending_supervisor, ApproverType.supervisor, Decision.rejected):
        ApprovalStage.rejected_by_supervisor,
    (ApprovalStage.pending_officer, ApproverType.authorized_officer, Decision.approved):
        ApprovalStage.approved,
    (ApprovalStage.pending_officer, ApproverType.authorized_officer, Decision.rejected):
        ApprovalStage.rejected_by_officer,
}


def stage_of(
    status: ApprovalStatus | str,
    supervisor_status: ApprovalStatus | str,
    authorized_officer_status: ApprovalStatus | str,
) -> ApprovalStage:
    """Derive the stage from the stored columns; refuse illegal combinations."""
    try:
        cols = StatusColumns(
            ApprovalStatus(status),
            ApprovalStatus(supervisor_status),
            ApprovalStatus(authorized_officer_status),
        )
    except ValueError as exc:
        raise InvalidStateException(f"Unknown approval status: {exc}") from exc

    stage = _STAGE_BY_COLUMNS.get(cols)
    if stage is None:
        raise InvalidStateException(
            "Inconsistent approval state "
            f"(status={cols.status.value}, "
            f"supervisor={cols.supervisor_status.value}, "
            f"officer={cols.authorized_officer_status.value})."
        )
    return stage


def next_stage(
    stage: ApprovalStage,
    approver: ApproverType,
    decision: Decision,
) -> ApprovalStage:
    """Return the stage reached when *approver* records *decision*."""
    target = _TRANSITIONS.get((stage, approver, decision))
    if target is not None:
        return target

    if stage.is_terminal:
        raise InvalidStateException(
            f"Leave request is already {STAGE_COLUMNS[stage].status.value}."
        )
    if approver == ApproverType.authorized_officer:
        raise InvalidStateException(
            "The authorized officer cannot act before the supervisor has approved."
        )
    raise InvalidStateException("The supervisor has already decided on this request.")
