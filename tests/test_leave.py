"""Leave module test suite — submission, balance consumption and restoration,
two-tier approval, concurrent writers, and document generation.

Tests run against SQLite via the shared conftest.py fixtures.
"""

from __future__ import annotations

import json
import re
from datetime import date
from unittest.mock import patch

import httpx
import pytest
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.common.audit import AuditTrail
from leavedesk.common.constants import ApprovalStatus, Decision
from leavedesk.common.exceptions import (
    ConflictError,
    ForbiddenException,
    InsufficientBalanceException,
    InvalidStateException,
    NotFoundException,
    ValidationException,
)
from leavedesk.config import settings
from leavedesk.employees.models import Employee
from leavedesk.holidays.models import Holiday
from leavedesk.leave.documents import DocumentService
from leavedesk.leave.models import LeaveRequest
from leavedesk.leave.schemas import LeaveDecisionRequest, LeaveRequestCreate
from leavedesk.leave.service import LeaveService
from tests.conftest import ANNUAL, SICK, TestSessionFactory, seed_employee


# ═════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════


def _request(
    people: dict[str, Employee],
    *,
    type: str = ANNUAL,
    start: date = date(2024, 3, 4),
    end: date = date(2024, 3, 15),
    reason: str = "Family matters",
    workingdays: int | None = None,
) -> LeaveRequestCreate:
    return LeaveRequestCreate(
        type=type,
        start_date=start,
        end_date=end,
        reason=reason,
        supervisor_id=people["supervisor"].id,
        authorized_officer_id=people["officer"].id,
        workingdays=workingdays,
    )


def _approve() -> LeaveDecisionRequest:
    return LeaveDecisionRequest(decision=Decision.approved)


def _reject(reason: str = "Team is short-staffed") -> LeaveDecisionRequest:
    return LeaveDecisionRequest(decision=Decision.rejected, reason=reason)


async def _fresh_balance(employee_id: int) -> dict:
    async with TestSessionFactory() as session:
        employee = await session.get(Employee, employee_id)
        return dict(employee.leave_balance)


async def _count_requests(db: AsyncSession) -> int:
    result = await db.execute(select(func.count()).select_from(LeaveRequest))
    return result.scalar()


# ═════════════════════════════════════════════════════════════════════
# Submission
# ═════════════════════════════════════════════════════════════════════


class TestCreateLeaveRequest:
    async def test_consumes_carry_over_then_current(self, db, people):
        requester = people["requester"]

        out = await LeaveService.create_leave_request(db, requester.id, _request(people))

        assert out.workingdays == 10
        assert out.leave_year == 2024
        assert out.used_n2_year == 0
        assert out.used_carry_over_days == 4
        assert out.used_current_year_days == 6
        assert out.saldo_carry == 4
        assert out.saldo_current_year == 12
        assert out.saldo_n2_year == 0
        assert out.status == ApprovalStatus.pending
        assert out.supervisor_status == ApprovalStatus.pending
        assert out.authorized_officer_status == ApprovalStatus.pending
        assert requester.leave_balance == {"2024": 6, "2023": 0}
        assert requester.balance_version == 1

    async def test_request_id_format(self, db, people):
        out = await LeaveService.create_leave_request(
            db, people["requester"].id, _request(people, type=SICK),
        )
        assert re.fullmatch(
            rf"CUTI-\d{{8}}-\d{{6}}-{people['requester'].id}-\d{{3}}", out.id,
        )

    async def test_insufficient_balance_leaves_everything_unchanged(self, db, people):
        requester = people["requester"]
        await LeaveService.create_leave_request(db, requester.id, _request(people))
        before = await _count_requests(db)

        with pytest.raises(InsufficientBalanceException) as exc_info:
            await LeaveService.create_leave_request(
                db, requester.id,
                _request(people, start=date(2024, 4, 1), end=date(2024, 4, 10)),
            )

        assert exc_info.value.requested == 8
        assert exc_info.value.available == 6
        assert requester.leave_balance == {"2024": 6, "2023": 0}
        assert await _count_requests(db) == before

    async def test_non_annual_leave_never_touches_balance(self, db, people):
        requester = people["requester"]

        out = await LeaveService.create_leave_request(
            db, requester.id, _request(people, type=SICK),
        )

        assert out.workingdays == 10
        assert (out.used_n2_year, out.used_carry_over_days, out.used_current_year_days) == (0, 0, 0)
        assert requester.leave_balance == {"2024": 12, "2023": 4}
        assert requester.balance_version == 0

    async def test_holidays_are_not_counted(self, db, people):
        db.add(Holiday(name="Hari Raya Nyepi", date=date(2024, 3, 11)))
        await db.flush()

        out = await LeaveService.create_leave_request(db, people["requester"].id, _request(people))

        assert out.workingdays == 9

    async def test_supplied_working_days_used(self, db, people):
        out = await LeaveService.create_leave_request(
            db, people["requester"].id, _request(people, workingdays=3),
        )
        assert out.workingdays == 3
        assert out.used_carry_over_days == 3

    async def test_supplied_working_days_out_of_range(self, db, people):
        with pytest.raises(ValidationException) as exc_info:
            await LeaveService.create_leave_request(
                db, people["requester"].id,
                _request(people, end=date(2024, 3, 5), workingdays=3),
            )
        assert "workingdays" in exc_info.value.errors

    async def test_weekend_only_range_rejected(self, db, people):
        with pytest.raises(ValidationException) as exc_info:
            await LeaveService.create_leave_request(
                db, people["requester"].id,
                _request(people, start=date(2024, 3, 9), end=date(2024, 3, 10)),
            )
        assert "dates" in exc_info.value.errors

    async def test_span_over_a_year_rejected(self, db, people):
        with pytest.raises(ValidationException) as exc_info:
            await LeaveService.create_leave_request(
                db, people["requester"].id,
                _request(people, start=date(2024, 1, 1), end=date(2025, 1, 2)),
            )
        assert "end_date" in exc_info.value.errors

    async def test_collects_field_errors(self, db, people):
        people["officer"].is_active = False
        await db.flush()
        data = _request(people, type="Cuti Liburan", reason="   ")

        with pytest.raises(ValidationException) as exc_info:
            await LeaveService.create_leave_request(db, people["requester"].id, data)

        errors = exc_info.value.errors
        assert set(errors) == {"type", "reason", "authorized_officer_id"}

    async def test_unknown_supervisor(self, db, people):
        data = _request(people)
        data.supervisor_id = 9999

        with pytest.raises(ValidationException) as exc_info:
            await LeaveService.create_leave_request(db, people["requester"].id, data)
        assert "supervisor_id" in exc_info.value.errors

    async def test_unknown_requester(self, db, people):
        with pytest.raises(NotFoundException):
            await LeaveService.create_leave_request(db, 9999, _request(people))

    async def test_audit_entries_written(self, db, people):
        await LeaveService.create_leave_request(db, people["requester"].id, _request(people))

        result = await db.execute(select(AuditTrail.action).order_by(AuditTrail.id))
        assert result.scalars().all() == ["leave_balance.consume", "leave_request.create"]


# ═════════════════════════════════════════════════════════════════════
# Decisions
# ═════════════════════════════════════════════════════════════════════


class TestDecisions:
    async def test_full_approval(self, db, people):
        created = await LeaveService.create_leave_request(
            db, people["requester"].id, _request(people),
        )

        after_sup = await LeaveService.decide_as_supervisor(
            db, created.id, people["supervisor"], _approve(),
        )
        assert after_sup.status == ApprovalStatus.pending
        assert after_sup.supervisor_status == ApprovalStatus.approved
        assert after_sup.supervisor_viewed and after_sup.supervisor_signed
        assert after_sup.supervisor_signature_date is not None

        final = await LeaveService.decide_as_authorized_officer(
            db, created.id, people["officer"], _approve(),
        )
        assert final.status == ApprovalStatus.approved
        assert final.authorized_officer_status == ApprovalStatus.approved
        assert final.authorized_officer_signed
        assert people["requester"].leave_balance == {"2024": 6, "2023": 0}

    async def test_supervisor_rejection_restores_balance(self, db, people):
        requester = await seed_employee(db, leave_balance={"2024": 12, "2023": 6})
        created = await LeaveService.create_leave_request(
            db, requester.id,
            _request(people, start=date(2024, 3, 4), end=date(2024, 3, 6)),
        )
        assert requester.leave_balance == {"2024": 12, "2023": 3}

        out = await LeaveService.decide_as_supervisor(
            db, created.id, people["supervisor"], _reject(),
        )

        assert out.status == ApprovalStatus.rejected
        assert out.supervisor_status == ApprovalStatus.rejected
        assert out.rejection_reason == "Team is short-staffed"
        assert requester.leave_balance == {"2024": 12, "2023": 6}

    async def test_officer_rejection_restores_balance(self, db, people):
        requester = people["requester"]
        created = await LeaveService.create_leave_request(db, requester.id, _request(people))
        await LeaveService.decide_as_supervisor(db, created.id, people["supervisor"], _approve())

        out = await LeaveService.decide_as_authorized_officer(
            db, created.id, people["officer"], _reject(),
        )

        assert out.status == ApprovalStatus.rejected
        assert out.authorized_officer_status == ApprovalStatus.rejected
        assert requester.leave_balance == {"2024": 12, "2023": 4}

    async def test_rejecting_sick_leave_leaves_balance_alone(self, db, people):
        requester = people["requester"]
        created = await LeaveService.create_leave_request(
            db, requester.id, _request(people, type=SICK),
        )
        await LeaveService.decide_as_supervisor(db, created.id, people["supervisor"], _reject())
        assert requester.leave_balance == {"2024": 12, "2023": 4}
        assert requester.balance_version == 0

    async def test_officer_cannot_act_first(self, db, people):
        created = await LeaveService.create_leave_request(
            db, people["requester"].id, _request(people),
        )
        with pytest.raises(InvalidStateException):
            await LeaveService.decide_as_authorized_officer(
                db, created.id, people["officer"], _approve(),
            )

    async def test_rejected_is_terminal(self, db, people):
        requester = people["requester"]
        created = await LeaveService.create_leave_request(db, requester.id, _request(people))
        await LeaveService.decide_as_supervisor(db, created.id, people["supervisor"], _reject())

        with pytest.raises(InvalidStateException):
            await LeaveService.decide_as_supervisor(
                db, created.id, people["supervisor"], _reject(),
            )
        with pytest.raises(InvalidStateException):
            await LeaveService.decide_as_authorized_officer(
                db, created.id, people["officer"], _approve(),
            )
        assert requester.leave_balance == {"2024": 12, "2023": 4}

    async def test_rejection_requires_reason(self, db, people):
        created = await LeaveService.create_leave_request(
            db, people["requester"].id, _request(people),
        )
        with pytest.raises(ValidationException) as exc_info:
            await LeaveService.decide_as_supervisor(
                db, created.id, people["supervisor"], _reject(reason="  "),
            )
        assert "reason" in exc_info.value.errors

    async def test_only_assigned_approver_or_admin(self, db, people):
        created = await LeaveService.create_leave_request(
            db, people["requester"].id, _request(people),
        )

        with pytest.raises(ForbiddenException):
            await LeaveService.decide_as_supervisor(
                db, created.id, people["officer"], _approve(),
            )
        with pytest.raises(ForbiddenException):
            await LeaveService.decide_as_supervisor(
                db, created.id, people["requester"], _approve(),
            )

        out = await LeaveService.decide_as_supervisor(db, created.id, people["admin"], _approve())
        assert out.supervisor_status == ApprovalStatus.approved

    async def test_unknown_request(self, db, people):
        with pytest.raises(NotFoundException):
            await LeaveService.decide_as_supervisor(
                db, "CUTI-00000000-000000-1-000", people["supervisor"], _approve(),
            )

    async def test_concurrent_rejection_restores_once(self, db, people):
        requester = people["requester"]
        supervisor_id = people["supervisor"].id
        created = await LeaveService.create_leave_request(db, requester.id, _request(people))
        await db.commit()

        original_load = LeaveService._load_request
        raced = {"done": False}

        async def load_then_lose_race(session, request_id):
            leave_req = await original_load(session, request_id)
            if not raced["done"]:
                raced["done"] = True
                async with TestSessionFactory() as other:
                    actor = await other.get(Employee, supervisor_id)
                    await LeaveService.decide_as_supervisor(other, request_id, actor, _reject())
                    await other.commit()
            return leave_req

        with patch.object(LeaveService, "_load_request", new=load_then_lose_race):
            with pytest.raises(InvalidStateException):
                await LeaveService.decide_as_supervisor(
                    db, created.id, people["supervisor"], _reject(),
                )

        assert await _fresh_balance(requester.id) == {"2024": 12, "2023": 4}


# ═════════════════════════════════════════════════════════════════════
# Compare-and-swap balance writes
# ═════════════════════════════════════════════════════════════════════


class TestBalanceWrites:
    async def _bump_behind_the_back(self, employee_id: int, balance: dict) -> None:
        async with TestSessionFactory() as other:
            await other.execute(
                update(Employee)
                .where(Employee.id == employee_id)
                .values(leave_balance=balance, balance_version=Employee.balance_version + 5)
                .execution_options(synchronize_session=False)
            )
            await other.commit()

    async def test_lost_race_recomputes_against_fresh_balance(self, db, people):
        requester = people["requester"]
        await self._bump_behind_the_back(requester.id, {"2024": 12, "2023": 2})

        out = await LeaveService.create_leave_request(db, requester.id, _request(people))

        assert out.used_carry_over_days == 2
        assert out.used_current_year_days == 8
        assert requester.leave_balance == {"2024": 4, "2023": 0}
        assert requester.balance_version == 6

    async def test_lost_race_rechecks_insufficiency(self, db, people):
        requester = people["requester"]
        await self._bump_behind_the_back(requester.id, {"2024": 3})

        with pytest.raises(InsufficientBalanceException) as exc_info:
            await LeaveService.create_leave_request(db, requester.id, _request(people))
        assert exc_info.value.available == 3

    async def test_conflict_after_retries_exhausted(self, db, people, monkeypatch):
        monkeypatch.setattr(settings, "BALANCE_WRITE_RETRIES", 0)
        requester = people["requester"]
        await self._bump_behind_the_back(requester.id, {"2024": 12, "2023": 4})

        with pytest.raises(ConflictError):
            await LeaveService.write_balance(db, requester, lambda b: b)


# ═════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════


class TestReads:
    async def test_remaining_balance(self, db, people):
        requester = people["requester"]
        assert await LeaveService.get_remaining_balance(db, requester.id, 2024) == 12
        assert await LeaveService.get_remaining_balance(db, requester.id, 2025) == 0

    async def test_balance_summary(self, db, people):
        summary = await LeaveService.get_balance_summary(db, people["requester"].id, 2024)
        assert summary.current == 12
        assert summary.carry_over == 4
        assert summary.two_years_ago == 0
        assert summary.total_available == 16

    async def test_visibility(self, db, people):
        created = await LeaveService.create_leave_request(
            db, people["requester"].id, _request(people),
        )
        outsider = await seed_employee(db, name="Orang Lain")

        for who in ("requester", "supervisor", "officer", "admin"):
            out = await LeaveService.get_leave_request(db, created.id, people[who])
            assert out.id == created.id
        with pytest.raises(ForbiddenException):
            await LeaveService.get_leave_request(db, created.id, outsider)

        items, meta = await LeaveService.list_leave_requests(db, outsider)
        assert items == [] and meta.total == 0
        items, meta = await LeaveService.list_leave_requests(db, people["officer"])
        assert [i.id for i in items] == [created.id]

    async def test_document_link_missing(self, db, people):
        created = await LeaveService.create_leave_request(
            db, people["requester"].id, _request(people),
        )
        with pytest.raises(NotFoundException):
            await LeaveService.get_document_link(db, created.id, people["requester"])


# ═════════════════════════════════════════════════════════════════════
# Document webhook
# ═════════════════════════════════════════════════════════════════════


def _mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestDocumentService:
    async def _approved(self, db, people) -> str:
        created = await LeaveService.create_leave_request(
            db, people["requester"].id, _request(people),
        )
        await LeaveService.decide_as_supervisor(db, created.id, people["supervisor"], _approve())
        await LeaveService.decide_as_authorized_officer(db, created.id, people["officer"], _approve())
        await db.commit()
        return created.id

    async def test_dispatch_posts_payload_and_stores_link(self, db, people, monkeypatch):
        monkeypatch.setattr(settings, "DOCUMENT_WEBHOOK_URL", "https://docs.example/hook")
        request_id = await self._approved(db, people)
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"success": True, "data": "https://docs.example/f/1"})

        async with _mock_client(handler) as client:
            link = await DocumentService.dispatch_approved_request(
                request_id, TestSessionFactory, client=client,
            )

        assert link == "https://docs.example/f/1"
        payload = seen[0]
        assert payload["id"] == request_id
        assert payload["namapegawai"] == "Budi Santoso"
        assert payload["nama_supervisor"] == "Siti Aminah"
        assert payload["nama_officier"] == "Agus Salim"
        assert payload["jenisCuti"] == ANNUAL
        assert payload["tanggalMulai"] == "2024-03-04"
        assert payload["jumlahHari"] == 10
        assert payload["saldoawal_n1"] == 4
        assert payload["saldo_ntahun"] == 12

        async with TestSessionFactory() as session:
            stored = await session.get(LeaveRequest, request_id)
            assert stored.link_file == "https://docs.example/f/1"

    async def test_not_configured_skips(self, monkeypatch):
        monkeypatch.setattr(settings, "DOCUMENT_WEBHOOK_URL", "")

        def handler(request):
            raise AssertionError("webhook should not be called")

        async with _mock_client(handler) as client:
            assert await DocumentService.post_payload({"id": "x"}, client=client) is None

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500, json={"success": False}),
            httpx.Response(200, text="<html>oops</html>"),
            httpx.Response(200, json={"success": False, "data": None}),
        ],
    )
    async def test_bad_responses_dropped(self, monkeypatch, response):
        monkeypatch.setattr(settings, "DOCUMENT_WEBHOOK_URL", "https://docs.example/hook")

        async with _mock_client(lambda request: response) as client:
            assert await DocumentService.post_payload({"id": "x"}, client=client) is None

    async def test_transport_error_dropped(self, monkeypatch):
        monkeypatch.setattr(settings, "DOCUMENT_WEBHOOK_URL", "https://docs.example/hook")

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with _mock_client(handler) as client:
            assert await DocumentService.post_payload({"id": "x"}, client=client) is None

    async def test_failed_dispatch_keeps_approval(self, db, people, monkeypatch):
        monkeypatch.setattr(settings, "DOCUMENT_WEBHOOK_URL", "https://docs.example/hook")
        request_id = await self._approved(db, people)

        async with _mock_client(lambda request: httpx.Response(502)) as client:
            assert await DocumentService.dispatch_approved_request(
                request_id, TestSessionFactory, client=client,
            ) is None

        async with TestSessionFactory() as session:
            stored = await session.get(LeaveRequest, request_id)
            assert stored.status == ApprovalStatus.approved
            assert stored.link_file is None
