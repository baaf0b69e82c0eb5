"""Leave document generation — best-effort webhook after final approval.

The external generator receives one JSON payload per approved request and
may answer ``{"success": true, "data": "<document url>"}``; the URL is
stored on the request as ``link_file``. Nothing here ever fails the
approval itself: every error is logged and dropped.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from leavedesk.config import settings
from leavedesk.leave.models import LeaveRequest

logger = logging.getLogger(__name__)


def _iso(value: Any) -> Optional[str]:
    return value.isoformat() if value is not None else None


class DocumentService:
    """Builds and posts the document-generation payload."""

    @staticmethod
    def build_payload(leave_req: LeaveRequest) -> dict[str, Any]:
        requester = leave_req.requester
        supervisor = leave_req.supervisor
        officer = leave_req.authorized_officer
        return {
            "id": leave_req.id,
            "namapegawai": requester.name if requester else "",
            "jabatan": (requester.position if requester else None) or "",
            "unit": (requester.workunit if requester else None) or "",
            "nip_pegawai": (requester.nip if requester else None) or "",
            "jenisCuti": leave_req.type,
            "tanggalMulai": _iso(leave_req.start_date),
            "tanggalSelesai": _iso(leave_req.end_date),
            "jumlahHari": leave_req.workingdays,
            "alasan": leave_req.reason or "",
            "saldoawal_n1": leave_req.saldo_carry,
            "saldo_ntahun": leave_req.saldo_current_year,
            "nama_supervisor": supervisor.name if supervisor else "",
            "nip_supervisor": (supervisor.nip if supervisor else None) or "",
            "nama_officier": officer.name if officer else "",
            "nip_officier": (officer.nip if officer else None) or "",
            "created_at": _iso(leave_req.created_at),
            "alamat": (requester.address if requester else None) or leave_req.address or "",
            "telp": (requester.phone if requester else None) or leave_req.phone or "",
        }

    @staticmethod
    async def post_payload(
        payload: dict[str, Any],
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> Optional[str]:
        """POST *payload* to the webhook; return the document URL, if any."""
        url = settings.DOCUMENT_WEBHOOK_URL
        if not url:
            logger.warning(
                "DOCUMENT_WEBHOOK_URL not configured; skipping document for %s",
                payload.get("id"),
            )
            return None

        try:
            if client is None:
                async with httpx.AsyncClient(
                    timeout=settings.DOCUMENT_WEBHOOK_TIMEOUT_SECONDS,
                ) as own_client:
                    resp = await own_client.post(url, json=payload)
            else:
                resp = await client.post(
                    url, json=payload, timeout=settings.DOCUMENT_WEBHOOK_TIMEOUT_SECONDS,
                )
        except httpx.HTTPError as exc:
            logger.error("Document webhook failed for %s: %s", payload.get("id"), exc)
            return None

        if not resp.is_success:
            logger.error(
                "Document webhook returned HTTP %s for %s",
                resp.status_code, payload.get("id"),
            )
            return None

        try:
            body = resp.json()
        except ValueError:
            logger.error("Document webhook returned a non-JSON body for %s", payload.get("id"))
            return None

        if isinstance(body, dict) and body.get("success") and body.get("data"):
            logger.info("Document generated for %s: %s", payload.get("id"), body["data"])
            return str(body["data"])

        logger.warning("Document webhook gave no document URL for %s: %r", payload.get("id"), body)
        return None

    @staticmethod
    async def dispatch_approved_request(
        request_id: str,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> Optional[str]:
        """Background task: load the committed request, post it, store the link."""
        async with session_factory() as session:
            result = await session.execute(
                select(LeaveRequest)
                .where(LeaveRequest.id == request_id)
                .options(
                    selectinload(LeaveRequest.requester),
                    selectinload(LeaveRequest.supervisor),
                    selectinload(LeaveRequest.authorized_officer),
                )
            )
            leave_req = result.scalars().first()
            if leave_req is None:
                logger.error("Approved leave request %s vanished before dispatch", request_id)
                return None

            payload = DocumentService.build_payload(leave_req)
            link = await DocumentService.post_payload(payload, client=client)
            if link is None:
                return None

            await session.execute(
                update(LeaveRequest)
                .where(LeaveRequest.id == request_id)
                .values(link_file=link)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return link
