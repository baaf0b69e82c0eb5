"""Read-only access to the holiday calendar."""

from __future__ import annotations

import datetime as dt

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.holidays.models import Holiday


async def get_holiday_dates(
    db: AsyncSession,
    from_date: dt.date,
    to_date: dt.date,
) -> set[dt.date]:
    """Return the set of holiday dates within [from_date, to_date]."""
    result = await db.execute(
        select(Holiday.date).where(
            Holiday.date >= from_date,
            Holiday.date <= to_date,
        )
    )
    return {row[0] for row in result.all()}
