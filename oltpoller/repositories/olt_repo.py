from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update as sql_update
from sqlalchemy.ext.asyncio import AsyncSession

from oltpoller.models import Olt


async def get_active(db: AsyncSession) -> List[Olt]:
    """Get all active OLTs ordered by id."""
    result = await db.execute(
        select(Olt).where(Olt.is_active == True).order_by(Olt.id)  # noqa: E712
    )
    return list(result.scalars().all())


async def update_status(
    db: AsyncSession,
    olt_id: int,
    status: str,
    last_polled: datetime,
    active_ports: Optional[int] = None,
) -> None:
    """
    Record the outcome of a poll on the OLT row.

    Args:
        db: Database session (caller commits)
        olt_id: OLT ID
        status: "online" or "offline"
        last_polled: Poll timestamp
        active_ports: Online ONU count; left unchanged when None
    """
    values = {"status": status, "last_polled": last_polled}
    if active_ports is not None:
        values["active_ports"] = active_ports

    await db.execute(
        sql_update(Olt).where(Olt.id == olt_id).values(**values)
    )
