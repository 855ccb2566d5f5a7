from typing import Dict, Iterable, List, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from oltpoller.models import Onu
from oltpoller.schemas import OnuState


async def get_for_olt(db: AsyncSession, olt_id: int) -> List[Onu]:
    result = await db.execute(
        select(Onu).where(Onu.olt_id == olt_id).order_by(Onu.pon_port, Onu.onu_index)
    )
    return list(result.scalars().all())


async def upsert_many(db: AsyncSession, olt_id: int, onus: Iterable[OnuState]) -> Tuple[int, int]:
    """
    Insert or update ONU rows keyed by (olt_id, pon_port, onu_index).

    Args:
        db: Database session (caller commits)
        olt_id: OLT ID
        onus: Current ONU states to write

    Returns:
        Tuple of (inserted count, updated count)
    """
    existing: Dict[Tuple[str, int], Onu] = {
        (row.pon_port, row.onu_index): row for row in await get_for_olt(db, olt_id)
    }

    inserted = updated = 0
    for onu in onus:
        values = {
            "serial_number": onu.serial_number,
            "name": onu.name,
            "status": onu.status,
            "rx_power": onu.rx_power,
            "tx_power": onu.tx_power,
            "mac_address": onu.mac_address,
            "router_name": onu.router_name,
            "last_online": onu.last_online,
            "last_offline": onu.last_offline,
        }
        row = existing.get((onu.pon_port, onu.onu_index))
        if row is None:
            row = Onu(olt_id=olt_id, pon_port=onu.pon_port, onu_index=onu.onu_index, **values)
            db.add(row)
            existing[(onu.pon_port, onu.onu_index)] = row
            inserted += 1
        else:
            for field, value in values.items():
                # Keep stored values the poll did not report
                if value is not None or field in ("rx_power", "tx_power"):
                    setattr(row, field, value)
            updated += 1

    await db.flush()
    return inserted, updated
