from sqlalchemy.ext.asyncio import AsyncSession

from oltpoller.models import Alert
from oltpoller.schemas import StateEvent


async def create_from_event(db: AsyncSession, event: StateEvent) -> Alert:
    """
    Add an alert row for a state event.

    Args:
        db: Database session (caller commits)
        event: Warning or critical state event

    Returns:
        The pending Alert
    """
    alert = Alert(
        olt_id=event.device_id,
        type=event.type.value,
        severity=event.severity.value,
        title=event.title,
        message=event.message,
        device_key=event.onu_key,
        device_name=event.device_name,
        triggered_at=event.timestamp,
    )
    db.add(alert)
    return alert
