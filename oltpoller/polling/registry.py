"""
Device registry.

Holds the set of OLTs to poll as an immutable snapshot. Updates replace the
whole snapshot in one assignment, so readers never see a half-applied
change.
"""
from types import MappingProxyType
from typing import Iterable, List, Mapping, NamedTuple, Optional, Set

from sqlalchemy.ext.asyncio import async_sessionmaker

from oltpoller.core.logging import get_logger
from oltpoller.repositories import olt_repo
from oltpoller.schemas import DeviceConfig

logger = get_logger(__name__)


class RegistryDiff(NamedTuple):
    added: Set[int]
    removed: Set[int]
    changed: Set[int]

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.changed)


class DeviceRegistry:

    def __init__(self, devices: Iterable[DeviceConfig] = ()):
        self._devices: Mapping[int, DeviceConfig] = MappingProxyType({d.id: d for d in devices})

    def replace_all(self, devices: Iterable[DeviceConfig]) -> RegistryDiff:
        """Swap in a new device set and report what moved."""
        new = {d.id: d for d in devices}
        old = self._devices

        diff = RegistryDiff(
            added=set(new) - set(old),
            removed=set(old) - set(new),
            changed={i for i in set(new) & set(old) if new[i] != old[i]},
        )
        self._devices = MappingProxyType(new)

        if not diff.is_empty:
            logger.info(
                "registry.updated",
                device_count=len(new),
                added=sorted(diff.added),
                removed=sorted(diff.removed),
                changed=sorted(diff.changed),
            )
        return diff

    def get(self, device_id: int) -> Optional[DeviceConfig]:
        return self._devices.get(device_id)

    def all(self) -> List[DeviceConfig]:
        return list(self._devices.values())

    def __len__(self) -> int:
        return len(self._devices)

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._devices


async def load_devices(session_factory: async_sessionmaker) -> List[DeviceConfig]:
    """Read active OLTs from the `olts` table."""
    async with session_factory() as session:
        return [DeviceConfig.from_olt(olt) for olt in await olt_repo.get_active(session)]
