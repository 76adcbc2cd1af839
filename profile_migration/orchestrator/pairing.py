"""
Computer association (pairing) management.
"""

import logging
from typing import List, Optional, Set, Tuple

from profile_migration.core.exceptions import DeviceNotFoundError
from profile_migration.models.session import Association, Device, MigrationBehavior, MigrationPair
from profile_migration.sccm.client import ManagementClient
from profile_migration.utils.helpers import normalize_host_name
from profile_migration.validation.connectivity import LivenessGate

logger = logging.getLogger(__name__)


class PairingManager:
    """
    Creates the source/target pairing for a migration run.

    Both devices are resolved before anything is changed, so a missing
    device never leaves the site half modified.
    """

    def __init__(
        self,
        client: ManagementClient,
        liveness_gate: LivenessGate,
        behavior: MigrationBehavior = MigrationBehavior.CAPTURE_RESTORE_ALL
    ):
        self.client = client
        self.liveness_gate = liveness_gate
        self.behavior = behavior

    async def resolve_device(self, name: str) -> Device:
        """Look up a device, raising DeviceNotFoundError when it is absent."""
        host_name = normalize_host_name(name)
        device = await self.client.get_device(host_name)
        if device is None:
            raise DeviceNotFoundError(host_name)
        if not device.is_client:
            logger.warning(f"{device.name} is in the inventory but has no active client")
        return device

    async def resolve_pair(self, source_name: str, target_name: str) -> Tuple[Device, Device]:
        """Resolve both devices, failing on the first one that is missing."""
        source = await self.resolve_device(source_name)
        target = await self.resolve_device(target_name)
        logger.info(
            f"Resolved source {source.name} ({source.resource_id}) "
            f"and target {target.name} ({target.resource_id})"
        )
        return source, target

    async def remove_existing(self, *devices: Device) -> List[Association]:
        """Remove every association referencing any of the devices."""
        seen: Set[Tuple[int, int]] = set()
        removed = []
        for device in devices:
            for association in await self.client.get_associations(device.resource_id):
                key = (association.source_resource_id, association.restore_resource_id)
                if key in seen:
                    continue
                seen.add(key)
                logger.info(
                    f"Removing existing association "
                    f"{association.source_name or association.source_resource_id} -> "
                    f"{association.restore_name or association.restore_resource_id}"
                )
                await self.client.remove_association(*key)
                removed.append(association)
        return removed

    async def establish(
        self,
        source_name: str,
        target_name: str,
        behavior: Optional[MigrationBehavior] = None
    ) -> MigrationPair:
        """
        Pair the source and target devices.

        Args:
            source_name: Host name of the machine to capture from
            target_name: Host name of the machine to restore to
            behavior: Account selection, defaults to the manager's behavior

        Returns:
            The created migration pair

        Raises:
            DeviceNotFoundError: If either host is missing from the inventory
            HostUnreachableError: If a host does not come online in time
        """
        behavior = self.behavior if behavior is None else behavior
        source, target = await self.resolve_pair(source_name, target_name)

        await self.liveness_gate.wait_until_reachable(source.name)
        await self.liveness_gate.wait_until_reachable(target.name)

        await self.remove_existing(source, target)
        await self.client.create_association(source.resource_id, target.resource_id, behavior)
        logger.info(f"Paired {source.name} -> {target.name} ({behavior.name})")

        return MigrationPair(source=source, target=target, behavior=behavior)
