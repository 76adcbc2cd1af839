"""
Tests for computer association (pairing) management.
"""

import pytest

from profile_migration.core.exceptions import DeviceNotFoundError, HostUnreachableError
from profile_migration.models.config import build_migration_config
from profile_migration.models.session import Association, Device, MigrationBehavior
from profile_migration.orchestrator.pairing import PairingManager
from profile_migration.validation.connectivity import LivenessGate


@pytest.fixture
def pairing(fake_client, liveness_gate):
    return PairingManager(fake_client, liveness_gate)


class TestResolveDevices:
    """Test device resolution."""

    @pytest.mark.asyncio
    async def test_names_are_normalized(self, pairing, fake_client, source_device):
        device = await pairing.resolve_device("  old-pc01.corp.example.com ")

        assert device == source_device
        assert fake_client.calls[0] == ("get_device", "OLD-PC01")

    @pytest.mark.asyncio
    async def test_missing_device(self, pairing):
        with pytest.raises(DeviceNotFoundError) as exc_info:
            await pairing.resolve_device("ghost-pc")

        assert exc_info.value.host_name == "GHOST-PC"
        assert "GHOST-PC" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_device_without_client_is_still_returned(self, fake_client, liveness_gate):
        fake_client.devices["LAB-PC02"] = Device(resource_id=16777400, name="LAB-PC02", is_client=False)
        manager = PairingManager(fake_client, liveness_gate)

        device = await manager.resolve_device("lab-pc02")

        assert device.is_client is False


class TestEstablish:
    """Test creating the pairing."""

    @pytest.mark.asyncio
    async def test_creates_association(self, pairing, fake_client, source_device, target_device):
        pair = await pairing.establish("old-pc01", "new-pc07")

        assert pair.source == source_device
        assert pair.target == target_device
        assert pair.behavior == MigrationBehavior.CAPTURE_RESTORE_ALL
        assert fake_client.mutations == [
            ("create_association", source_device.resource_id, target_device.resource_id,
             MigrationBehavior.CAPTURE_RESTORE_ALL),
        ]

    @pytest.mark.asyncio
    async def test_behavior_override(self, pairing, fake_client):
        pair = await pairing.establish("old-pc01", "new-pc07", MigrationBehavior.CAPTURE_RESTORE_SPECIFIED)

        assert pair.behavior == MigrationBehavior.CAPTURE_RESTORE_SPECIFIED
        assert fake_client.mutations[-1][3] == MigrationBehavior.CAPTURE_RESTORE_SPECIFIED

    @pytest.mark.asyncio
    async def test_existing_associations_are_replaced(self, pairing, fake_client, source_device, target_device):
        fake_client.associations = [
            Association(source_resource_id=source_device.resource_id, restore_resource_id=16777999),
            Association(source_resource_id=16777888, restore_resource_id=target_device.resource_id),
            Association(source_resource_id=source_device.resource_id, restore_resource_id=target_device.resource_id),
            Association(source_resource_id=16777001, restore_resource_id=16777002),
        ]

        await pairing.establish("OLD-PC01", "NEW-PC07")

        removed = [m for m in fake_client.mutations if m[0] == "remove_association"]
        # The pair referencing both devices is removed once
        assert sorted(removed) == sorted([
            ("remove_association", source_device.resource_id, 16777999),
            ("remove_association", 16777888, target_device.resource_id),
            ("remove_association", source_device.resource_id, target_device.resource_id),
        ])
        assert fake_client.mutations[-1][0] == "create_association"
        assert [(a.source_resource_id, a.restore_resource_id) for a in fake_client.associations] == [
            (16777001, 16777002),
            (source_device.resource_id, target_device.resource_id),
        ]

    @pytest.mark.asyncio
    async def test_missing_target_changes_nothing(self, pairing, fake_client, probe):
        fake_client.associations = [
            Association(source_resource_id=16777220, restore_resource_id=16777999),
        ]

        with pytest.raises(DeviceNotFoundError):
            await pairing.establish("OLD-PC01", "NOPE-PC")

        assert fake_client.mutations == []
        probe.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_both_hosts_are_probed_in_order(self, pairing, probe):
        await pairing.establish("OLD-PC01", "NEW-PC07")

        assert [c.args[0] for c in probe.await_args_list] == ["OLD-PC01", "NEW-PC07"]

    @pytest.mark.asyncio
    async def test_waits_for_offline_target(self, pairing, probe, sleep, fake_client):
        probe.side_effect = [True, False, False, True]

        await pairing.establish("OLD-PC01", "NEW-PC07")

        assert sleep.calls == [300.0, 300.0]
        assert fake_client.mutations[-1][0] == "create_association"

    @pytest.mark.asyncio
    async def test_unreachable_target_changes_nothing(self, config_data, fake_client, probe, sleep):
        config_data["polling"] = {"liveness_timeout": 300}
        config = build_migration_config(config_data)
        gate = LivenessGate(config.polling, config.remote, probe=probe, sleep=sleep)
        manager = PairingManager(fake_client, gate)
        probe.side_effect = lambda host: host == "OLD-PC01"

        with pytest.raises(HostUnreachableError) as exc_info:
            await manager.establish("OLD-PC01", "NEW-PC07")

        assert exc_info.value.host == "NEW-PC07"
        assert fake_client.mutations == []
