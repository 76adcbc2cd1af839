"""
Pytest configuration and fixtures for the Profile Migration Assistant tests.

This module provides an in-memory management site, a remote manager whose
PowerShell calls are recorded instead of sent, and a sleep recorder so no
test waits in real time.
"""

from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import AsyncMock, Mock

import pytest

from profile_migration.models.config import MigrationConfig, build_migration_config
from profile_migration.models.session import (
    Association,
    DeploymentStatus,
    DeploymentStatusCode,
    Device,
    MigrationBehavior,
)
from profile_migration.notifications.mailer import EmailNotifier
from profile_migration.remote.winrm_client import RemoteManager
from profile_migration.sccm.client import ManagementClient
from profile_migration.validation.connectivity import LivenessGate


class SleepRecorder:
    """Stands in for asyncio.sleep and remembers every requested delay."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)

    @property
    def total(self) -> float:
        return sum(self.calls)


class FakeManagementClient(ManagementClient):
    """In-memory management site."""

    def __init__(self, devices: Optional[List[Device]] = None):
        self.devices: Dict[str, Device] = {d.name: d for d in devices or []}
        self.associations: List[Association] = []
        self.members: set = set()
        self.statuses: Dict[Tuple[str, str], List[Optional[DeploymentStatus]]] = {}
        self.calls: List[Tuple[Any, ...]] = []

    def set_statuses(self, package_id: str, host: str, sequence: List[Optional[DeploymentStatus]]):
        self.statuses[(package_id, host)] = list(sequence)

    @property
    def mutations(self) -> List[Tuple[Any, ...]]:
        mutating = {"remove_association", "create_association", "add_direct_member", "request_policy_refresh"}
        return [call for call in self.calls if call[0] in mutating]

    async def get_device(self, name):
        self.calls.append(("get_device", name))
        return self.devices.get(name)

    async def get_associations(self, resource_id):
        self.calls.append(("get_associations", resource_id))
        return [a for a in self.associations if a.references(resource_id)]

    async def remove_association(self, source_id, target_id):
        self.calls.append(("remove_association", source_id, target_id))
        self.associations = [
            a for a in self.associations
            if (a.source_resource_id, a.restore_resource_id) != (source_id, target_id)
        ]

    async def create_association(self, source_id, target_id, behavior=MigrationBehavior.CAPTURE_RESTORE_ALL):
        self.calls.append(("create_association", source_id, target_id, behavior))
        self.associations.append(Association(source_resource_id=source_id, restore_resource_id=target_id))

    async def is_direct_member(self, collection_id, resource_id):
        self.calls.append(("is_direct_member", collection_id, resource_id))
        return (collection_id, resource_id) in self.members

    async def add_direct_member(self, collection_id, device):
        self.calls.append(("add_direct_member", collection_id, device.resource_id))
        self.members.add((collection_id, device.resource_id))

    async def get_deployment_status(self, job, device):
        self.calls.append(("get_deployment_status", job.package_id, device.name))
        sequence = self.statuses.get((job.package_id, device.name), [])
        if not sequence:
            return None
        # The last entry keeps being reported
        return sequence.pop(0) if len(sequence) > 1 else sequence[0]

    async def request_policy_refresh(self, collection_id, device):
        self.calls.append(("request_policy_refresh", collection_id, device.resource_id))


def status(code: DeploymentStatusCode, description: str = "") -> DeploymentStatus:
    return DeploymentStatus(code=code, description=description)


WAITING = status(DeploymentStatusCode.WAITING, "Waiting for content")
IN_PROGRESS = status(DeploymentStatusCode.IN_PROGRESS, "Running")
FAILED = status(DeploymentStatusCode.FAILED, "Program failed (exit code 26)")
SUCCESS = status(DeploymentStatusCode.SUCCESS, "Program completed with success")


@pytest.fixture
def config_data(tmp_path) -> Dict[str, Any]:
    """Raw configuration as it would appear in a YAML file."""
    return {
        "site": {
            "site_code": "ps1",
            "provider_host": "cm01.corp.example.com",
            "username": "CORP\\svc-migration",
            "password": "s3cret",
        },
        "capture": {
            "name": "Capture User State",
            "collection_id": "PS100123",
            "package_id": "PS100045",
        },
        "restore": {
            "name": "Restore User State",
            "collection_id": "PS100124",
            "package_id": "PS100046",
        },
        "remote": {
            "username": "CORP\\svc-migration",
            "password": "s3cret",
        },
        "notification": {
            "smtp_server": "smtp.corp.example.com",
            "sender": "profile-migration@corp.example.com",
            "recipients": ["desktop-support@corp.example.com"],
        },
        "logging": {
            "log_dir": str(tmp_path / "logs"),
            "rich_console": False,
        },
    }


@pytest.fixture
def migration_config(config_data) -> MigrationConfig:
    return build_migration_config(config_data)


@pytest.fixture
def source_device() -> Device:
    return Device(resource_id=16777220, name="OLD-PC01", domain="CORP")


@pytest.fixture
def target_device() -> Device:
    return Device(resource_id=16777301, name="NEW-PC07", domain="CORP")


@pytest.fixture
def fake_client(source_device, target_device) -> FakeManagementClient:
    return FakeManagementClient([source_device, target_device])


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def probe() -> AsyncMock:
    """Reachability probe that reports every host as online."""
    return AsyncMock(return_value=True)


@pytest.fixture
def liveness_gate(migration_config, probe, sleep) -> LivenessGate:
    return LivenessGate(migration_config.polling, migration_config.remote, probe=probe, sleep=sleep)


@pytest.fixture
def remote(migration_config) -> RemoteManager:
    """Remote manager whose PowerShell calls are recorded, never sent."""
    manager = RemoteManager(migration_config.remote)
    manager.run_ps = AsyncMock(return_value="1\r\n")
    return manager


@pytest.fixture
def notifier() -> Mock:
    mock_notifier = Mock(spec=EmailNotifier)
    mock_notifier.job_failed = AsyncMock(return_value=True)
    mock_notifier.migration_completed = AsyncMock(return_value=True)
    mock_notifier.migration_failed = AsyncMock(return_value=True)
    return mock_notifier


def scripts_containing(remote: RemoteManager, text: str) -> List[str]:
    """PowerShell scripts sent through the remote manager that contain the text."""
    return [c.args[1] for c in remote.run_ps.call_args_list if text in c.args[1]]
