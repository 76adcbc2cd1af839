"""
Main migration orchestrator.

This module provides the MigrationOrchestrator class that pairs the two
machines, drives the capture job on the source and the restore job on
the target, and sends the notifications.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.panel import Panel

from profile_migration.core.error_handler import ErrorContext, ErrorHandler, SleepFunc
from profile_migration.core.exceptions import ProfileMigrationError
from profile_migration.models.config import MigrationConfig
from profile_migration.models.session import MigrationSession
from profile_migration.notifications.mailer import EmailNotifier
from profile_migration.orchestrator.job_driver import JobDriver
from profile_migration.orchestrator.pairing import PairingManager
from profile_migration.remote.winrm_client import RemoteManager
from profile_migration.sccm.client import AdminServiceClient, ManagementClient
from profile_migration.utils.helpers import format_duration, generate_session_id, normalize_host_name
from profile_migration.validation.connectivity import LivenessGate

logger = logging.getLogger(__name__)


class OrchestrationPhase(str, Enum):
    """Migration orchestration phases."""
    PAIRING = "pairing"
    CAPTURE = "capture"
    RESTORE = "restore"
    NOTIFICATION = "notification"


STEP_DEFINITIONS: List[Dict[str, Any]] = [
    {"id": "pair_devices", "name": "Pair Devices", "phase": OrchestrationPhase.PAIRING},
    {"id": "capture", "name": "Capture User State", "phase": OrchestrationPhase.CAPTURE},
    {"id": "restore", "name": "Restore User State", "phase": OrchestrationPhase.RESTORE},
    {"id": "notify", "name": "Send Notification", "phase": OrchestrationPhase.NOTIFICATION},
]


class MigrationOrchestrator:
    """
    Coordinates a profile migration from start to end.

    The collaborators are passed in so the flow can run against any
    ManagementClient; ``from_config`` wires the production ones.
    """

    def __init__(
        self,
        config: MigrationConfig,
        client: ManagementClient,
        remote: RemoteManager,
        notifier: EmailNotifier,
        liveness_gate: Optional[LivenessGate] = None,
        console: Optional[Console] = None,
        sleep: SleepFunc = asyncio.sleep
    ):
        self.config = config
        self.client = client
        self.remote = remote
        self.notifier = notifier
        self.console = console or Console()
        self.error_handler = ErrorHandler(logger)
        self.liveness_gate = liveness_gate or LivenessGate(config.polling, config.remote, sleep=sleep)
        self.pairing_manager = PairingManager(client, self.liveness_gate)
        self.job_driver = JobDriver(
            client, remote, self.liveness_gate, notifier, config.polling, sleep=sleep
        )

    @classmethod
    def from_config(cls, config: MigrationConfig, console: Optional[Console] = None) -> "MigrationOrchestrator":
        """Build an orchestrator with the AdminService, WinRM and SMTP implementations."""
        return cls(
            config,
            client=AdminServiceClient(config.site),
            remote=RemoteManager(config.remote),
            notifier=EmailNotifier(config.notification),
            console=console,
        )

    def create_session(self, source_name: str, target_name: str, session_id: Optional[str] = None) -> MigrationSession:
        """Create a new migration session."""
        return MigrationSession(
            id=session_id or generate_session_id(),
            source_name=normalize_host_name(source_name),
            target_name=normalize_host_name(target_name),
            metadata={"site_code": self.config.site.site_code},
        )

    async def _execute_step(self, session: MigrationSession, step: Dict[str, Any]) -> None:
        session.current_step = step["id"]
        logger.info(f"Starting step: {step['name']}")

        if step["id"] == "pair_devices":
            session.pair = await self.pairing_manager.establish(session.source_name, session.target_name)
        elif step["id"] == "capture":
            session.capture = await self.job_driver.run(self.config.capture, session.pair.source)
        elif step["id"] == "restore":
            session.restore = await self.job_driver.run(self.config.restore, session.pair.target)
        elif step["id"] == "notify":
            session.complete()
            await self.notifier.migration_completed(session)
        else:
            raise ProfileMigrationError(f"Unknown step: {step['id']}")

        logger.info(f"Completed step: {step['name']}")

    async def execute(self, session: MigrationSession, show_progress: bool = True) -> MigrationSession:
        """
        Execute a migration session.

        Args:
            session: Session created by ``create_session``
            show_progress: Whether to print start and result panels

        Returns:
            The completed session

        Raises:
            ProfileMigrationError: If any step fails; the session is marked failed first.
                Unexpected errors are handled the same way and re-raised unchanged.
        """
        session.start()

        if show_progress:
            self.console.print(Panel.fit(
                f"[bold blue]Starting Profile Migration[/bold blue]\n"
                f"Session: [bold]{session.id}[/bold]\n"
                f"Site: {self.config.site.site_code}\n"
                f"Source: {session.source_name} → Target: {session.target_name}",
                title="Migration Execution",
                border_style="blue"
            ))

        try:
            for step in STEP_DEFINITIONS:
                await self._execute_step(session, step)
        except Exception as e:
            session.fail(str(e))
            self.error_handler.handle_error(e, ErrorContext(
                operation="migration",
                step=session.current_step,
                session_id=session.id,
                host=getattr(e, "host", None),
            ))
            await self.notifier.migration_failed(session, str(e))

            if show_progress:
                self.console.print(Panel.fit(
                    f"[bold red]Migration Failed[/bold red]\n"
                    f"Step: {session.current_step}\n"
                    f"Error: {e}",
                    title="Migration Result",
                    border_style="red"
                ))
            raise

        if show_progress:
            self.console.print(Panel.fit(
                f"[bold green]Migration Completed Successfully[/bold green]\n"
                f"Duration: {format_duration(session.duration or 0)}",
                title="Migration Result",
                border_style="green"
            ))
        return session

    async def run(self, source_name: str, target_name: str, show_progress: bool = True) -> MigrationSession:
        """Create and execute a session for the two hosts."""
        session = self.create_session(source_name, target_name)
        return await self.execute(session, show_progress=show_progress)

    async def close(self) -> None:
        await self.client.close()
