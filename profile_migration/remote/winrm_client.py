"""
Remote management of client hosts over WinRM.

Scheduler-history records and the client agent service are managed by
running PowerShell on the host through pywinrm. pywinrm is blocking, so
every call runs in a worker thread.
"""

import asyncio
import logging
import re
from typing import Callable, List, Optional

import winrm
from winrm.exceptions import WinRMError, WinRMOperationTimeoutError, WinRMTransportError

from profile_migration.core.exceptions import RemoteManagementError
from profile_migration.models.config import JobConfig, RemoteConfig

logger = logging.getLogger(__name__)

_SAFE_TOKEN = re.compile(r"^[A-Za-z0-9_\-]+$")


def ps_quote(value: str) -> str:
    """Quote a value as a single-quoted PowerShell string."""
    return "'" + str(value).replace("'", "''") + "'"


def make_cim_query(namespace: str, class_name: str, cond: Optional[str] = None) -> str:
    """
    Make a Get-CimInstance command. The command pattern is:

      Get-CimInstance -Namespace NS -ClassName CLASS [-Filter "COND"]

    :param namespace: WMI namespace.
    :param class_name: WMI class name.
    :param cond: WQL condition for ``-Filter``.

    :return: PowerShell command.
    """
    query = ["Get-CimInstance", "-Namespace", ps_quote(namespace), "-ClassName", class_name]
    if cond:
        query.append('-Filter "%s"' % cond)
    return " ".join(query)


def schedule_filter(token: str) -> str:
    """WQL condition matching scheduler-history records of a package or deployment."""
    if not _SAFE_TOKEN.match(token or ""):
        raise ValueError(f"Unsafe schedule filter token: {token!r}")
    return "ScheduleID LIKE '%%%s%%'" % token


def parse_lines(output: str) -> List[str]:
    """Split command output into non-empty stripped lines."""
    return [line.strip() for line in output.splitlines() if line.strip()]


class RemoteManager:
    """Runs management commands on client hosts through WinRM."""

    def __init__(self, config: RemoteConfig, session_factory: Optional[Callable[[str], winrm.Session]] = None):
        self.config = config
        self._session_factory = session_factory or self._create_session

    def _create_session(self, host: str) -> winrm.Session:
        scheme = "https" if self.config.use_ssl else "http"
        return winrm.Session(
            f"{scheme}://{host}:{self.config.port}/wsman",
            auth=(self.config.username or "", self.config.password or ""),
            transport=self.config.transport,
            server_cert_validation=self.config.server_cert_validation,
        )

    def _run_ps_sync(self, host: str, script: str) -> str:
        try:
            result = self._session_factory(host).run_ps(script)
        except (WinRMError, WinRMTransportError, WinRMOperationTimeoutError, OSError) as e:
            raise RemoteManagementError(f"WinRM call to {host} failed: {e}", host=host) from e

        stdout = result.std_out.decode("utf-8", errors="replace")
        if result.status_code != 0:
            stderr = result.std_err.decode("utf-8", errors="replace")
            raise RemoteManagementError(
                f"Command on {host} exited with {result.status_code}",
                host=host,
                details={"script": script, "stderr": stderr.strip()[:1000]}
            )
        return stdout

    async def run_ps(self, host: str, script: str) -> str:
        """Run a PowerShell script on the host and return its standard output."""
        logger.debug(f"[{host}] {script}")
        return await asyncio.to_thread(self._run_ps_sync, host, script)

    async def find_scheduler_history(self, host: str, token: str) -> List[str]:
        """Schedule IDs of the scheduler-history records matching the token."""
        query = make_cim_query(self.config.scheduler_namespace, "CCM_Scheduler_History", schedule_filter(token))
        output = await self.run_ps(host, f"{query} | Select-Object -ExpandProperty ScheduleID")
        return parse_lines(output)

    async def delete_scheduler_history(self, host: str, token: str) -> int:
        """Delete the scheduler-history records matching the token, returning how many were removed."""
        query = make_cim_query(self.config.scheduler_namespace, "CCM_Scheduler_History", schedule_filter(token))
        script = f"$items = @({query}); $items | Remove-CimInstance; $items.Count"
        lines = parse_lines(await self.run_ps(host, script))
        try:
            removed = int(lines[-1]) if lines else 0
        except ValueError:
            removed = 0
        logger.info(f"Removed {removed} scheduler history record(s) matching {token} on {host}")
        return removed

    async def get_service_status(self, host: str, service: Optional[str] = None) -> str:
        """Status of a service on the host (Running, Stopped, ...)."""
        service = service or self.config.service_name
        output = await self.run_ps(host, f"(Get-Service -Name {ps_quote(service)}).Status")
        lines = parse_lines(output)
        return lines[0] if lines else "Unknown"

    async def restart_service(self, host: str, service: Optional[str] = None) -> None:
        """Restart a service on the host."""
        service = service or self.config.service_name
        await self.run_ps(host, f"Restart-Service -Name {ps_quote(service)} -Force")
        logger.info(f"Restarted service {service} on {host}")

    async def clear_stale_state(self, host: str, job: JobConfig) -> int:
        """Forget previous runs of the job on the host so the client schedules it again."""
        removed = await self.delete_scheduler_history(host, job.package_id)
        await self.restart_service(host)
        return removed
