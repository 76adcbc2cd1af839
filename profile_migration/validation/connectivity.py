"""
Reachability checks for client hosts.
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from profile_migration.core.error_handler import SleepFunc
from profile_migration.core.exceptions import HostUnreachableError
from profile_migration.models.config import PollingConfig, RemoteConfig

logger = logging.getLogger(__name__)

ProbeFunc = Callable[[str], Awaitable[bool]]


class ValidationResult(Enum):
    """Validation result status"""
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class ConnectivityCheck:
    """Result of a connectivity check"""
    name: str
    result: ValidationResult
    message: str
    details: Optional[Dict[str, Any]] = None
    remediation: Optional[str] = None

    @property
    def reachable(self) -> bool:
        return self.result == ValidationResult.SUCCESS


async def check_network_connectivity(host: str, port: int, timeout: float = 5.0) -> ConnectivityCheck:
    """Try to open a TCP connection to host:port."""
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()
        return ConnectivityCheck(
            name=f"Network - {host}",
            result=ValidationResult.SUCCESS,
            message=f"Successfully connected to {host}:{port}"
        )
    except asyncio.TimeoutError:
        return ConnectivityCheck(
            name=f"Network - {host}",
            result=ValidationResult.FAILED,
            message=f"Connection to {host}:{port} timed out after {timeout}s",
            remediation="Check the host is powered on and connected to the network"
        )
    except OSError as e:
        return ConnectivityCheck(
            name=f"Network - {host}",
            result=ValidationResult.FAILED,
            message=f"Cannot connect to {host}:{port}: {e}",
            details={"error": str(e)},
            remediation="Check the host name resolves and the firewall allows connections"
        )


class LivenessGate:
    """
    Blocks until a host answers the reachability probe.

    The host is probed every ``liveness_interval`` seconds. The wait is
    bounded by ``liveness_timeout`` unless that is None.
    """

    def __init__(
        self,
        polling: PollingConfig,
        remote: RemoteConfig,
        probe: Optional[ProbeFunc] = None,
        sleep: SleepFunc = asyncio.sleep
    ):
        self.interval = polling.liveness_interval
        self.timeout = polling.liveness_timeout
        self.remote = remote
        self._probe = probe or self._tcp_probe
        self._sleep = sleep

    async def _tcp_probe(self, host: str) -> bool:
        check = await check_network_connectivity(host, self.remote.probe_port, self.remote.probe_timeout)
        if not check.reachable:
            logger.debug(check.message)
        return check.reachable

    async def probe(self, host: str) -> bool:
        """Probe the host once."""
        return await self._probe(host)

    async def wait_until_reachable(self, host: str) -> int:
        """
        Wait for the host to become reachable.

        Returns:
            Number of waits performed before the host answered

        Raises:
            HostUnreachableError: If the host stays unreachable past the timeout
        """
        waits = 0
        while not await self.probe(host):
            waited = waits * self.interval
            if self.timeout is not None and waited + self.interval > self.timeout:
                raise HostUnreachableError(host, waited)
            logger.warning(f"{host} is not reachable, checking again in {self.interval:.0f}s")
            await self._sleep(self.interval)
            waits += 1

        if waits:
            logger.info(f"{host} is reachable again after {waits} wait(s)")
        else:
            logger.debug(f"{host} is reachable")
        return waits
