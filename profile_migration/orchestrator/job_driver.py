"""
Job driver for collection-targeted deployments.

One driver handles both the capture and the restore job: it makes sure
the host is targeted by the job's collection, resets stale client state,
and polls the deployment status until the job succeeds, recovering from
failures under a bounded retry policy.
"""

import asyncio
import logging
from typing import Optional

from profile_migration.core.error_handler import (
    ErrorContext, RetryHandler, SleepFunc, compute_backoff_delay, create_remote_retry_config
)
from profile_migration.core.exceptions import JobTimeoutError, RetryLimitExceededError
from profile_migration.models.config import JobConfig, PollingConfig
from profile_migration.models.session import DeploymentStatus, Device, JobPhase, JobRun
from profile_migration.notifications.mailer import EmailNotifier
from profile_migration.remote.winrm_client import RemoteManager
from profile_migration.sccm.client import ManagementClient
from profile_migration.validation.connectivity import LivenessGate

logger = logging.getLogger(__name__)


class JobDriver:
    """Drives one deployment to completion on one host."""

    def __init__(
        self,
        client: ManagementClient,
        remote: RemoteManager,
        liveness_gate: LivenessGate,
        notifier: EmailNotifier,
        polling: PollingConfig,
        sleep: SleepFunc = asyncio.sleep
    ):
        self.client = client
        self.remote = remote
        self.liveness_gate = liveness_gate
        self.notifier = notifier
        self.polling = polling
        self.retry_config = polling.retry.to_retry_config()
        self._sleep = sleep
        self._waited = 0.0
        self.remote_retry_config = create_remote_retry_config()
        # Retry waits count against the job timeout like every other wait
        self.remote_retry_handler = RetryHandler(sleep=self._wait)

    async def _wait(self, seconds: float) -> None:
        if seconds <= 0:
            return
        await self._sleep(seconds)
        self._waited += seconds

    def _check_deadline(self, run: JobRun) -> None:
        timeout = self.polling.job_timeout
        if timeout is not None and self._waited > timeout:
            raise JobTimeoutError(
                f"{run.job_name} on {run.host} did not finish within {timeout:.0f}s",
                details={"polls": run.polls, "failures": run.failures}
            )

    async def ensure_membership(self, job: JobConfig, device: Device) -> bool:
        """
        Make the device a direct member of the job's collection.

        Returns:
            True if the membership was added by this call
        """
        if await self.client.is_direct_member(job.collection_id, device.resource_id):
            logger.info(f"{device.name} is already a member of {job.collection_id}")
            return False

        await self.client.add_direct_member(job.collection_id, device)
        await self.client.request_policy_refresh(job.collection_id, device)
        return True

    async def clear_stale_state(self, run: JobRun, job: JobConfig, device: Device) -> None:
        """Remove the previous run's scheduler history, restart the client agent and let it settle."""
        logger.info(f"Resetting {job.name} state on {device.name}")
        await self.remote_retry_handler.retry_with_backoff(
            self.remote.clear_stale_state, device.name, job,
            retry_config=self.remote_retry_config,
            context=ErrorContext(operation="clear_stale_state", host=device.name),
        )
        run.cleanups += 1
        await self._wait(self.polling.stale_state_wait)

    async def _handle_failure(self, run: JobRun, job: JobConfig, device: Device, status: DeploymentStatus) -> None:
        run.failures += 1
        logger.error(f"{job.name} failed on {device.name}: {status.description or status.label()}")
        final = run.failures >= self.retry_config.max_attempts
        await self.notifier.job_failed(run, status, final=final)

        if final:
            raise RetryLimitExceededError(
                f"{job.name} failed on {device.name} {run.failures} time(s)",
                attempts=run.failures,
                details={"status": status.description}
            )

        waits = await self.liveness_gate.wait_until_reachable(device.name)
        self._waited += waits * self.liveness_gate.interval
        await self.clear_stale_state(run, job, device)
        run.transition(JobPhase.WAITING, "retry")

        delay = compute_backoff_delay(self.retry_config, run.failures - 1)
        logger.info(
            f"Retrying {job.name} on {device.name} "
            f"(attempt {run.failures + 1}/{self.retry_config.max_attempts}), next check in {delay:.0f}s"
        )
        await self._wait(delay)

    async def run(self, job: JobConfig, device: Device) -> JobRun:
        """
        Drive the job on the device until it succeeds.

        Returns:
            The finished job run

        Raises:
            RetryLimitExceededError: If the job fails more often than the retry policy allows
            JobTimeoutError: If the job does not succeed in time or its status never appears
            HostUnreachableError: If the host does not come back after a failure
        """
        self._waited = 0.0
        run = JobRun(
            job_name=job.name,
            host=device.name,
            package_id=job.package_id,
            collection_id=job.collection_id,
        )
        run.start()
        try:
            return await self._drive(run, job, device)
        finally:
            run.finish()

    async def _drive(self, run: JobRun, job: JobConfig, device: Device) -> JobRun:
        run.membership_added = await self.ensure_membership(job, device)

        if await self.client.get_deployment_status(job, device) is not None:
            logger.info(f"Found an earlier {job.name} status for {device.name}, treating it as stale")
            await self.clear_stale_state(run, job, device)

        await self._wait(self.polling.initial_grace)

        missing = 0
        while True:
            self._check_deadline(run)
            status: Optional[DeploymentStatus] = await self.client.get_deployment_status(job, device)
            run.polls += 1

            if status is None:
                missing += 1
                logger.warning(f"No {job.name} status found for {device.name} ({missing}/{self.polling.max_missing_polls})")
                if missing >= self.polling.max_missing_polls:
                    raise JobTimeoutError(
                        f"No {job.name} status appeared for {device.name} after {missing} checks",
                        details={"polls": run.polls}
                    )
            else:
                missing = 0
                phase = status.phase

                if phase == JobPhase.SUCCESS:
                    run.transition(JobPhase.SUCCESS, status.description)
                    logger.info(f"{job.name} succeeded on {device.name}")
                    return run

                if phase == JobPhase.FAILED:
                    run.transition(JobPhase.FAILED, status.description)
                    await self._handle_failure(run, job, device, status)
                    continue

                if phase is None:
                    logger.info(f"{job.name} on {device.name} reports status {status.label()}: {status.description}")
                elif run.transition(phase, status.description):
                    logger.info(f"{job.name} on {device.name} is {phase.value.replace('_', ' ')}")
                else:
                    logger.debug(f"{job.name} on {device.name} still {phase.value.replace('_', ' ')}")

            await self._wait(self.polling.poll_interval)
