"""
Management console API clients.

``ManagementClient`` describes the operations the migration needs from the
management site: inventory lookup, computer associations, collection
membership, deployment status and client notifications.
``AdminServiceClient`` implements them against the SMS Provider
AdminService (OData over HTTPS) with aiohttp.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

import aiohttp

from profile_migration.core.error_handler import RetryConfig, RetryHandler, SleepFunc, create_api_retry_config
from profile_migration.core.exceptions import ManagementApiError
from profile_migration.models.config import JobConfig, SiteConfig
from profile_migration.models.session import (
    Association, DeploymentStatus, Device, MigrationBehavior
)

logger = logging.getLogger(__name__)

# SMS_ClientOperation type for "Download Computer Policy"
CLIENT_OPERATION_REQUEST_MACHINE_POLICY = 8


def odata_literal(value: str) -> str:
    """Quote a string for use inside an OData $filter expression."""
    return "'" + str(value).replace("'", "''") + "'"


class ManagementClient(ABC):
    """Capability surface of the management site used by the migration."""

    @abstractmethod
    async def get_device(self, name: str) -> Optional[Device]:
        """Look up a device by name, None when it is not in the inventory."""

    @abstractmethod
    async def get_associations(self, resource_id: int) -> List[Association]:
        """List computer associations where the device is source or target."""

    @abstractmethod
    async def remove_association(self, source_id: int, target_id: int) -> None:
        """Delete a computer association."""

    @abstractmethod
    async def create_association(
        self,
        source_id: int,
        target_id: int,
        behavior: MigrationBehavior = MigrationBehavior.CAPTURE_RESTORE_ALL
    ) -> None:
        """Create a computer association."""

    @abstractmethod
    async def is_direct_member(self, collection_id: str, resource_id: int) -> bool:
        """Whether the device is a direct member of the collection."""

    @abstractmethod
    async def add_direct_member(self, collection_id: str, device: Device) -> None:
        """Add a direct membership rule for the device."""

    @abstractmethod
    async def get_deployment_status(self, job: JobConfig, device: Device) -> Optional[DeploymentStatus]:
        """Current deployment status of the job on the device, None when absent."""

    @abstractmethod
    async def request_policy_refresh(self, collection_id: str, device: Device) -> None:
        """Ask the client to download machine policy now."""

    async def close(self) -> None:
        """Release any held resources."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class AdminServiceClient(ManagementClient):
    """ManagementClient backed by the ConfigMgr AdminService REST API."""

    def __init__(
        self,
        site: SiteConfig,
        retry_config: Optional[RetryConfig] = None,
        sleep: SleepFunc = asyncio.sleep
    ):
        self.site = site
        self.api_base_url = site.admin_service_url.rstrip('/')
        self.retry_config = retry_config or create_api_retry_config()
        self.retry_handler = RetryHandler(sleep=sleep)
        self.session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session for API requests."""
        if self.session is None or self.session.closed:
            connector = aiohttp.TCPConnector(ssl=None if self.site.verify_ssl else False)
            headers = {"Accept": "application/json"}
            auth = None
            if self.site.bearer_token:
                headers["Authorization"] = f"Bearer {self.site.bearer_token}"
            elif self.site.username:
                auth = aiohttp.BasicAuth(self.site.username, self.site.password or "")
            self.session = aiohttp.ClientSession(
                connector=connector,
                headers=headers,
                auth=auth,
                timeout=aiohttp.ClientTimeout(total=self.site.request_timeout)
            )
        return self.session

    async def _send(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        payload: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Send one request to the AdminService."""
        url = f"{self.api_base_url}/{path}"
        session = await self._get_session()

        try:
            async with session.request(method, url, params=params, json=payload) as response:
                if response.status >= 400:
                    text = await response.text()
                    raise ManagementApiError(
                        f"AdminService {method} {path} failed: HTTP {response.status}",
                        status=response.status,
                        retryable=response.status >= 500 or response.status == 429,
                        details={"url": url, "body": text[:500]}
                    )
                if response.status == 204:
                    return {}
                try:
                    return await response.json(content_type=None) or {}
                except ValueError as e:
                    # Typically an HTML login page from a proxy in front of the provider
                    text = await response.text()
                    raise ManagementApiError(
                        f"AdminService {method} {path} returned a non-JSON body: {e}",
                        status=response.status,
                        details={"url": url, "body": text[:500]}
                    ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ManagementApiError(
                f"AdminService {method} {path} request error: {e}",
                retryable=True,
                details={"url": url}
            ) from e

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        payload: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Send a request, retrying transient failures with backoff."""
        return await self.retry_handler.retry_with_backoff(
            self._send, method, path, params, payload,
            retry_config=self.retry_config
        )

    async def _query(self, wmi_class: str, filter_expr: str) -> List[Dict[str, Any]]:
        """Query instances of a WMI class through the AdminService."""
        data = await self._request("GET", f"wmi/{wmi_class}", params={"$filter": filter_expr})
        return data.get("value", [])

    async def _invoke(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Invoke a WMI method and check its return value."""
        data = await self._request("POST", f"wmi/{path}", payload=payload)
        return_value = data.get("ReturnValue", 0)
        if return_value not in (0, None):
            raise ManagementApiError(
                f"{path} returned {return_value}",
                details={"payload": payload, "response": data}
            )
        return data

    async def get_device(self, name: str) -> Optional[Device]:
        records = await self._query("SMS_R_System", f"Name eq {odata_literal(name)}")
        if not records:
            return None
        # Obsolete duplicates keep the name but lose the client flag
        records.sort(key=lambda r: r.get("Client") == 1, reverse=True)
        record = records[0]
        return Device(
            resource_id=int(record["ResourceId"]),
            name=record.get("Name", name),
            domain=record.get("ResourceDomainORWorkgroup"),
            is_client=record.get("Client") == 1
        )

    async def get_associations(self, resource_id: int) -> List[Association]:
        records = await self._query(
            "SMS_StateMigration",
            f"SourceClientResourceID eq {int(resource_id)} or RestoreClientResourceID eq {int(resource_id)}"
        )
        return [
            Association(
                source_resource_id=int(record["SourceClientResourceID"]),
                restore_resource_id=int(record["RestoreClientResourceID"]),
                source_name=record.get("SourceName"),
                restore_name=record.get("RestoreName"),
            )
            for record in records
        ]

    async def remove_association(self, source_id: int, target_id: int) -> None:
        await self._invoke("SMS_StateMigration.DeleteAssociation", {
            "SourceClientResourceID": int(source_id),
            "RestoreClientResourceID": int(target_id),
        })
        logger.info(f"Removed computer association {source_id} -> {target_id}")

    async def create_association(
        self,
        source_id: int,
        target_id: int,
        behavior: MigrationBehavior = MigrationBehavior.CAPTURE_RESTORE_ALL
    ) -> None:
        await self._invoke("SMS_StateMigration.AddAssociation", {
            "SourceClientResourceID": int(source_id),
            "RestoreClientResourceID": int(target_id),
            "MigrationBehavior": int(behavior),
        })
        logger.info(f"Created computer association {source_id} -> {target_id} ({behavior.name})")

    async def is_direct_member(self, collection_id: str, resource_id: int) -> bool:
        records = await self._query(
            "SMS_FullCollectionMembership",
            f"CollectionID eq {odata_literal(collection_id)} and ResourceID eq {int(resource_id)}"
        )
        return any(record.get("IsDirect") for record in records)

    async def add_direct_member(self, collection_id: str, device: Device) -> None:
        await self._invoke(f"SMS_Collection({odata_literal(collection_id)})/AdminService.AddMembershipRule", {
            "collectionRule": {
                "@odata.type": "#AdminService.SMS_CollectionRuleDirect",
                "ResourceClassName": "SMS_R_System",
                "RuleName": device.name,
                "ResourceID": device.resource_id,
            }
        })
        logger.info(f"Added {device.name} to collection {collection_id}")

    async def get_deployment_status(self, job: JobConfig, device: Device) -> Optional[DeploymentStatus]:
        records = await self._query(
            "SMS_ClassicDeploymentAssetDetails",
            f"CollectionID eq {odata_literal(job.collection_id)} "
            f"and PackageID eq {odata_literal(job.package_id)} "
            f"and DeviceName eq {odata_literal(device.name)}"
        )
        if not records:
            return None
        record = max(records, key=lambda r: r.get("LastStatusTime") or "")
        return DeploymentStatus(
            code=int(record["StatusType"]),
            description=record.get("StatusDescription") or "",
            last_status_time=_parse_timestamp(record.get("LastStatusTime"))
        )

    async def request_policy_refresh(self, collection_id: str, device: Device) -> None:
        await self._invoke("SMS_ClientOperation.InitiateClientOperation", {
            "Type": CLIENT_OPERATION_REQUEST_MACHINE_POLICY,
            "TargetCollectionID": collection_id,
            "TargetResourceIDs": [device.resource_id],
        })
        logger.info(f"Requested machine policy refresh on {device.name}")

    async def close(self) -> None:
        if self.session:
            await self.session.close()
        self.session = None


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
