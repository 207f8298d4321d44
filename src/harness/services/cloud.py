"""Cloud management API client."""

import logging
import shlex
from pathlib import Path
from typing import Any, Optional

import httpx

from harness.models.device import ResolvedAddress
from harness.models.state import ServiceEntry, ServiceSnapshot
from harness.models.status import ServiceStatus
from harness.services.device import Resolver
from harness.services.shell import ShellExecutor
from harness.utils.errors import (
    AuthenticationError,
    NotFoundError,
    ProtocolError,
    TransportError,
)
from harness.utils.matching import lines_contain

SERVICE_DETAILS_EXPAND = (
    "image_install("
    "$select=status,download_progress;"
    "$expand=installs__image($select=id;"
    "$expand=is_a_build_of__service($select=service_name)),"
    "is_provided_by__release($select=commit))"
)


class CloudClient:
    """Queries and mutates devices, config variables and releases.

    Every failure surfaces as an exception: AuthenticationError for rejected
    credentials, NotFoundError for unknown devices/releases, TransportError
    for network and server errors, ProtocolError for unexpected payloads.
    """

    def __init__(
        self,
        api_url: str = "https://api.balena-cloud.com",
        token: Optional[str] = None,
        shell: Optional[ShellExecutor] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize cloud client.

        Args:
            api_url: API base URL
            token: Bearer token
            shell: Executor for CLI operations (release push)
            timeout: Per-request timeout in seconds
            transport: Custom httpx transport (tests)
        """
        self.logger = logging.getLogger("harness.cloud")
        self.api_url = api_url.rstrip("/")
        self.token = token
        self.shell = shell or ShellExecutor()
        self.timeout = timeout
        self._transport = transport

    # -- devices -------------------------------------------------------

    async def get_device(
        self, uuid: str, select: str = "id,uuid", expand: Optional[str] = None
    ) -> dict:
        """Fetch one device record.

        Raises:
            NotFoundError: If no device has ``uuid``
        """
        params = {"$filter": f"uuid eq '{uuid}'", "$select": select}
        if expand:
            params["$expand"] = expand
        records = self._records(await self._request("GET", "/v6/device", params=params))
        if not records:
            raise NotFoundError(f"Device {uuid} not found")
        return records[0]

    async def get_service_details(self, uuid: str) -> ServiceSnapshot:
        """Current services of the device, with status and release commit."""
        device = await self.get_device(uuid, select="id", expand=SERVICE_DETAILS_EXPAND)
        services: dict[str, list[ServiceEntry]] = {}
        try:
            for install in device.get("image_install", []):
                image = install["installs__image"][0]
                name = image["is_a_build_of__service"][0]["service_name"]
                commit = install["is_provided_by__release"][0]["commit"]
                services.setdefault(name, []).append(
                    ServiceEntry(
                        status=ServiceStatus.parse(install["status"]),
                        commit=commit,
                        download_progress=install.get("download_progress"),
                    )
                )
        except (KeyError, IndexError, TypeError) as e:
            raise ProtocolError(f"Unexpected service details for {uuid}: {e}") from e

        snapshot = ServiceSnapshot(uuid=uuid, services=services)
        self.logger.debug(f"Service snapshot for {uuid[:7]}: {snapshot.model_dump(mode='json')}")
        return snapshot

    async def get_supervisor_version(self, uuid: str) -> str:
        device = await self.get_device(uuid, select="supervisor_version")
        version = device.get("supervisor_version")
        if not isinstance(version, str):
            raise ProtocolError(f"Device {uuid} reports no supervisor version")
        return version

    async def get_device_ip(self, uuid: str) -> str:
        """First address the device reported to the cloud."""
        device = await self.get_device(uuid, select="ip_address")
        addresses = (device.get("ip_address") or "").split()
        if not addresses:
            raise TransportError(f"Device {uuid} reports no IP address")
        return addresses[0]

    # -- configuration -------------------------------------------------

    async def set_config_variable(self, uuid: str, name: str, value: Any) -> None:
        """Create or update a device config variable."""
        device_id = (await self.get_device(uuid))["id"]
        existing = self._records(
            await self._request(
                "GET",
                "/v6/device_config_variable",
                params={
                    "$filter": f"device eq {device_id} and name eq '{name}'",
                    "$select": "id",
                },
            )
        )
        if existing:
            await self._request(
                "PATCH",
                f"/v6/device_config_variable({existing[0]['id']})",
                json={"value": str(value)},
            )
        else:
            await self._request(
                "POST",
                "/v6/device_config_variable",
                json={"device": device_id, "name": name, "value": str(value)},
            )
        self.logger.info(f"Set {name}={value} on {uuid[:7]}")

    # -- logs ----------------------------------------------------------

    async def get_device_logs(self, uuid: str, count: int = 1000) -> list[str]:
        """Most recent device log messages, oldest first."""
        payload = await self._request(
            "GET", f"/device/v2/{uuid}/logs", params={"count": count}
        )
        if not isinstance(payload, list):
            raise ProtocolError(f"Unexpected logs payload for {uuid}")
        return [str(entry.get("message", "")) for entry in payload if isinstance(entry, dict)]

    async def logs_contain(
        self, uuid: str, positive: str, negative: Optional[str] = None
    ) -> bool:
        """True iff the logs mention ``positive`` and never ``negative``."""
        return lines_contain(await self.get_device_logs(uuid), positive, negative)

    # -- releases ------------------------------------------------------

    async def get_latest_commit(self, application: str) -> str:
        """Commit of the newest successful release of ``application``."""
        records = self._records(
            await self._request(
                "GET",
                "/v6/release",
                params={
                    "$filter": (
                        f"belongs_to__application/any(a:a/slug eq '{application}') "
                        "and status eq 'success'"
                    ),
                    "$orderby": "created_at desc",
                    "$top": 1,
                    "$select": "commit",
                },
            )
        )
        if not records:
            raise NotFoundError(f"No successful release for {application}")
        return records[0]["commit"]

    async def push_release(self, application: str, source: Path) -> str:
        """Build and push ``source`` to ``application``.

        Returns:
            Commit of the new release
        """
        self.logger.info(f"Pushing {source} to {application}")
        await self.shell.execute_local(
            f"balena push {shlex.quote(application)} --source {shlex.quote(str(source))}"
        )
        commit = await self.get_latest_commit(application)
        self.logger.info(f"Release {commit} pushed to {application}")
        return commit

    # -- plumbing ------------------------------------------------------

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.api_url}{path}"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, headers=self._headers(), transport=self._transport
            ) as client:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status in (401, 403):
                raise AuthenticationError(f"Cloud API rejected credentials ({status})") from e
            if status == 404:
                raise NotFoundError(f"{method} {path} not found") from e
            raise TransportError(f"Cloud API returned {status} for {method} {path}") from e
        except httpx.HTTPError as e:
            self.logger.warning(f"Cloud API request failed: {method} {path}: {e}")
            raise TransportError(f"Cloud API request failed: {e}") from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            if method == "GET":
                raise ProtocolError(f"Cloud API returned non-JSON for {path}") from e
            return response.text

    @staticmethod
    def _records(payload: Any) -> list[dict]:
        if not isinstance(payload, dict) or not isinstance(payload.get("d"), list):
            raise ProtocolError("Cloud API response has no 'd' collection")
        return payload["d"]


def cloud_resolver(cloud: CloudClient, uuid: str) -> Resolver:
    """Resolve the device through the address it last reported to the cloud."""

    async def resolve() -> ResolvedAddress:
        return ResolvedAddress(ip=await cloud.get_device_ip(uuid), source="cloud")

    return resolve
