"""Probes: one read interface over the cloud, supervisor and shell channels."""

from typing import Any, Awaitable, Callable, Optional, Protocol

from harness.services.cloud import CloudClient
from harness.services.device import Device
from harness.services.shell import ShellExecutor
from harness.services.supervisor import SupervisorClient


class Probe(Protocol):
    """Produces one observable value from a device.

    ``read`` raises TransportError when the channel fails and ProtocolError
    when the reply has an unexpected shape.
    """

    description: str

    async def read(self) -> Any: ...


class CloudProbe:
    """Reads a value through the cloud API."""

    def __init__(self, description: str, fetch: Callable[[], Awaitable[Any]]):
        self.description = description
        self._fetch = fetch

    async def read(self) -> Any:
        return await self._fetch()

    @classmethod
    def service_details(cls, cloud: CloudClient, uuid: str) -> "CloudProbe":
        return cls("service details", lambda: cloud.get_service_details(uuid))

    @classmethod
    def supervisor_version(cls, cloud: CloudClient, uuid: str) -> "CloudProbe":
        return cls("supervisor version", lambda: cloud.get_supervisor_version(uuid))

    @classmethod
    def device_logs(cls, cloud: CloudClient, uuid: str, count: int = 1000) -> "CloudProbe":
        return cls("device logs", lambda: cloud.get_device_logs(uuid, count))


class HttpProbe:
    """Reads a value from the device-resident supervisor API."""

    def __init__(self, description: str, fetch: Callable[[], Awaitable[Any]]):
        self.description = description
        self._fetch = fetch

    async def read(self) -> Any:
        return await self._fetch()

    @classmethod
    def ping(cls, supervisor: SupervisorClient) -> "HttpProbe":
        return cls("supervisor ping", supervisor.ping)

    @classmethod
    def target_state(cls, supervisor: SupervisorClient) -> "HttpProbe":
        return cls("supervisor target state", supervisor.get_target_state)


class ShellProbe:
    """Reads the trimmed stdout of a command on the host OS or in a container."""

    def __init__(
        self,
        shell: ShellExecutor,
        device: Device,
        command: str,
        container: Optional[str] = None,
    ):
        self.shell = shell
        self.device = device
        self.command = command
        self.container = container
        where = f"container {container}" if container else "host OS"
        self.description = f"`{command}` in {where}"

    async def read(self) -> str:
        if self.container:
            return await self.shell.execute_in_container(
                self.command, self.container, self.device
            )
        return await self.shell.execute_in_host_os(self.command, self.device)
