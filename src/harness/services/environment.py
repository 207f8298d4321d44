"""Wires clients for one device from the harness configuration."""

import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from harness.config import HarnessConfig
from harness.models.policy import PollPolicy
from harness.services.cloud import CloudClient, cloud_resolver
from harness.services.device import Device, dns_resolver
from harness.services.shell import ShellExecutor
from harness.services.supervisor import SupervisorClient
from harness.utils.errors import ConfigError


@dataclass
class DeviceEnvironment:
    """Everything a suite needs to drive one device."""

    config: HarnessConfig
    device: Device
    shell: ShellExecutor
    cloud: CloudClient
    supervisor: SupervisorClient
    workdir: Path

    @classmethod
    def from_config(
        cls, config: HarnessConfig, workdir: Optional[Path] = None
    ) -> "DeviceEnvironment":
        """Build clients for the configured device.

        The device is resolved over the local network when ``device_link``
        is set, otherwise through the address it reports to the cloud.

        Raises:
            ConfigError: If neither a device UUID nor a link is configured
        """
        shell = ShellExecutor(
            ssh_user=config.ssh_user,
            ssh_port=config.ssh_port,
            ssh_key=config.ssh_key,
            command_timeout=config.command_timeout,
        )
        cloud = CloudClient(
            api_url=config.api_url,
            token=config.api_token,
            shell=shell,
            timeout=config.http_timeout,
        )

        if config.device_link:
            resolver = dns_resolver(config.device_link)
        elif config.device_uuid:
            resolver = cloud_resolver(cloud, config.device_uuid)
        else:
            raise ConfigError("device_uuid or device_link is required")

        device = Device(
            uuid=config.device_uuid or config.device_link,
            resolver=resolver,
            link=config.device_link,
        )
        supervisor = SupervisorClient(
            device, port=config.supervisor_port, timeout=config.http_timeout
        )
        return cls(
            config=config,
            device=device,
            shell=shell,
            cloud=cloud,
            supervisor=supervisor,
            workdir=workdir or Path(tempfile.mkdtemp(prefix="harness-")),
        )

    def policy(self, **overrides) -> PollPolicy:
        return self.config.poll_policy(**overrides)

    def require(self, name: str) -> Any:
        """Configured value of ``name``; ConfigError when unset."""
        value = getattr(self.config, name)
        if not value:
            raise ConfigError(f"{name} is required for this suite")
        return value
