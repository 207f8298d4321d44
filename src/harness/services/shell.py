"""Shell command execution on the workstation and on the device over SSH."""

import asyncio
import logging
import shlex
from pathlib import Path
from typing import Optional

from harness.services.device import Device
from harness.utils.errors import CommandError, TransportError

# ssh exits with 255 when the connection itself failed
SSH_CONNECTION_FAILED = 255


class ShellExecutor:
    """Runs commands on the device host OS, inside containers, or locally."""

    def __init__(
        self,
        ssh_user: str = "root",
        ssh_port: int = 22222,
        ssh_key: Optional[str] = None,
        command_timeout: float = 120.0,
        engine: str = "balena-engine",
    ):
        """Initialize shell executor.

        Args:
            ssh_user: Host OS user
            ssh_port: Host OS SSH port (22222 on development images)
            ssh_key: Private key file, ssh defaults when None
            command_timeout: Seconds before a command is killed
            engine: Container engine CLI on the device
        """
        self.logger = logging.getLogger("harness.shell")
        self.ssh_user = ssh_user
        self.ssh_port = ssh_port
        self.ssh_key = ssh_key
        self.command_timeout = command_timeout
        self.engine = engine

    def ssh_args(self, host: str) -> list[str]:
        """ssh argv prefix for ``host``."""
        args = [
            "ssh",
            "-p", str(self.ssh_port),
            "-o", "StrictHostKeyChecking=no",
            "-o", "UserKnownHostsFile=/dev/null",
            "-o", "LogLevel=ERROR",
            "-o", "ConnectTimeout=10",
            "-o", "BatchMode=yes",
        ]
        if self.ssh_key:
            args += ["-i", self.ssh_key]
        args.append(f"{self.ssh_user}@{host}")
        return args

    async def execute_in_host_os(self, command: str, device: Device) -> str:
        """Run ``command`` on the device host OS.

        Returns:
            Trimmed stdout

        Raises:
            CommandError: If the command exits non-zero
            TransportError: If SSH cannot connect or the command times out
        """
        host = await device.ip()
        self.logger.debug(f"[{device.short_uuid}] $ {command}")
        try:
            return await self._run_exec(self.ssh_args(host) + [command], command)
        except CommandError as e:
            if e.exit_code == SSH_CONNECTION_FAILED:
                device.invalidate("ssh connection failed")
                raise TransportError(f"SSH to {host} failed: {e.stderr.strip()}") from e
            raise

    async def execute_in_container(
        self, command: str, container: str, device: Device
    ) -> str:
        """Run ``command`` inside the running container whose name contains ``container``.

        Raises:
            CommandError: If the container is missing or the command fails
            TransportError: If SSH cannot connect or the command times out
        """
        wrapped = (
            f"{self.engine} exec "
            f"$({self.engine} ps -q -f name={shlex.quote(container)} | head -n 1) "
            f"sh -c {shlex.quote(command)}"
        )
        return await self.execute_in_host_os(wrapped, device)

    async def execute_local(self, command: str, cwd: Optional[Path] = None) -> str:
        """Run ``command`` through the workstation shell.

        Raises:
            CommandError: If the command exits non-zero
            TransportError: If the command times out
        """
        self.logger.debug(f"[local] $ {command}")
        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
        )
        return await self._communicate(process, command)

    async def _run_exec(self, argv: list[str], command: str) -> str:
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TransportError(f"Failed to spawn {argv[0]}: {e}") from e
        return await self._communicate(process, command)

    async def _communicate(self, process, command: str) -> str:
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.command_timeout
            )
        except asyncio.CancelledError:
            # cancelled by a poll deadline
            await self._kill(process, command)
            raise
        except asyncio.TimeoutError:
            await self._kill(process, command)
            self.logger.error(
                f"Command timed out after {self.command_timeout}s: {command}"
            )
            raise TransportError(
                f"Command timed out after {self.command_timeout}s: {command!r}"
            )

        if process.returncode != 0:
            error = CommandError(
                command, process.returncode, stderr.decode(errors="replace")
            )
            self.logger.warning(str(error))
            raise error

        return stdout.decode(errors="replace").strip()

    async def _kill(self, process, command: str) -> None:
        if process.returncode is not None:
            return
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()
        self.logger.debug(f"Killed: {command}")
