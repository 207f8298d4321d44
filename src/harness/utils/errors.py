"""Error taxonomy for the acceptance harness."""

from typing import Any, Optional


class HarnessError(Exception):
    """Base error for the harness."""


class TransportError(HarnessError):
    """Network, SSH or process failure while talking to a device or the cloud.

    Retryable inside a poll when the caller opts in.
    """


class CommandError(TransportError):
    """Shell command exited with a non-zero status."""

    def __init__(self, command: str, exit_code: int, stderr: str = ""):
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(
            f"Command failed with exit code {exit_code}: {command!r}, "
            f"stderr: {stderr.strip()}"
        )


class AuthenticationError(TransportError):
    """Cloud API rejected the credentials."""


class NotFoundError(TransportError):
    """Requested device, application or release does not exist."""


class ProtocolError(HarnessError):
    """Unexpected response shape. Never retried."""


class AssertionFailure(HarnessError):
    """A scenario assertion did not hold."""

    def __init__(
        self,
        message: str,
        expected: Any = None,
        observed: Any = None,
    ):
        self.message = message
        self.expected = expected
        self.observed = observed
        super().__init__(
            f"{message} (expected: {expected!r}, observed: {observed!r})"
        )


class ConfigError(HarnessError):
    """Missing or invalid configuration."""

    def __init__(self, message: str, source: Optional[str] = None):
        self.source = source
        super().__init__(f"{message} [{source}]" if source else message)
