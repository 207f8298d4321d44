"""Global pytest fixtures and configuration."""

import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add src and the mock servers to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent / "fixtures" / "mocks"))

from harness.config import HarnessConfig
from harness.models.policy import PollPolicy
from harness.services.device import Device, static_resolver


@pytest.fixture
def fast_policy():
    """Poll policy without delays."""
    return PollPolicy(interval=0, max_attempts=5)


@pytest.fixture
def device():
    """Device handle resolving to a fixed address."""
    return Device(
        uuid="f3a1b2c3d4e5f60718293a4b5c6d7e8f",
        resolver=static_resolver("10.0.0.2"),
    )


@pytest.fixture
def harness_config(tmp_path):
    """Configuration for a device reachable without delays."""
    return HarnessConfig(
        api_url="https://api.example.test",
        api_token="token",
        application="gh_tester/testapp",
        device_uuid="f3a1b2c3d4e5f60718293a4b5c6d7e8f",
        poll_interval=0,
        poll_attempts=10,
        log_file=str(tmp_path / "logs" / "harness.log"),
    )


@pytest.fixture
def mock_shell():
    """Mock ShellExecutor for unit tests."""
    shell = MagicMock()
    shell.execute_in_host_os = AsyncMock(return_value="")
    shell.execute_in_container = AsyncMock(return_value="")
    shell.execute_local = AsyncMock(return_value="")
    return shell


@pytest.fixture
def sample_target_state():
    """Target state document as the device tree suite writes it."""
    return {
        "local": {
            "name": "local",
            "config": {
                "HOST_CONFIG_dtoverlay": '"gpio-key,gpio=4,active_low=0,gpio_pull=up"',
                "HOST_CONFIG_dtparam": '"i2c_arm=on","spi=on","audio=on","foo=bar","level=42"',
                "SUPERVISOR_PERSISTENT_LOGGING": "true",
                "SUPERVISOR_LOCAL_MODE": "true",
            },
            "apps": {},
        },
        "dependent": {"apps": [], "devices": []},
    }
