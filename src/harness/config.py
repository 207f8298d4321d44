"""Harness configuration loaded from a JSON file and HARNESS_* variables."""

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field, ValidationError
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    SettingsError,
)

from harness.models.policy import PollPolicy
from harness.utils.errors import ConfigError


class HarnessConfig(BaseSettings):
    """Connection details for the cloud, the device and reporting.

    Every field can be set through ``HARNESS_<FIELD>``; environment values
    win over values passed in (the JSON config file). The modem list is also
    read from ``MODEMS`` as a JSON list.

    Example config.json:
        {
            "api_url": "https://api.balena-cloud.com",
            "api_token": "...",
            "application": "gh_user/testapp",
            "device_uuid": "f3a1...",
            "device_link": "f3a1abc.local"
        }
    """

    model_config = SettingsConfigDict(env_prefix="HARNESS_", extra="ignore")

    api_url: str = Field(
        default="https://api.balena-cloud.com",
        pattern=r"^https?://.+",
        description="Cloud API base URL",
    )
    api_token: Optional[str] = Field(None, description="Cloud API bearer token")
    application: Optional[str] = Field(None, description="Application slug")
    device_uuid: Optional[str] = Field(None, description="Device under test")
    device_link: Optional[str] = Field(
        None, description="Hostname used to reach the device on the local network"
    )

    ssh_user: str = Field(default="root")
    ssh_port: int = Field(default=22222, gt=0, lt=65536)
    ssh_key: Optional[str] = Field(None, description="Private key for the host OS")
    supervisor_port: int = Field(default=48484, gt=0, lt=65536)

    poll_interval: float = Field(default=3.0, ge=0, description="Seconds between polls")
    poll_attempts: int = Field(default=50, gt=0)
    command_timeout: float = Field(default=120.0, gt=0)
    http_timeout: float = Field(default=10.0, gt=0)

    results_url: Optional[str] = Field(
        None, pattern=r"^https?://.+", description="Where suite results are POSTed"
    )
    log_file: str = Field(default="./logs/harness.log")
    log_level: str = Field(default="INFO")

    modem_config: str = Field(
        default="./modems.json", description="Modem suite configuration file"
    )
    modems: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("modems", "HARNESS_MODEMS", "MODEMS"),
        description="Modem models to test",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # environment first: it overrides the config file
        return env_settings, init_settings

    def poll_policy(self, **overrides) -> PollPolicy:
        """Default poll policy for this configuration."""
        values = {"interval": self.poll_interval, "max_attempts": self.poll_attempts}
        values.update(overrides)
        return PollPolicy(**values)


class ModemNetwork(BaseModel):
    """Cellular network parameters."""

    apn: str
    ip_type: str = Field(default="ipv4", alias="ipType")
    test_url: str = Field(..., alias="testUrl")

    model_config = {"populate_by_name": True}


class ModemSuiteConfig(BaseModel):
    """modems.json: supported modem models and network to attach to."""

    modems: list[str] = Field(..., min_length=1)
    network: ModemNetwork


def _read_json(path: Path) -> dict:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigError("Config file not found", source=str(path))
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON: {e}", source=str(path))
    if not isinstance(data, dict):
        raise ConfigError("Config root must be an object", source=str(path))
    return data


def load_config(path: Optional[Path] = None) -> HarnessConfig:
    """Build the configuration; environment variables override the file.

    Raises:
        ConfigError: If the file is unreadable or a value fails validation
    """
    logger = logging.getLogger("harness.config")

    values: dict = {}
    if path is not None:
        values = _read_json(Path(path))
        logger.debug(f"Loaded config file {path}")

    try:
        return HarnessConfig(**values)
    except SettingsError as e:
        raise ConfigError(f"Invalid environment setting: {e}", source="environment")
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}", source=str(path or "environment"))


def load_modem_config(path: Path) -> ModemSuiteConfig:
    """Load modems.json.

    Raises:
        ConfigError: If the file is missing or malformed
    """
    data = _read_json(Path(path))
    try:
        return ModemSuiteConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid modem config: {e}", source=str(path))
