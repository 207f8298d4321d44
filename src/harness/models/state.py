"""Device state models: service snapshots and supervisor target state."""

from typing import Any, Optional

from pydantic import BaseModel, Field

from harness.models.status import ServiceStatus


class ServiceEntry(BaseModel):
    """One installed image of a service.

    During an update a service can have several entries at once, e.g. the
    old release Running and the new release Downloaded.
    """

    status: ServiceStatus = Field(..., description="Current service status")
    commit: str = Field(..., description="Release commit the image belongs to")
    download_progress: Optional[int] = Field(None, ge=0, le=100)


class ServiceSnapshot(BaseModel):
    """Point-in-time read of a device's services. Never cached across polls."""

    uuid: str = Field(..., description="Device UUID")
    services: dict[str, list[ServiceEntry]] = Field(default_factory=dict)

    def entries(self, service: str) -> list[ServiceEntry]:
        """Entries of ``service``, empty if the service is unknown."""
        return self.services.get(service, [])

    def has(self, service: str, status: ServiceStatus, commit: str) -> bool:
        """True if ``service`` has an entry at ``commit`` with ``status``."""
        return any(
            entry.status == status and entry.commit == commit
            for entry in self.entries(service)
        )


class LocalState(BaseModel):
    """Supervisor-local part of a target state document."""

    name: str = "local"
    config: dict[str, str] = Field(default_factory=dict)
    apps: dict[str, Any] = Field(default_factory=dict)


class DependentState(BaseModel):
    """Dependent devices/apps part of a target state document."""

    apps: list[Any] = Field(default_factory=list)
    devices: list[Any] = Field(default_factory=list)


class TargetState(BaseModel):
    """POST /v2/local/target-state body.

    Example:
        {
            "local": {
                "name": "local",
                "config": {"SUPERVISOR_LOCAL_MODE": "true"},
                "apps": {}
            },
            "dependent": {"apps": [], "devices": []}
        }
    """

    local: LocalState = Field(default_factory=LocalState)
    dependent: DependentState = Field(default_factory=DependentState)


class TargetStateResponse(BaseModel):
    """Supervisor reply to a target state write."""

    status: str = Field(..., description='"success" on acceptance')
    message: str = Field("", description="Human-readable detail")

    @property
    def accepted(self) -> bool:
        return self.status == "success"


class TargetStateEnvelope(BaseModel):
    """GET /v2/local/target-state response."""

    state: TargetState
