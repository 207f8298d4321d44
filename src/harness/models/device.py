"""Device address model."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ResolvedAddress(BaseModel):
    """Network address of a device at a point in time.

    A device may come back from a reboot on a different address, so the
    value is marked stale by any action that reboots the device and must
    be resolved again before use.
    """

    ip: str = Field(..., description="IPv4/IPv6 address")
    resolved_at: datetime = Field(default_factory=datetime.now)
    stale: bool = Field(default=False)
    source: Optional[str] = Field(None, description="How the address was resolved")

    def invalidated(self) -> "ResolvedAddress":
        """Return a stale copy of this address."""
        return self.model_copy(update={"stale": True})
