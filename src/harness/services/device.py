"""Device handle with explicit address staleness."""

import asyncio
import logging
import socket
from typing import Awaitable, Callable, Optional

from harness.models.device import ResolvedAddress
from harness.utils.errors import TransportError

Resolver = Callable[[], Awaitable[ResolvedAddress]]


def dns_resolver(link: str) -> Resolver:
    """Resolve ``link`` (e.g. ``<uuid7>.local``) through the system resolver."""

    async def resolve() -> ResolvedAddress:
        loop = asyncio.get_running_loop()
        try:
            infos = await loop.getaddrinfo(link, None, family=socket.AF_INET)
        except socket.gaierror as e:
            raise TransportError(f"Cannot resolve {link}: {e}")
        if not infos:
            raise TransportError(f"No address for {link}")
        return ResolvedAddress(ip=infos[0][4][0], source=f"dns:{link}")

    return resolve


def static_resolver(ip: str) -> Resolver:
    """Always resolve to ``ip`` (fixed-address lab setups and tests)."""

    async def resolve() -> ResolvedAddress:
        return ResolvedAddress(ip=ip, source="static")

    return resolve


class Device:
    """Device under test: UUID plus its current network address.

    The address is cached until something marks it stale (an action that
    reboots the device, or a connection failure); the next :meth:`ip` call
    then resolves it again.
    """

    def __init__(self, uuid: str, resolver: Resolver, link: Optional[str] = None):
        self.logger = logging.getLogger("harness.device")
        self.uuid = uuid
        self.link = link
        self._resolver = resolver
        self._address: Optional[ResolvedAddress] = None
        self._lock = asyncio.Lock()

    @property
    def address(self) -> Optional[ResolvedAddress]:
        """Last resolved address (possibly stale), None before first use."""
        return self._address

    async def ip(self) -> str:
        """Current IP, resolving first when unknown or stale."""
        async with self._lock:
            if self._address is None or self._address.stale:
                self._address = await self._resolver()
                self.logger.info(
                    f"Resolved device {self.short_uuid} to {self._address.ip}"
                )
            return self._address.ip

    async def resolve(self) -> str:
        """Force re-resolution regardless of staleness."""
        self.invalidate()
        return await self.ip()

    def invalidate(self, reason: str = "") -> None:
        """Mark the cached address stale."""
        if self._address is not None and not self._address.stale:
            self._address = self._address.invalidated()
            self.logger.info(
                f"Address of {self.short_uuid} marked stale"
                + (f": {reason}" if reason else "")
            )

    @property
    def short_uuid(self) -> str:
        return self.uuid[:7]

    def __repr__(self) -> str:
        return f"Device(uuid={self.short_uuid!r}, link={self.link!r})"
