"""Client for the device-resident supervisor HTTP API."""

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from harness.models.state import TargetState, TargetStateEnvelope, TargetStateResponse
from harness.services.device import Device
from harness.utils.errors import ProtocolError, TransportError

SUPERVISOR_PORT = 48484


class SupervisorClient:
    """Talks to the supervisor on the device's current address.

    The address is looked up on every request. A connection failure marks it
    stale so the next request resolves the device again instead of retrying
    an address the device may no longer have.
    """

    def __init__(
        self,
        device: Device,
        port: int = SUPERVISOR_PORT,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize supervisor client.

        Args:
            device: Device handle used to resolve the address
            port: Supervisor API port (default: 48484)
            timeout: Per-request timeout in seconds
            transport: Custom httpx transport (tests)
        """
        self.logger = logging.getLogger("harness.supervisor")
        self.device = device
        self.port = port
        self.timeout = timeout
        self._transport = transport

    async def base_url(self) -> str:
        return f"http://{await self.device.ip()}:{self.port}"

    async def ping(self) -> bool:
        """GET /ping; True when the supervisor answers "OK"."""
        response = await self._request("GET", "/ping")
        return response.text.strip() == "OK"

    async def set_target_state(self, state: TargetState) -> TargetStateResponse:
        """POST /v2/local/target-state.

        Raises:
            TransportError: If the request fails
            ProtocolError: If the reply is not a status document
        """
        response = await self._request(
            "POST",
            "/v2/local/target-state",
            json=state.model_dump(mode="json"),
        )
        try:
            result = TargetStateResponse(**self._json(response))
        except (TypeError, ValidationError) as e:
            raise ProtocolError(f"Unexpected target-state reply: {response.text!r}") from e
        self.logger.info(f"Target state write: {result.status} {result.message}")
        return result

    async def get_target_state(self) -> TargetState:
        """GET /v2/local/target-state.

        Raises:
            TransportError: If the request fails
            ProtocolError: If the reply has no ``state`` document
        """
        response = await self._request("GET", "/v2/local/target-state")
        try:
            envelope = TargetStateEnvelope(**self._json(response))
        except (TypeError, ValidationError) as e:
            raise ProtocolError(f"Unexpected target-state document: {response.text!r}") from e
        return envelope.state

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{await self.base_url()}{path}"
        self.logger.debug(f"{method} {url}")
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
                return response
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            self.device.invalidate(f"supervisor unreachable: {e}")
            raise TransportError(f"Supervisor unreachable at {url}: {e}") from e
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"Supervisor returned {e.response.status_code} for {method} {path}"
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Supervisor request failed: {e}") from e

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise ProtocolError(f"Supervisor reply is not JSON: {response.text!r}") from e
