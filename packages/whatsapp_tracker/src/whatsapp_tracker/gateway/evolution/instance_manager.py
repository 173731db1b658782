"""
Evolution API Instance Manager

Manages the Evolution API instance backing the tracker session (create,
connect, webhook registration, status, logout) and owns the HTTP client the
gateway uses for every Evolution call.
"""

import logging
from typing import Any

import httpx

from whatsapp_tracker.gateway.base import GatewayError, TransportError

logger = logging.getLogger(__name__)


class EvolutionInstanceManager:
    """
    Manages one Evolution API instance.

    The tracker runs exactly one instance, identified by instance_name.
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        instance_name: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize instance manager.

        Args:
            api_url: Base URL of Evolution API
            api_key: API key for authentication
            instance_name: Name of the tracker's instance
            timeout: HTTP request timeout
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.instance_name = instance_name
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                headers={
                    "Content-Type": "application/json",
                    "apikey": self.api_key,
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def request(
        self,
        method: str,
        endpoint: str,
        json_data: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """
        Make an authenticated API request.

        Raises:
            TransportError: the API could not be reached
            GatewayError: the API answered with an error status
        """
        client = await self._get_client()
        url = f"{self.api_url}{endpoint}"

        try:
            response = await client.request(method.upper(), url, json=json_data, params=params)
        except httpx.RequestError as e:
            logger.error(f"HTTP request failed: {e}")
            raise TransportError(f"HTTP request failed: {e}", code="HTTP_ERROR") from e

        try:
            response_data = response.json()
        except ValueError:
            response_data = {}

        if response.status_code >= 400:
            error = "Unknown error"
            if isinstance(response_data, dict):
                error = response_data.get("error") or response_data.get("message") or error
            raise GatewayError(
                message=f"API error: {error}",
                code=str(response.status_code),
                details=response_data if isinstance(response_data, dict) else {},
            )

        return response_data

    async def create_instance(
        self,
        webhook_url: str | None = None,
        webhook_events: list[str] | None = None,
        integration: str = "WHATSAPP-BAILEYS",
    ) -> dict[str, Any]:
        """
        Create the Evolution instance, optionally with its webhook.

        Returns:
            Instance creation response (includes the first QR code)
        """
        payload: dict[str, Any] = {
            "instanceName": self.instance_name,
            "qrcode": True,
            "integration": integration,
        }

        if webhook_url:
            payload["webhook"] = {
                "url": webhook_url,
                "byEvents": False,
                "base64": False,
                "events": webhook_events or [],
            }

        return await self.request("POST", "/instance/create", payload)

    async def connect_instance(self) -> dict[str, Any]:
        """
        Connect the instance (generates a QR code when not yet paired).

        Returns:
            Connection response; "code" holds the raw QR payload
        """
        return await self.request("GET", f"/instance/connect/{self.instance_name}")

    async def get_qr_code(self) -> str | None:
        """Get the raw QR payload for pairing, or None."""
        try:
            response = await self.connect_instance()
        except GatewayError as e:
            logger.error(f"Failed to get QR code: {e}")
            return None
        return response.get("code") or (response.get("qrcode") or {}).get("code")

    async def set_webhook(self, webhook_url: str, events: list[str]) -> dict[str, Any]:
        """Point the instance's webhook at the tracker's listener."""
        payload = {
            "webhook": {
                "enabled": True,
                "url": webhook_url,
                "byEvents": False,
                "base64": False,
                "events": events,
            }
        }
        return await self.request("POST", f"/webhook/set/{self.instance_name}", payload)

    async def get_connection_state(self) -> str | None:
        """
        Get the instance connection state ("open", "connecting", "close").

        Returns None when the instance does not exist.
        """
        try:
            response = await self.request("GET", f"/instance/connectionState/{self.instance_name}")
        except TransportError:
            raise
        except GatewayError as e:
            logger.debug(f"No connection state for {self.instance_name}: {e}")
            return None
        return (response.get("instance") or {}).get("state") or response.get("state")

    async def logout_instance(self) -> bool:
        """Logout/disconnect the instance. Returns True if successful."""
        try:
            await self.request("DELETE", f"/instance/logout/{self.instance_name}")
            return True
        except GatewayError as e:
            logger.error(f"Failed to logout instance: {e}")
            return False
