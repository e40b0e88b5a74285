"""Thin async client for the Vapi REST API."""

import logging
import httpx
from triage_api.core.config import settings

logger = logging.getLogger(__name__)


class VapiClientError(Exception):
    """Raised when a Vapi API request fails (network error or non-2xx)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class VapiClient:
    """Fetches call state and patches call metadata."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.VAPI_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.VAPI_PRIVATE_KEY
        self.timeout = timeout or settings.VAPI_TIMEOUT_SECONDS
        self.transport = transport

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, json: dict | None = None) -> dict:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(method, url, headers=self._headers(), json=json)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            raise VapiClientError(
                f"Vapi {method} {path} returned {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise VapiClientError(f"Vapi {method} {path} failed: {e}") from e
        except ValueError as e:
            raise VapiClientError(f"Vapi {method} {path} returned invalid JSON") from e

    async def get_call(self, call_id: str) -> dict:
        """GET /call/{id}: current call snapshot."""
        call = await self._request("GET", f"/call/{call_id}")
        logger.debug("Fetched Vapi call %s (status=%s)", call_id, call.get("status"))
        return call

    async def update_call(self, call_id: str, data: dict) -> dict:
        """PATCH /call/{id}: used to write outcome metadata back to the call."""
        call = await self._request("PATCH", f"/call/{call_id}", json=data)
        logger.info("Patched Vapi call %s: %s", call_id, sorted(data))
        return call


# Singleton instance
vapi_client = VapiClient()
