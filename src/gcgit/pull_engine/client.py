"""Async HTTP client for one platform module."""
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from ..utils.connection import with_retry

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class Credentials:
    """Connection details for one module of one instance."""
    fqdn: str
    api_key: str
    api_key_id: str
    timeout: float = DEFAULT_TIMEOUT
    verify_ssl: bool = True


class ClientError(Exception):
    """Base class for remote API failures."""
    pass


class TransportError(ClientError):
    """Raised when the request never produced a response."""
    pass


class ApiError(ClientError):
    """Raised for non-2xx responses."""

    def __init__(self, status_code: int, url: str, body: str = ""):
        self.status_code = status_code
        self.url = url
        self.body = body
        detail = f": {body[:200]}" if body else ""
        super().__init__(f"API request failed with status {status_code} for {url}{detail}")


class DecodeError(ClientError):
    """Raised when a response body is not the expected structured text."""
    pass


class ModuleClient:
    """Talks to ``https://{fqdn}{base_api_path}/{endpoint}``.

    Every request carries the ``x-xdr-auth-id`` and ``Authorization``
    headers. Transport failures are retried with exponential backoff;
    HTTP error statuses are not.

    Usage:
        async with ModuleClient(credentials, "/public_api/v1") as client:
            data = await client.post_json("bioc/get", {"request_data": {}})
    """

    def __init__(
        self,
        credentials: Credentials,
        base_api_path: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.credentials = credentials
        self.base_url = f"https://{credentials.fqdn}{base_api_path}"
        self._client = httpx.AsyncClient(
            headers={
                "x-xdr-auth-id": credentials.api_key_id,
                "Authorization": credentials.api_key,
                "Accept": "application/json",
            },
            timeout=httpx.Timeout(credentials.timeout),
            verify=credentials.verify_ssl,
            transport=transport,
        )

    async def __aenter__(self) -> "ModuleClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    def url_for(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    @with_retry()
    async def _send(
        self,
        method: str,
        url: str,
        json_body: Optional[Any] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        return await self._client.request(method, url, json=json_body, params=params)

    async def request(
        self,
        method: str,
        endpoint: str,
        json_body: Optional[Any] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        """Send one request and return the successful response.

        Raises:
            TransportError: If no response arrived after retries
            ApiError: If the status is not 2xx
        """
        url = self.url_for(endpoint)
        logger.debug(f"{method} {url} params={params}")
        try:
            response = await self._send(method, url, json_body=json_body, params=params)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TransportError(f"Request to {url} failed: {e}") from e

        if not response.is_success:
            raise ApiError(response.status_code, url, response.text)
        return response

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(f"Response from {response.request.url} is not valid JSON: {e}") from e

    async def get_json(self, endpoint: str, params: Optional[dict[str, Any]] = None) -> Any:
        return self._decode(await self.request("GET", endpoint, params=params))

    async def post_json(self, endpoint: str, body: Any) -> Any:
        return self._decode(await self.request("POST", endpoint, json_body=body))

    async def post_bytes(self, endpoint: str, body: Any) -> bytes:
        response = await self.request("POST", endpoint, json_body=body)
        return response.content

    async def test_connectivity(self) -> tuple[bool, str]:
        """Probe the module base URL.

        Any HTTP answer other than 401 means the host is reachable and the
        credentials were not rejected.

        Returns:
            (ok, message)
        """
        try:
            await self.request("POST", "", json_body={"request_data": {}})
        except ApiError as e:
            if e.status_code == 401:
                return False, "Authentication failed - check API credentials"
            return True, f"Reachable (HTTP {e.status_code})"
        except TransportError as e:
            return False, str(e)
        return True, "Connected"
