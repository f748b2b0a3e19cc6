"""HTTP client for the back-office API."""

from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from backoffice_sync.config import Settings
from backoffice_sync.exceptions import ConfigMissing, TransportFailure
from shared.constants import (
    GET_TOKEN_ENDPOINT,
    TOKEN_VERIFY_ENDPOINT,
    UNKNOWN_ERROR,
    VALIDATE_SPONSOR_ENDPOINT,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class ApiResponse:
    """Status code and decoded JSON body of a back-office response."""

    status_code: int
    data: Any = None

    @property
    def body(self) -> dict[str, Any]:
        return self.data if isinstance(self.data, dict) else {}

    @property
    def status_flag(self) -> bool:
        """Truthiness of the body's `status` field."""
        return bool(self.body.get("status"))

    @property
    def message(self) -> str:
        message = self.body.get("message")
        return str(message) if message else UNKNOWN_ERROR


class BackOfficeClient:
    """
    Thin wrapper around httpx for the back-office API.

    Every call is a single attempt with a fixed timeout. Transport problems
    raise TransportFailure; any HTTP answer comes back as an ApiResponse and
    the caller decides what counts as success.
    """

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings
        self._transport = transport

    @property
    def configured(self) -> bool:
        return self.settings.backoffice_configured

    def _url(self, path: str) -> str:
        if not self.settings.backoffice_api_base_url:
            raise ConfigMissing()
        return f"{self.settings.backoffice_api_base_url}{path}"

    def _api_key_headers(self) -> dict[str, str]:
        if not self.configured:
            raise ConfigMissing()
        return {
            "X-API-KEY": self.settings.backoffice_api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    @staticmethod
    def _bearer_headers(token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        payload: dict[str, Any] | None = None,
    ) -> ApiResponse:
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.backoffice_api_timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            logger.warning("Back-office request failed", method=method, url=url, error=str(e))
            raise TransportFailure(str(e) or e.__class__.__name__) from e

        try:
            data = response.json()
        except ValueError:
            data = None

        logger.debug(
            "Back-office request completed",
            method=method,
            url=url,
            status=response.status_code,
        )
        return ApiResponse(status_code=response.status_code, data=data)

    async def post(self, path: str, payload: dict[str, Any]) -> ApiResponse:
        """POST a JSON body authenticated with the API key."""
        headers = self._api_key_headers()
        return await self._request("POST", self._url(path), headers, payload)

    async def get(self, path: str) -> ApiResponse:
        """GET authenticated with the API key."""
        headers = self._api_key_headers()
        return await self._request("GET", self._url(path), headers)

    async def get_with_bearer(self, path: str, token: str) -> ApiResponse:
        """GET authenticated with a bearer token instead of the API key."""
        return await self._request("GET", self._url(path), self._bearer_headers(token))

    async def verify_token(self, token: str) -> ApiResponse:
        return await self.get_with_bearer(TOKEN_VERIFY_ENDPOINT, token)

    async def get_user_token(self, user_id: int) -> ApiResponse:
        return await self.get(GET_TOKEN_ENDPOINT.format(user_id=user_id))

    async def validate_sponsor(self, username: str) -> bool:
        """Ask the back office whether `username` may act as a sponsor."""
        token = self.settings.sponsor_api_token or self.settings.backoffice_api_key
        path = VALIDATE_SPONSOR_ENDPOINT.format(username=quote(username, safe=""))
        response = await self.get_with_bearer(path, token)
        return response.body.get("status") is True
