from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from invoicing.services.exceptions import DownstreamServiceError

logger = logging.getLogger(__name__)


class ServiceClient:
    """Async HTTP client for one sibling service (records, payments, contact)."""

    def __init__(
        self,
        base_url: str | None,
        *,
        name: str = "service",
        timeout: float = 10.0,
        use_mock_data: bool = True,
        api_key: str | None = None,
        service_name: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = str(base_url).rstrip("/") if base_url else None
        self._name = name
        self._timeout = timeout
        self._transport = transport
        self.use_mock_data = use_mock_data or not self._base_url
        self._headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if api_key:
            self._headers["X-API-Key"] = api_key
        if service_name:
            self._headers["X-Service-Name"] = service_name
        self._client: Optional[httpx.AsyncClient] = None
        if not self.use_mock_data and self._base_url:
            self._client = self._build_client()

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers=self._headers,
            transport=self._transport,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self.use_mock_data or not self._base_url:
            raise RuntimeError("HTTP client requested while running in mock mode")
        if self._client is None:
            self._client = self._build_client()
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Dict[str, Any] | None = None,
        params: Dict[str, Any] | None = None,
        headers: Dict[str, str] | None = None,
    ) -> Any:
        if self.use_mock_data:
            raise RuntimeError("Real HTTP call requested while mock mode is enabled")
        client = await self._ensure_client()
        try:
            logger.debug("%s %s%s", method, self._name, path)
            response = await client.request(
                method, path, json=json, params=params, headers=headers
            )
            response.raise_for_status()
            if not response.content:
                return {}
            return response.json()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            if status_code == 404:
                logger.info("%s service returned 404 for %s", self._name, path)
            else:
                logger.exception("%s service returned error %s", self._name, status_code)
            raise DownstreamServiceError(
                f"{self._name} service returned an error response",
                status_code=status_code,
                cause=exc,
            ) from exc
        except httpx.RequestError as exc:
            logger.exception("Unable to reach %s service: %s", self._name, exc)
            raise DownstreamServiceError(
                f"Unable to reach {self._name} service", status_code=None, cause=exc
            ) from exc

    async def get(
        self, path: str, params: Dict[str, Any] | None = None
    ) -> Any:
        return await self._request("GET", path, params=params)

    async def post(
        self,
        path: str,
        payload: Dict[str, Any],
        *,
        headers: Dict[str, str] | None = None,
    ) -> Any:
        return await self._request("POST", path, json=payload, headers=headers)

    async def patch(self, path: str, payload: Dict[str, Any]) -> Any:
        return await self._request("PATCH", path, json=payload)

    async def simulate_latency(self) -> None:
        """Allow services to await for latency even when mocking responses."""

        await asyncio.sleep(0)
