from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx


class JSONHTTPClient:
    """Thin JSON-over-HTTP helper shared by the REST providers.

    Failures are raised with messages that name their cause ("network error",
    "API error (401)", "could not parse") so they classify predictably.
    """

    def __init__(
        self,
        *,
        label: str,
        timeout_seconds: float,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.label = label
        self.timeout_seconds = max(3.0, float(timeout_seconds))
        self._client = client
        self._transport = transport

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            yield client

    async def post_json(
        self,
        url: str,
        *,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        try:
            async with self._session() as client:
                response = await client.post(url, json=payload, headers=headers, params=params)
        except httpx.TimeoutException as exc:
            raise RuntimeError(f"{self.label} network timeout after {self.timeout_seconds:.0f}s: {exc}") from exc
        except httpx.TransportError as exc:
            raise RuntimeError(f"{self.label} network error: {exc}") from exc

        if response.status_code >= 400:
            raise RuntimeError(f"{self.label} error ({response.status_code}): {response.text[:1000]}")

        try:
            body = response.json()
        except ValueError as exc:
            raise RuntimeError(f"{self.label} body could not be parsed: {exc}") from exc
        if not isinstance(body, dict):
            raise RuntimeError(f"{self.label} body could not be parsed as an object")
        return body

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
