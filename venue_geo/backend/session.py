"""Factories for httpx-backed sessions against the venue backend."""
from __future__ import annotations

import contextlib
from typing import Any, AsyncIterator, Dict, Mapping, Optional

import httpx
from pydantic import BaseModel, Field


class BackendSettings(BaseModel):
    """Validated `[backend]` section of the settings file."""

    base_url: str = "http://localhost:3010"
    app_id: str = "1"
    timeout_seconds: float = Field(default=10.0, gt=0)
    max_connections: int = Field(default=4, gt=0)
    max_attempts: int = Field(default=4, gt=0)
    user_agent: str = "venue-geo/1.0"
    venue_path: str = "/api/venues/{venue_id}"
    nearest_city_path: str = "/api/venues/nearest-city"
    city_path: str = "/api/geo-hierarchy/cities/{city_id}"

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> "BackendSettings":
        return cls(**dict(settings.get("backend", {})))


class BackendSession:
    """Thin wrapper so tests can substitute the transport."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        kwargs: Dict[str, Any] = {"params": params, "content": content, "headers": headers}
        if timeout is not None:
            kwargs["timeout"] = timeout
        return await self._client.request(method, url, **kwargs)


@contextlib.asynccontextmanager
async def create_backend_session(
    settings: BackendSettings,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AsyncIterator[BackendSession]:
    """Yield a configured `BackendSession` for the duration of the context."""
    headers = {"User-Agent": settings.user_agent, "Accept": "application/json"}
    limits = httpx.Limits(
        max_connections=settings.max_connections,
        max_keepalive_connections=settings.max_connections,
    )
    async with httpx.AsyncClient(
        base_url=settings.base_url,
        headers=headers,
        limits=limits,
        timeout=settings.timeout_seconds,
        transport=transport,
    ) as client:
        yield BackendSession(client)
