"""HTTP transport used by the activity source.

The transport knows nothing about activities: it issues one request with
a bounded timeout and either returns the decoded JSON body or raises a
TransportError whose ``kind`` says what went wrong.  No retries happen
here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import httpx

from engagement.core.config import ApiConfig
from engagement.core.errors import TransportError, TransportErrorKind


@dataclass(frozen=True, slots=True)
class TransportResponse:
    status: int
    data: Any


@runtime_checkable
class Transport(Protocol):
    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        timeout_ms: int | None = None,
    ) -> TransportResponse: ...


def build_http_client(api: ApiConfig) -> httpx.AsyncClient:
    headers = {"Accept": "application/json"}
    if api.api_key:
        headers["X-API-Key"] = api.api_key
    return httpx.AsyncClient(
        base_url=api.base_path,
        timeout=api.timeout_ms / 1000,
        headers=headers,
    )


class HttpxTransport:
    """Transport over a shared ``httpx.AsyncClient``.

    The client is safe to share between concurrent requests; its lifetime
    belongs to whoever created it (see ``aclose``).
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        timeout_ms: int | None = None,
    ) -> TransportResponse:
        timeout = timeout_ms / 1000 if timeout_ms is not None else httpx.USE_CLIENT_DEFAULT
        try:
            response = await self._client.request(
                method, path, params=params, timeout=timeout
            )
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise TransportError(
                TransportErrorKind.TIMEOUT, f"{method} {path} timed out"
            ) from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise TransportError(
                TransportErrorKind.HTTP_STATUS,
                f"{method} {path} returned {status} {exc.response.reason_phrase}",
                status=status,
            ) from exc
        except httpx.RequestError as exc:
            raise TransportError(
                TransportErrorKind.CONNECTION, f"{method} {path} failed: {exc}"
            ) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise TransportError(
                TransportErrorKind.MALFORMED_RESPONSE,
                f"{method} {path} returned a non-JSON body",
                status=response.status_code,
            ) from exc

        return TransportResponse(status=response.status_code, data=data)

    async def aclose(self) -> None:
        await self._client.aclose()
