"""Async HTTP client for the remote tutor inference endpoint."""
from __future__ import annotations

import logging
import os
from typing import Any, Mapping, Protocol

import httpx

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "http://127.0.0.1:8000"
_DEFAULT_TIMEOUT = 60.0


class ExchangeError(RuntimeError):
    """The exchange with the endpoint could not complete or was malformed."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class QueryRejectedError(Exception):
    """The endpoint declined the query as out of scope."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class SupportsExchange(Protocol):
    """Subset of :class:`EndpointClient` relied on by the orchestrator."""

    async def exchange(self, query: str, course_id: str, user_id: str) -> Mapping[str, Any]:
        """Send ``query`` and return the successful response payload."""


class EndpointClient:
    """Minimal JSON client for the ``/query`` and ``/health`` routes."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or os.getenv("GPTUTOR_API_URL") or _DEFAULT_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else _env_float("GPTUTOR_TIMEOUT", _DEFAULT_TIMEOUT)
        self._transport = transport

    async def exchange(self, query: str, course_id: str, user_id: str) -> Mapping[str, Any]:
        payload = {
            "query": query,
            "course_id": course_id,
            "user_id": user_id,
        }
        data = await self._request("POST", "query", json=payload)

        status = data.get("status")
        if status == "success":
            return data
        if status == "rejected":
            message = str(data.get("message") or "Query was rejected by the tutor.")
            raise QueryRejectedError(message)
        raise ExchangeError(str(data.get("error") or f"Unexpected response status: {status!r}"))

    async def health(self) -> Mapping[str, Any]:
        return await self._request("GET", "health")

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(
                    method,
                    url,
                    headers={"Accept": "application/json"},
                    **kwargs,
                )
        except httpx.HTTPError as exc:
            logger.warning("Endpoint request failed: %s", exc, extra={"event": "client.transport_error"})
            raise ExchangeError(f"{method} {url} failed: {exc}") from exc

        if response.is_error:
            raise ExchangeError(
                f"HTTP {response.status_code}: {response.reason_phrase} - {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            content_type = response.headers.get("content-type", "")
            raise ExchangeError(
                f"Expected JSON but got {content_type or 'unknown content'}: {response.text[:200]}",
                status_code=response.status_code,
            ) from exc

        if not isinstance(data, dict):
            raise ExchangeError("Endpoint response JSON must be an object", status_code=response.status_code)
        return data


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid %s value %r; using %s", name, raw, default, extra={"event": "config.invalid"})
        return default


__all__ = [
    "EndpointClient",
    "ExchangeError",
    "QueryRejectedError",
    "SupportsExchange",
]
