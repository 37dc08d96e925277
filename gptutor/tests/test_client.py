"""Tests for the async endpoint client using httpx mock transports."""
from __future__ import annotations

import asyncio
import json
from typing import Callable

import httpx
import pytest

from gptutor.services.client import EndpointClient, ExchangeError, QueryRejectedError


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> EndpointClient:
    return EndpointClient("http://tutor.test/", timeout=5, transport=httpx.MockTransport(handler))


def test_exchange_posts_query_and_returns_success_payload() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"status": "success", "data": {"answer": "ok"}})

    result = asyncio.run(_client(handler).exchange("What is BATNA?", "decision", "learner-1"))

    assert result["data"] == {"answer": "ok"}
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "http://tutor.test/query"
    assert json.loads(request.content) == {
        "query": "What is BATNA?",
        "course_id": "decision",
        "user_id": "learner-1",
    }


def test_rejected_status_raises_query_rejected_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "rejected", "message": "Please ask about the course."})

    with pytest.raises(QueryRejectedError) as excinfo:
        asyncio.run(_client(handler).exchange("Best pizza?", "decision", "u"))

    assert excinfo.value.message == "Please ask about the course."


@pytest.mark.parametrize(
    ("response", "status_code"),
    [
        (httpx.Response(500, text="boom"), 500),
        (httpx.Response(200, text="<html>not json</html>"), 200),
        (httpx.Response(200, json=["not", "an", "object"]), 200),
        (httpx.Response(200, json={"status": "error", "error": "model overloaded"}), None),
    ],
)
def test_unusable_responses_raise_exchange_error(response: httpx.Response, status_code: int | None) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return response

    with pytest.raises(ExchangeError) as excinfo:
        asyncio.run(_client(handler).exchange("q", "decision", "u"))

    assert excinfo.value.status_code == status_code


def test_transport_errors_are_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ExchangeError, match="connection refused"):
        asyncio.run(_client(handler).exchange("q", "decision", "u"))


def test_health_uses_get() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "GET"
        assert request.url.path == "/health"
        return httpx.Response(200, json={"status": "ok"})

    assert asyncio.run(_client(handler).health()) == {"status": "ok"}


def test_client_reads_environment_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GPTUTOR_API_URL", "https://tutor.example.com/")
    monkeypatch.setenv("GPTUTOR_TIMEOUT", "not-a-number")

    client = EndpointClient()

    assert client.base_url == "https://tutor.example.com"
    assert client.timeout == 60.0


def test_explicit_base_url_wins_over_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GPTUTOR_API_URL", "https://ignored.example.com")
    monkeypatch.setenv("GPTUTOR_TIMEOUT", "12.5")

    client = EndpointClient("http://localhost:9000")

    assert client.base_url == "http://localhost:9000"
    assert client.timeout == 12.5
