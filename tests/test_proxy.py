"""Tests for the AI request-forwarding proxy."""
from __future__ import annotations

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from misfit_alliance.proxy import ProxyConfig, create_app

UPSTREAM = "https://upstream.test/api/v3"


def _client(handler, api_key="secret"):
    config = ProxyConfig(base_url=UPSTREAM, api_key=api_key, timeout=5)
    return TestClient(create_app(config, transport=httpx.MockTransport(handler)))


def test_missing_key_is_a_server_error():
    client = _client(lambda request: httpx.Response(200), api_key=None)
    response = client.post("/api/ai/chat/completions", json={"model": "m"})
    assert response.status_code == 500
    assert response.json() == {"error": "Server missing AI_UPSTREAM_API_KEY"}


def test_json_request_is_forwarded_with_auth():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["method"] = request.method
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": "cmpl-1", "choices": []})

    client = _client(handler)
    response = client.post("/api/ai/chat/completions", json={"model": "m", "messages": []})

    assert seen == {
        "url": f"{UPSTREAM}/chat/completions",
        "method": "POST",
        "auth": "Bearer secret",
        "body": {"model": "m", "messages": []},
    }
    assert response.status_code == 201
    assert response.json() == {"id": "cmpl-1", "choices": []}
    assert response.headers["access-control-allow-origin"] == "*"


def test_get_requests_send_no_body():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["content"] = request.content
        return httpx.Response(200, json={"data": []})

    response = _client(handler).get("/api/ai/models")
    assert response.status_code == 200
    assert seen == {"method": "GET", "content": b""}


def test_query_string_is_forwarded():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        return httpx.Response(200, json={"data": []})

    response = _client(handler).get("/api/ai/models?limit=5&order=desc")
    assert response.status_code == 200
    assert seen["url"] == f"{UPSTREAM}/models?limit=5&order=desc"


def test_invalid_json_body_rejected():
    calls = []
    client = _client(lambda request: calls.append(request) or httpx.Response(200))
    response = client.post(
        "/api/ai/chat/completions",
        content=b"{not json",
        headers={"content-type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid JSON body"
    assert calls == []


def test_non_json_upstream_passed_as_text():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="upstream busy", headers={"content-type": "text/plain"})

    response = _client(handler).post("/api/ai/chat/completions", json={})
    assert response.status_code == 503
    assert response.text == "upstream busy"
    assert response.headers["access-control-allow-origin"] == "*"


def test_transport_failure_reports_proxy_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    response = _client(handler).post("/api/ai/chat/completions", json={})
    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Proxy error"
    assert "connection refused" in body["details"]


@pytest.mark.parametrize("env_key, expected", [("abc", "ok"), ("", "missing_key")])
def test_config_from_env(monkeypatch, env_key, expected):
    monkeypatch.setenv("AI_UPSTREAM_BASE_URL", "https://example.test/v1")
    monkeypatch.setenv("AI_UPSTREAM_API_KEY", env_key)
    monkeypatch.setenv("AI_UPSTREAM_TIMEOUT", "12.5")
    config = ProxyConfig.from_env()

    assert config.base_url == "https://example.test/v1"
    assert config.timeout == pytest.approx(12.5)
    health = TestClient(create_app(config)).get("/health").json()
    assert health["status"] == expected
