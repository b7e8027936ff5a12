"""FastAPI request-forwarding proxy that keeps the AI key on the server."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

LOGGER = logging.getLogger("misfit-alliance-proxy")

DEFAULT_UPSTREAM = "https://ark.cn-beijing.volces.com/api/v3"

_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type",
}
_BODYLESS_METHODS = {"GET", "HEAD"}


@dataclass(frozen=True)
class ProxyConfig:
    base_url: str = DEFAULT_UPSTREAM
    api_key: Optional[str] = None
    timeout: float = 60.0

    @classmethod
    def from_env(cls) -> "ProxyConfig":
        return cls(
            base_url=os.getenv("AI_UPSTREAM_BASE_URL", DEFAULT_UPSTREAM),
            api_key=os.getenv("AI_UPSTREAM_API_KEY") or None,
            timeout=float(os.getenv("AI_UPSTREAM_TIMEOUT", "60")),
        )


def _target_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}".rstrip("/")


def create_app(
    config: ProxyConfig | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the proxy app; ``transport`` replaces the network in tests."""

    cfg = config or ProxyConfig.from_env()
    app = FastAPI(title="Misfit Alliance AI Proxy", version="1.0.0")

    @app.api_route(
        "/api/ai/{path:path}",
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"],
    )
    async def forward(path: str, request: Request) -> Response:
        if not cfg.api_key:
            return JSONResponse(
                status_code=500,
                content={"error": "Server missing AI_UPSTREAM_API_KEY"},
            )

        method = request.method.upper()
        payload: Any = None
        if method not in _BODYLESS_METHODS:
            raw = await request.body()
            if raw:
                try:
                    payload = json.loads(raw)
                except ValueError as exc:
                    return JSONResponse(
                        status_code=400,
                        content={"error": "Invalid JSON body", "details": str(exc)},
                    )

        target = _target_url(cfg.base_url, path)
        if request.url.query:
            target = f"{target}?{request.url.query}"
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {cfg.api_key}",
        }
        try:
            async with httpx.AsyncClient(timeout=cfg.timeout, transport=transport) as client:
                upstream = await client.request(
                    method,
                    target,
                    headers=headers,
                    content=json.dumps(payload) if payload is not None else None,
                )
        except httpx.HTTPError as exc:
            LOGGER.exception("Forwarding %s %s failed", method, target)
            return JSONResponse(
                status_code=500,
                content={"error": "Proxy error", "details": str(exc)},
                headers=_CORS_HEADERS,
            )

        LOGGER.info("%s %s -> %d", method, target, upstream.status_code)
        content_type = upstream.headers.get("content-type", "")
        if "application/json" in content_type:
            try:
                data = upstream.json()
            except ValueError:
                LOGGER.warning("Upstream declared JSON but sent an unreadable body")
            else:
                return JSONResponse(status_code=upstream.status_code, content=data, headers=_CORS_HEADERS)
        return Response(
            content=upstream.text,
            status_code=upstream.status_code,
            media_type="text/plain",
            headers=_CORS_HEADERS,
        )

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok" if cfg.api_key else "missing_key", "upstream": cfg.base_url}

    return app


app = create_app()


__all__ = ["ProxyConfig", "app", "create_app"]
