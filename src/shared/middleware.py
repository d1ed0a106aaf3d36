# src/shared/middleware.py
from __future__ import annotations

import time

from fastapi import Request
from starlette.types import ASGIApp, Receive, Scope, Send

from src.shared.logging import bind_request_context, clear_request_context, get_logger, set_correlation_id

logger = get_logger("http")

CORRELATION_HEADER = "X-Correlation-Id"


class CorrelationIdMiddleware:
    """
    Ensures every request has a correlation id.
    - Reads X-Correlation-Id if provided, otherwise generates one.
    - Exposes request.state.correlation_id and binds it into the log context.
    - Echoes X-Correlation-Id in response headers.
    - Logs completion with method, path, status, duration_ms.
    """
    def __init__(self, app: ASGIApp, header_name: str = CORRELATION_HEADER):
        self.app = app
        self.header_name = header_name

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive=receive)
        clear_request_context()
        corr = set_correlation_id(request.headers.get(self.header_name))
        request.state.correlation_id = corr
        bind_request_context(
            path=scope.get("path"),
            method=scope.get("method"),
            tenant_id=request.headers.get("X-Tenant-Id"),
        )
        start = time.perf_counter()
        status_holder = {"status": 500}

        async def send_wrapper(message):
            if message.get("type") == "http.response.start":
                status_holder["status"] = message.get("status")
                headers = list(message.get("headers") or [])
                headers.append((self.header_name.encode("latin-1"), corr.encode("latin-1")))
                message["headers"] = headers
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            logger.info(
                "HttpRequestCompleted",
                status=status_holder["status"],
                duration_ms=int((time.perf_counter() - start) * 1000),
            )
            clear_request_context()
