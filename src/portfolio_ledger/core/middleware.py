"""Request logging middleware."""

import logging
import time
import uuid
from collections.abc import Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request and its outcome with timing.

    Adds ``X-Process-Time`` (seconds) and ``X-Request-ID`` to every response.
    An incoming ``X-Request-ID`` is echoed back; otherwise one is generated.
    Health checks and API docs are served without logging.
    """

    def __init__(self, app: ASGIApp) -> None:
        super().__init__(app)
        self._quiet_prefixes = ("/health", "/docs", "/openapi.json", "/redoc")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        quiet = request.url.path.startswith(self._quiet_prefixes)

        if not quiet:
            client_host = request.client.host if request.client else "unknown"
            logger.info(f"→ {request.method} {request.url.path} from {client_host} [{request_id}]")

        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start

        if not quiet:
            log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
            logger.log(
                log_level,
                f"← {request.method} {request.url.path} - {response.status_code} "
                f"({duration:.3f}s) [{request_id}]",
            )

        response.headers["X-Process-Time"] = f"{duration:.3f}"
        response.headers["X-Request-ID"] = request_id
        return response
