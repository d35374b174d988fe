# src/tradearena/middleware/logging.py

"""Request/response logging middleware for the TradeArena API."""

import logging
import time
import uuid
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("tradearena.api")

# Polled constantly by load balancers and clients; logged at debug only
QUIET_PATHS = frozenset({"/health"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every HTTP request with its outcome and timing.

    Each request gets a short ID, echoed back in the X-Request-ID header, so
    client reports can be matched with server logs. Only the completion line
    is logged at info level.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
        path = request.url.path
        level = logging.DEBUG if path in QUIET_PATHS else logging.INFO
        started = time.perf_counter()

        logger.debug(
            "[%s] %s %s%s",
            request_id,
            request.method,
            path,
            f"?{request.query_params}" if request.query_params else "",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": path,
                "client_ip": request.client.host if request.client else "unknown",
            },
        )

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.error(
                "[%s] %s %s failed after %.2fms: %s",
                request_id,
                request.method,
                path,
                elapsed_ms,
                e,
                extra={
                    "request_id": request_id,
                    "path": path,
                    "duration_ms": round(elapsed_ms, 2),
                },
                exc_info=True,
            )
            raise

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.log(
            logging.WARNING if response.status_code >= 500 else level,
            "[%s] %s %s -> %d (%.2fms)",
            request_id,
            request.method,
            path,
            response.status_code,
            elapsed_ms,
            extra={
                "request_id": request_id,
                "status_code": response.status_code,
                "duration_ms": round(elapsed_ms, 2),
            },
        )
        response.headers["X-Request-ID"] = request_id
        return response  # type: ignore[no-any-return]
