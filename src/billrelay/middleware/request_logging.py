import time
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

log = structlog.get_logger()

SKIP_PATHS = {"/health"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs one ``http_request`` line per request when the response is produced.

    A short request id is bound into structlog's contextvars so every log
    line emitted while handling the request carries it.
    """

    async def dispatch(self, request: Request, call_next):
        if request.url.path in SKIP_PATHS:
            return await call_next(request)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=uuid.uuid4().hex[:12])
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            log.error(
                "http_request",
                method=request.method,
                path=request.url.path,
                status_code=500,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
                client=request.client.host if request.client else None,
            )
            raise

        log.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
            client=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )
        return response
