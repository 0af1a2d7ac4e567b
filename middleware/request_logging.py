"""
Request logging middleware. Logs method, path, status, duration and request id.
Never logs headers, body, or query params.
"""
import logging
import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from config.logging_config import request_id_var

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
_VALID_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def _incoming_id(request: Request) -> str:
    rid = request.headers.get(REQUEST_ID_HEADER, "")
    return rid if _VALID_ID.match(rid) else uuid.uuid4().hex


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each request and echo its X-Request-ID (generated when absent or malformed)."""

    async def dispatch(self, request: Request, call_next) -> Response:
        rid = _incoming_id(request)
        token = request_id_var.set(rid)
        method = request.method
        path = request.scope.get("path", "")
        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        duration_ms = (time.perf_counter() - start) * 1000
        status = response.status_code
        response.headers[REQUEST_ID_HEADER] = rid

        if status >= 500:
            log = logger.error
        elif status >= 400:
            log = logger.warning
        else:
            log = logger.info
        log(
            "request_finished method=%s path=%s status=%s duration_ms=%.1f request_id=%s",
            method, path, status, duration_ms, rid,
        )
        return response
