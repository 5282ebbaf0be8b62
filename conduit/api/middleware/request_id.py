"""
Per-request correlation.

Every request gets an id (the client's X-Request-ID, or a fresh UUID) that is
echoed back in the response and attached to each log line written while the
request is handled, together with the serving listener's name.
"""

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from conduit.logging_config import get_logger, listener_var, request_id_var

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
# Requests slower than this are logged at WARNING
SLOW_REQUEST_MS = 1000


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        tokens = (
            request_id_var.set(request_id),
            listener_var.set(getattr(request.app.state, "listener_name", None)),
        )
        started = time.monotonic()
        try:
            response = await call_next(request)
        finally:
            elapsed_ms = (time.monotonic() - started) * 1000
            if elapsed_ms > SLOW_REQUEST_MS:
                logger.warning(
                    "Slow request %s %s took %.0f ms",
                    request.method,
                    request.url.path,
                    elapsed_ms,
                )
            listener_var.reset(tokens[1])
            request_id_var.reset(tokens[0])

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
