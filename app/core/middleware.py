"""Request middleware for correlation and timing."""

import time
import uuid
from collections.abc import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.logging import get_logger, request_id_ctx

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
PROCESS_TIME_HEADER = "X-Process-Time-Ms"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Inject a request ID into the log context and echo it on the response.

    Also reports handler time in milliseconds. For streamed responses (CSV
    export) this covers the time to the first chunk, not the whole body.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Process request with correlation ID.

        Args:
            request: Incoming HTTP request.
            call_next: Next middleware/handler in chain.

        Returns:
            Response with request ID and process time headers.
        """
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = request_id_ctx.set(request_id)
        started = time.perf_counter()

        try:
            logger.info(
                "http.request_started",
                method=request.method,
                path=str(request.url.path),
                query=str(request.url.query) if request.url.query else None,
            )

            response = await call_next(request)
            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

            logger.info(
                "http.request_completed",
                method=request.method,
                path=str(request.url.path),
                status_code=response.status_code,
                duration_ms=elapsed_ms,
            )

            response.headers[REQUEST_ID_HEADER] = request_id
            response.headers[PROCESS_TIME_HEADER] = str(elapsed_ms)
            return response
        finally:
            request_id_ctx.reset(token)
