"""
Request/response logging middleware.
"""

import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("plugin_pipeline.api.requests")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request with its status and duration."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = uuid.uuid4().hex[:8]
        start_time = time.perf_counter()

        logger.info(f"[{request_id}] {request.method} {request.url.path}")
        request.state.request_id = request_id

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start_time
            logger.error(
                f"[{request_id}] ERROR: {type(e).__name__}: {e} "
                f"({duration*1000:.2f}ms)"
            )
            raise

        duration = time.perf_counter() - start_time
        logger.info(f"[{request_id}] {response.status_code} ({duration*1000:.2f}ms)")
        response.headers["X-Request-ID"] = request_id
        return response
