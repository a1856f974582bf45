"""Request middleware: correlation IDs and per-request log context."""

import logging
import time
import uuid
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from shared.logging_config import clear_log_context, set_correlation_id


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Tags every request with a correlation ID and logs its outcome.

    Handlers bind workflow_id/run_id into the log context as they learn them;
    the context is reset here so ids never leak between requests.
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get('X-Correlation-ID') or str(uuid.uuid4())
        set_correlation_id(correlation_id)
        clear_log_context()
        started = time.monotonic()

        logging.info("Incoming request", extra={
            "method": request.method,
            "path": request.url.path,
            "client": request.client.host if request.client else "unknown"
        })

        response = await call_next(request)
        response.headers['X-Correlation-ID'] = correlation_id

        logging.info("Outgoing response", extra={
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round((time.monotonic() - started) * 1000, 1)
        })

        return response
