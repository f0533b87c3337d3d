"""
Request Monitoring Middleware

Feeds the duration and status of every request into the system monitor.
"""

import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from learnflow.common.logger import app_logger

logger = app_logger.getChild("api.middleware")

_MODULE_PREFIXES = (
    ("/api/telemetry", "telemetry"),
    ("/api/progress", "progress"),
    ("/api/dashboard", "dashboard"),
    ("/health", "health"),
)


def module_for_path(path: str) -> str:
    for prefix, module in _MODULE_PREFIXES:
        if path.startswith(prefix):
            return module
    return "other"


class RequestMonitoringMiddleware(BaseHTTPMiddleware):
    """Middleware that times requests for the system-health views."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000.0
            container = getattr(request.app.state, "container", None)
            if container is not None:
                container.monitor.record_request(duration_ms, status_code, module_for_path(request.url.path))
            logger.debug(f"{request.method} {request.url.path} -> {status_code} in {duration_ms:.1f}ms")
