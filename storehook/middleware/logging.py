"""
Logging middleware for request/response logging.

Logs every HTTP request with timing and tenant context and feeds the
Prometheus request metrics.
"""
import time
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from storehook.logging_config import get_logger
from storehook.routes.metrics import track_request

logger = get_logger(component="http")


def _route_template(request: Request) -> str:
    """Route path template so metric labels stay low-cardinality."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to log all HTTP requests with timing and context.

    Adds: org_id, user_id, route, duration_ms, status to every log.
    """

    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start_time
            track_request(request.method, _route_template(request), 500, duration)
            logger.error(
                "request_failed",
                route=request.url.path,
                method=request.method,
                status_code=500,
                duration_ms=round(duration * 1000, 2),
                error=str(e)
            )
            raise

        duration = time.perf_counter() - start_time
        track_request(request.method, _route_template(request), response.status_code, duration)

        # Set by the auth dependency when the route is authenticated
        org_id = getattr(request.state, "org_id", None)
        user_id = getattr(request.state, "user_id", None)

        logger.info(
            "request_completed",
            org_id=org_id,
            user_id=user_id,
            route=request.url.path,
            method=request.method,
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 2)
        )
        return response
