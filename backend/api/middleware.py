"""
One log line per request.

The line names the route and, for a rejected request, the ledger error
code the handler answered with (``request.state.error_code``). Query
strings and bodies are never logged.
"""
import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)


def _level_for(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - start) * 1000, 1)

        fields = {
            "method": request.method,
            "path": request.scope.get("path", ""),
            "status": response.status_code,
            "duration_ms": duration_ms,
            "code": getattr(request.state, "error_code", None),
        }
        if fields["code"]:
            message = "%(method)s %(path)s -> %(status)s %(code)s (%(duration_ms)sms)"
        else:
            message = "%(method)s %(path)s -> %(status)s (%(duration_ms)sms)"
        logger.log(_level_for(response.status_code), message % fields, extra=fields)
        return response
