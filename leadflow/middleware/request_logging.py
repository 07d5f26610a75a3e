from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from leadflow.metrics import observe_http_request, resolve_http_path_label

logger = logging.getLogger("leadflow.request")


def _level_for(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log and count every request once it has been routed.

    The path label is resolved after dispatch so the route template is
    known; the raw lead reference, when present, is logged as ``lead_id``.
    """

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception:
            self._record(request, status_code, started, exc_info=True)
            raise
        self._record(request, status_code, started)
        return response

    @staticmethod
    def _record(request: Request, status_code: int, started: float, exc_info: bool = False) -> None:
        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        path = resolve_http_path_label(request)
        observe_http_request(method=request.method, path=path, status=status_code, duration=duration_ms / 1000)

        extra: dict[str, object] = {
            "method": request.method,
            "path": path,
            "status_code": status_code,
            "duration_ms": duration_ms,
        }
        lead_ref = request.path_params.get("lead_ref")
        if lead_ref:
            extra["lead_id"] = lead_ref
        logger.log(
            _level_for(status_code),
            "http.error" if exc_info else "http.request",
            exc_info=exc_info,
            extra=extra,
        )
