from __future__ import annotations

import re
import uuid

from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from leadflow.context import reset_correlation_id, set_correlation_id
from leadflow.core.config import get_settings

CORRELATION_HEADER = "x-correlation-id"
_ALLOWED_RE = re.compile(r"^[A-Za-z0-9._:\-]+$")


def accept_correlation_id(raw: str | None, max_length: int) -> str:
    """Reuse a caller-supplied id when it is short and header-safe, otherwise mint one."""
    value = (raw or "").strip()
    if value and len(value) <= max_length and _ALLOWED_RE.match(value):
        return value
    return str(uuid.uuid4())


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        correlation_id = accept_correlation_id(
            request.headers.get(CORRELATION_HEADER),
            get_settings().correlation_id_max_length,
        )
        request.state.correlation_id = correlation_id

        span = trace.get_current_span()
        if span.is_recording():
            span.set_attribute("correlation_id", correlation_id)

        token = set_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            reset_correlation_id(token)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response
