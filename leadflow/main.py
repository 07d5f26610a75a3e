from contextlib import asynccontextmanager
import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from sqlalchemy.exc import SQLAlchemyError

from leadflow.api.routes import router as api_router
from leadflow.core.config import get_settings
from leadflow.core.events import InternalEvent, event_bus
from leadflow.leads.api import error_response
from leadflow.logging import configure_logging
from leadflow.middleware.correlation_id import CorrelationIdMiddleware
from leadflow.middleware.request_logging import RequestLoggingMiddleware
from leadflow.otel import get_fastapi_server_request_hook, setup_otel


settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger("leadflow.lifecycle")
_subscriptions_registered = False

_lead_event_types = [
    "lead.created",
    "lead.forwarded",
    "lead.department_updated",
    "lead.deleted",
]


def _on_system_started(event: InternalEvent) -> None:
    logger.info("system_event", extra={"outcome": event.name})


def _on_lead_event(event: InternalEvent) -> None:
    payload: dict[str, Any] = event.payload.get("payload", {}) if isinstance(event.payload, dict) else {}
    lead_id = payload.get("lead_id")
    lead_ids = payload.get("lead_ids")
    logger.debug(
        "lead_event",
        extra={
            "outcome": event.name,
            "lead_id": lead_id if isinstance(lead_id, str) else None,
            "lead_count": len(lead_ids) if isinstance(lead_ids, list) else None,
        },
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _subscriptions_registered
    if not _subscriptions_registered:
        event_bus.subscribe("system.started", _on_system_started)
        for event_name in _lead_event_types:
            event_bus.subscribe(event_name, _on_lead_event)
        _subscriptions_registered = True
    event_bus.publish("system.started", {"service": settings.app_name})
    yield


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = jsonable_encoder(exc.errors())
    malformed = any(item.get("type") == "json_invalid" for item in errors)
    return error_response(
        request,
        status_code=status.HTTP_400_BAD_REQUEST,
        code="invalid_json" if malformed else "validation_error",
        message="Invalid JSON" if malformed else "Invalid request",
        details=errors,
    )


@app.exception_handler(SQLAlchemyError)
async def storage_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("storage_error", extra={"path": request.url.path, "error": str(exc)})
    return error_response(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code="internal_error",
        message="Internal server error",
    )


setup_otel(settings)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
