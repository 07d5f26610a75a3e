from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from leadflow.context import get_correlation_id

# Extra keys copied into the "fields" object; anything else passed via
# ``extra`` stays out of the log line.
STRUCTURED_FIELDS = frozenset(
    {
        "method",
        "path",
        "status_code",
        "duration_ms",
        "lead_id",
        "lead_count",
        "target",
        "department",
        "outcome",
        "url",
        "error",
    }
)
MAX_ERROR_LENGTH = 500

_configured = False
_default_factory = logging.getLogRecordFactory()


def _with_correlation_id(record: logging.LogRecord) -> logging.LogRecord:
    if not getattr(record, "correlation_id", None):
        record.correlation_id = get_correlation_id()
    return record


class CorrelationIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        _with_correlation_id(record)
        return True


def _record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
    return _with_correlation_id(_default_factory(*args, **kwargs))


def structured_fields(record: logging.LogRecord) -> dict[str, Any]:
    fields = {key: value for key, value in vars(record).items() if key in STRUCTURED_FIELDS}
    error = fields.get("error")
    if isinstance(error, str) and len(error) > MAX_ERROR_LENGTH:
        fields["error"] = error[:MAX_ERROR_LENGTH]
    return fields


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line: envelope keys plus a ``fields`` map."""

    def format(self, record: logging.LogRecord) -> str:
        fields = structured_fields(record)
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        payload = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None),
            "fields": fields,
        }
        return json.dumps(payload, default=str)


def configure_logging(level_name: str = "INFO") -> None:
    global _configured

    if _configured:
        return

    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JsonLogFormatter())
    handler.addFilter(CorrelationIdFilter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level)
    root_logger.addHandler(handler)
    logging.setLogRecordFactory(_record_factory)
    _configured = True
