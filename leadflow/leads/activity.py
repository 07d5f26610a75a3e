from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from leadflow.leads.departments import GENERAL_LABEL, Department
from leadflow.leads.models import Lead

EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


def parse_log_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return EPOCH
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed
    return EPOCH


def _section_logs(section: dict[str, Any] | None) -> list[dict[str, Any]]:
    if not isinstance(section, dict):
        return []
    logs = section.get("logs")
    return [entry for entry in logs if isinstance(entry, dict)] if isinstance(logs, list) else []


def aggregate_lead_logs(lead: Lead) -> list[dict[str, Any]]:
    """Merge the four department logs and the lead-level log, newest first.

    Nothing is deduplicated; an action recorded in two lists appears twice.
    """
    merged: list[dict[str, Any]] = []
    for department in Department:
        section = getattr(lead, department.column)
        for entry in _section_logs(section):
            merged.append({**entry, "department": department.label})
    for entry in lead.logs or []:
        if isinstance(entry, dict):
            merged.append({**entry, "department": GENERAL_LABEL})

    return sorted(merged, key=lambda item: parse_log_timestamp(item.get("timestamp")), reverse=True)
