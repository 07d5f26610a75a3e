"""Canonical identifier handling for employee and lead references.

Historical records reference employees either by a raw code string or by a
storage UUID, in whatever textual form the writer happened to use. Readers
match every candidate form.
"""

from __future__ import annotations

import uuid

LEAD_ID_PREFIX = "LEAD-"


def _as_uuid(value: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(value)
    except ValueError:
        return None


def normalize_identifier(value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        return str(value)
    text = str(value).strip()
    if not text:
        return None
    parsed = _as_uuid(text)
    if parsed is not None:
        return str(parsed)
    return text


def identifier_candidates(value: object) -> list[str]:
    """All stored forms a reference may take, canonical form first."""
    canonical = normalize_identifier(value)
    if canonical is None:
        return []
    candidates = [canonical]
    raw = value.strip() if isinstance(value, str) else str(value)
    if raw and raw not in candidates:
        candidates.append(raw)
    parsed = _as_uuid(canonical)
    if parsed is not None:
        for form in (parsed.hex, str(parsed).upper()):
            if form not in candidates:
                candidates.append(form)
    return candidates


def parse_storage_id(value: str) -> uuid.UUID | None:
    return _as_uuid(value.strip()) if value else None

