from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)
leads_forwarded_total = Counter(
    "leads_forwarded_total",
    "Leads processed by forward requests, by outcome",
    ["outcome"],
)
lead_forward_rejections_total = Counter(
    "lead_forward_rejections_total",
    "Forward requests rejected before any lead was touched",
    ["reason"],
)
lead_media_cleanup_failures_total = Counter(
    "lead_media_cleanup_failures_total",
    "Uploaded files that could not be removed when a lead was deleted",
)

ID_LABEL = "{id}"
# Path segments that identify a single record: storage UUIDs, LEAD-<n> ids
# and plain numbers.
_ID_SEGMENT_RE = re.compile(
    r"^(?:[0-9a-fA-F]{8}-?[0-9a-fA-F]{4}-?[0-9a-fA-F]{4}-?[0-9a-fA-F]{4}-?[0-9a-fA-F]{12}|LEAD-\d+|\d+)$"
)
_TEMPLATE_PARAM_RE = re.compile(r"\{[^{}]+\}")


def path_label(path: str) -> str:
    segments = [ID_LABEL if _ID_SEGMENT_RE.match(part) else part for part in path.split("/")]
    return "/".join(segments)


def resolve_http_path_label(request: Request) -> str:
    """Label for the request path with record ids collapsed to ``{id}``.

    Routed requests use the route template; unmatched paths are collapsed
    segment by segment so metrics cardinality stays bounded.
    """
    route = request.scope.get("route")
    template = getattr(route, "path_format", None) or getattr(route, "path", None)
    if isinstance(template, str) and template:
        return _TEMPLATE_PARAM_RE.sub(ID_LABEL, template)
    return path_label(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_lead_forwarded(outcome: str, count: int = 1) -> None:
    if count > 0:
        leads_forwarded_total.labels(outcome=outcome).inc(count)


def observe_forward_rejected(reason: str) -> None:
    lead_forward_rejections_total.labels(reason=reason).inc()


def observe_media_cleanup_failure() -> None:
    lead_media_cleanup_failures_total.inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
