from __future__ import annotations

from datetime import datetime, timezone

from leadflow.leads.activity import EPOCH, aggregate_lead_logs, parse_log_timestamp
from leadflow.leads.models import Lead


def _entry(comment: str, timestamp: object) -> dict[str, object]:
    return {"employeeId": "E1", "employeeName": "Asha", "timestamp": timestamp, "comment": comment}


def test_parse_log_timestamp_variants() -> None:
    assert parse_log_timestamp("2024-03-01T10:00:00Z") == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)
    assert parse_log_timestamp("2024-03-01T10:00:00") == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)
    naive = datetime(2024, 3, 1, 10, 0)
    assert parse_log_timestamp(naive).tzinfo is timezone.utc
    assert parse_log_timestamp("not a date") == EPOCH
    assert parse_log_timestamp(None) == EPOCH
    assert parse_log_timestamp(12345) == EPOCH


def test_aggregate_tags_and_sorts_newest_first() -> None:
    lead = Lead(
        lead_id="LEAD-1",
        customer_service={"logs": [_entry("cs", "2024-01-01T00:00:00Z")]},
        sourcing={"logs": [_entry("sourcing", "2024-01-03T00:00:00Z")]},
        shipping={"logs": [_entry("shipping", "2024-01-02T00:00:00Z")]},
        sales={"logs": [_entry("sales", "2024-01-05T00:00:00Z")]},
        logs=[_entry("general", "2024-01-04T00:00:00Z")],
    )

    merged = aggregate_lead_logs(lead)

    assert [item["comment"] for item in merged] == ["sales", "general", "sourcing", "shipping", "cs"]
    assert [item["department"] for item in merged] == [
        "Sales",
        "General",
        "Sourcing",
        "Shipping",
        "Customer Service",
    ]


def test_aggregate_length_is_sum_of_sources_without_dedup() -> None:
    duplicate = _entry("Forwarded to M1", "2024-02-01T00:00:00Z")
    lead = Lead(
        lead_id="LEAD-2",
        customer_service={"logs": [duplicate, _entry("second", "2024-02-02T00:00:00Z")]},
        sourcing=None,
        shipping={"employeeId": "S1"},
        sales={"logs": []},
        logs=[duplicate],
    )

    merged = aggregate_lead_logs(lead)

    assert len(merged) == 3
    assert [item["comment"] for item in merged].count("Forwarded to M1") == 2


def test_unparseable_timestamps_sort_last() -> None:
    lead = Lead(
        lead_id="LEAD-3",
        customer_service=None,
        sourcing=None,
        shipping=None,
        sales=None,
        logs=[
            _entry("broken", "yesterday"),
            _entry("missing", None),
            _entry("dated", "2023-06-01T12:00:00+00:00"),
        ],
    )

    merged = aggregate_lead_logs(lead)

    assert merged[0]["comment"] == "dated"
    assert {item["comment"] for item in merged[1:]} == {"broken", "missing"}
    assert all(item["department"] == "General" for item in merged)
