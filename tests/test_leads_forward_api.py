from __future__ import annotations

import uuid
from collections.abc import Generator

import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from leadflow import events
from leadflow.core.config import get_settings
from leadflow.core.database import Base, get_db
from leadflow.employees.models import Employee
from leadflow.leads.api import get_current_user
from leadflow.leads.models import Lead
from leadflow.leads.service import ActorUser
from leadflow.main import app


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clear_stubs() -> Generator[None, None, None]:
    events.published_events.clear()
    get_settings.cache_clear()
    yield
    events.published_events.clear()
    get_settings.cache_clear()


@pytest.fixture()
def permissions() -> set[str]:
    return {"leads.read", "leads.forward"}


@pytest.fixture()
def client(db_session: Session, permissions: set[str]) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_user(request: Request) -> ActorUser:
        return ActorUser(
            user_id="CS-EMP-1",
            name="Asha",
            role="Employee",
            department="Customer Service",
            permissions=permissions,
            correlation_id=getattr(request.state, "correlation_id", None),
        )

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _seed_lead(session: Session, lead_id: str, **fields: object) -> Lead:
    lead = Lead(lead_id=lead_id, logs=[], **fields)
    session.add(lead)
    session.commit()
    return lead


def test_forward_to_manager_with_status_updates_every_lead(client: TestClient, db_session: Session) -> None:
    first = _seed_lead(db_session, "LEAD-1000", current_status="Customer Service")
    second = _seed_lead(db_session, "LEAD-1001", current_status="Customer Service")

    response = client.post(
        "/api/leads/forward",
        json={"leadIds": [str(first.id), "LEAD-1001"], "target": "manager:CS-MGR-1|dept:sales"},
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Forwarded 2 lead(s)"}

    for lead in (first, second):
        db_session.refresh(lead)
        assert lead.current_assigned_employee == {"employeeId": "CS-MGR-1", "employeeName": "CS-MGR-1"}
        assert lead.current_status == "sales"
        assert len(lead.logs) == 1
        assert "Forwarded to CS-MGR-1" in lead.logs[0]["comment"]
        assert "(sales)" in lead.logs[0]["comment"]
        assert lead.row_version == 2


def test_forward_all_clears_assignment_and_keeps_status(client: TestClient, db_session: Session) -> None:
    lead = _seed_lead(
        db_session,
        "LEAD-2000",
        current_status="Sourcing",
        current_assigned_employee={"employeeId": "EMP-9", "employeeName": "Nina"},
    )

    response = client.post("/api/leads/forward", json={"leadIds": [lead.lead_id], "target": "all"})

    assert response.status_code == 200
    db_session.refresh(lead)
    assert lead.current_assigned_employee is None
    assert lead.current_status == "Sourcing"
    assert lead.logs[-1]["comment"] == "Unassigned lead"
    assert lead.logs[-1]["employeeId"] == "system"


def test_forward_employee_without_dept_keeps_status(client: TestClient, db_session: Session) -> None:
    lead = _seed_lead(db_session, "LEAD-2100", current_status="Shipping")

    response = client.post("/api/leads/forward", json={"leadIds": [lead.lead_id], "target": "employee:SH-EMP-4"})

    assert response.status_code == 200
    db_session.refresh(lead)
    assert lead.current_assigned_employee["employeeId"] == "SH-EMP-4"
    assert lead.current_status == "Shipping"
    assert lead.logs[-1]["comment"] == "Forwarded to SH-EMP-4"


def test_invalid_target_touches_nothing(client: TestClient, db_session: Session) -> None:
    lead = _seed_lead(db_session, "LEAD-3000", current_status="Customer Service")

    response = client.post("/api/leads/forward", json={"leadIds": [lead.lead_id], "target": "team:7"})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "lead_forward_failed"
    assert body["message"].startswith("Invalid target format")
    assert set(body) == {"success", "message", "code", "details", "correlation_id"}

    db_session.refresh(lead)
    assert lead.logs == []
    assert lead.current_assigned_employee is None
    assert lead.row_version == 1
    assert not [item for item in events.published_events if item["event_type"] == "lead.forwarded"]


def test_unknown_leads_are_skipped(client: TestClient, db_session: Session) -> None:
    lead = _seed_lead(db_session, "LEAD-4000")

    response = client.post(
        "/api/leads/forward",
        json={"leadIds": ["LEAD-404", str(uuid.uuid4()), "  ", lead.lead_id], "target": "employee:E7"},
    )

    assert response.status_code == 200
    assert response.json()["message"] == "Forwarded 1 lead(s)"
    db_session.refresh(lead)
    assert lead.current_assigned_employee["employeeId"] == "E7"


def test_assignee_name_is_the_target_id_and_request_actor_is_logged(client: TestClient, db_session: Session) -> None:
    db_session.add(
        Employee(emp_id="SO-MGR-1", name="Meera", phone="9000000001", type="Manager", department="Sourcing")
    )
    db_session.commit()
    lead = _seed_lead(db_session, "LEAD-5000", current_status="Customer Service")

    response = client.post(
        "/api/leads/forward",
        json={
            "leadIds": [lead.lead_id],
            "target": "manager:SO-MGR-1|dept:Sourcing",
            "actor": {"employeeId": "CS-EMP-1", "employeeName": "Asha"},
        },
    )

    assert response.status_code == 200
    db_session.refresh(lead)
    assert lead.current_assigned_employee == {"employeeId": "SO-MGR-1", "employeeName": "SO-MGR-1"}
    entry = lead.logs[-1]
    assert entry["comment"] == "Forwarded to SO-MGR-1 (Sourcing)"
    assert entry["employeeId"] == "CS-EMP-1"
    assert entry["employeeName"] == "Asha"


def test_uuid_assignee_is_stored_as_given(client: TestClient, db_session: Session) -> None:
    lead = _seed_lead(db_session, "LEAD-5100")
    raw_id = "550E8400-E29B-41D4-A716-446655440000"

    response = client.post("/api/leads/forward", json={"leadIds": [lead.lead_id], "target": f"employee:{raw_id}"})

    assert response.status_code == 200
    db_session.refresh(lead)
    assert lead.current_assigned_employee == {"employeeId": raw_id, "employeeName": raw_id}
    assert lead.logs[-1]["comment"] == f"Forwarded to {raw_id}"

    found = client.get("/api/leads/get", params={"employeeId": raw_id.lower()})
    assert [item["leadId"] for item in found.json()["leads"]] == ["LEAD-5100"]


@pytest.mark.parametrize("target", ["manager:M5|note:urgent", "manager:M5|dept:"])
def test_unrecognised_suffix_assigns_without_status_change(
    client: TestClient,
    db_session: Session,
    target: str,
) -> None:
    lead = _seed_lead(db_session, "LEAD-5200", current_status="Shipping")

    response = client.post("/api/leads/forward", json={"leadIds": [lead.lead_id], "target": target})

    assert response.status_code == 200
    db_session.refresh(lead)
    assert lead.current_assigned_employee["employeeId"] == "M5"
    assert lead.current_status == "Shipping"
    assert lead.logs[-1]["comment"] == "Forwarded to M5"


def test_forward_publishes_event_with_correlation_id(client: TestClient, db_session: Session) -> None:
    lead = _seed_lead(db_session, "LEAD-6000")

    response = client.post(
        "/api/leads/forward",
        json={"leadIds": [lead.lead_id], "target": "manager:M1"},
        headers={"X-Correlation-Id": "corr-forward-1"},
    )

    assert response.status_code == 200
    forwarded = [item for item in events.published_events if item["event_type"] == "lead.forwarded"]
    assert forwarded
    assert forwarded[-1]["correlation_id"] == "corr-forward-1"
    assert forwarded[-1]["payload"]["lead_ids"] == ["LEAD-6000"]
    assert forwarded[-1]["payload"]["target"] == "manager:M1"


@pytest.mark.parametrize(
    "payload",
    [
        {"target": "all"},
        {"leadIds": [], "target": "all"},
        {"leadIds": ["LEAD-1"]},
        {"leadIds": ["LEAD-1"], "target": ""},
        {"leadIds": "LEAD-1", "target": "all"},
    ],
)
def test_invalid_payloads_return_400(client: TestClient, payload: dict[str, object]) -> None:
    response = client.post("/api/leads/forward", json=payload)
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_malformed_json_returns_400(client: TestClient) -> None:
    response = client.post(
        "/api/leads/forward",
        content="{not json",
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid JSON"


@pytest.mark.parametrize("permissions", [{"leads.read"}])
def test_forward_requires_permission(client: TestClient, db_session: Session, permissions: set[str]) -> None:
    lead = _seed_lead(db_session, "LEAD-7000")

    response = client.post("/api/leads/forward", json={"leadIds": [lead.lead_id], "target": "all"})

    assert response.status_code == 403
    assert response.json()["message"] == "Missing permission: leads.forward"


def test_storage_failure_attempts_all_and_returns_500(
    client: TestClient,
    db_session: Session,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    failing = _seed_lead(db_session, "LEAD-8000")
    healthy = _seed_lead(db_session, "LEAD-8001")
    original_commit = db_session.commit
    calls = {"count": 0}

    def flaky_commit() -> None:
        calls["count"] += 1
        if calls["count"] == 1:
            raise OperationalError("UPDATE lead", {}, Exception("database is locked"))
        original_commit()

    monkeypatch.setattr(db_session, "commit", flaky_commit)

    response = client.post(
        "/api/leads/forward",
        json={"leadIds": [failing.lead_id, healthy.lead_id], "target": "employee:E1"},
    )

    assert response.status_code == 500
    assert response.json()["message"] == "Failed to forward leads"
    assert calls["count"] == 2

    db_session.refresh(failing)
    db_session.refresh(healthy)
    assert failing.logs == []
    assert healthy.current_assigned_employee["employeeId"] == "E1"
