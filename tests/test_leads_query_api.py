from __future__ import annotations

import uuid
from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from leadflow.core.config import get_settings
from leadflow.core.database import Base, get_db
from leadflow.leads.api import get_current_user
from leadflow.leads.models import Lead
from leadflow.leads.service import ActorUser, LeadQueryService
from leadflow.main import app


BASE_TIME = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


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
def reset_settings() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_user() -> ActorUser:
        return ActorUser(user_id="SO-MGR-1", name="Manoj", permissions={"leads.read"}, correlation_id="corr-query")

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _seed(session: Session, lead_id: str, minutes: int, **fields: object) -> Lead:
    lead = Lead(lead_id=lead_id, logs=[], created_at=BASE_TIME + timedelta(minutes=minutes), **fields)
    session.add(lead)
    session.commit()
    return lead


@pytest.fixture()
def seeded(db_session: Session) -> dict[str, Lead]:
    return {
        "sourcing_owner": _seed(
            db_session,
            "LEAD-1",
            1,
            current_status="Sourcing",
            sourcing={"employeeId": "M1", "managerId": None, "logs": []},
        ),
        "assigned": _seed(
            db_session,
            "LEAD-2",
            2,
            current_status="Customer Service",
            current_assigned_employee={"employeeId": "M1", "employeeName": "Manoj"},
        ),
        "shipping_owner": _seed(
            db_session,
            "LEAD-3",
            3,
            current_status="Shipping",
            shipping={"employeeId": "M1", "logs": []},
        ),
        "unrelated": _seed(
            db_session,
            "LEAD-4",
            4,
            current_status="Sourcing",
            sourcing={"employeeId": "M2", "logs": []},
            current_assigned_employee={"employeeId": "M2", "employeeName": "Other"},
        ),
    }


def _lead_ids(response_json: dict) -> list[str]:
    return [item["leadId"] for item in response_json["leads"]]


def test_department_query_matches_record_owner_and_assignee(client: TestClient, seeded: dict[str, Lead]) -> None:
    response = client.get("/api/leads/get", params={"employeeId": "M1", "department": "sourcing"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["count"] == 2
    assert _lead_ids(body) == ["LEAD-2", "LEAD-1"]


def test_query_without_department_checks_every_record(client: TestClient, seeded: dict[str, Lead]) -> None:
    response = client.get("/api/leads/get", params={"employeeId": "M1"})

    assert response.status_code == 200
    assert _lead_ids(response.json()) == ["LEAD-3", "LEAD-2", "LEAD-1"]


def test_unknown_department_falls_back_to_every_record(client: TestClient, seeded: dict[str, Lead]) -> None:
    response = client.get("/api/leads/get", params={"employeeId": "M1", "department": "warehouse"})

    assert response.status_code == 200
    assert _lead_ids(response.json()) == ["LEAD-3", "LEAD-2", "LEAD-1"]


def test_queue_only_requires_matching_status(client: TestClient, seeded: dict[str, Lead]) -> None:
    response = client.get(
        "/api/leads/get",
        params={"employeeId": "M1", "department": "Sourcing", "queueOnly": "true"},
    )

    assert response.status_code == 200
    assert _lead_ids(response.json()) == ["LEAD-1"]


def test_queue_only_matches_label_for_camel_case_department(client: TestClient, db_session: Session) -> None:
    _seed(
        db_session,
        "LEAD-10",
        1,
        current_status="customer service",
        customer_service={"employeeId": "CS-EMP-1", "logs": []},
    )

    response = client.get(
        "/api/leads/get",
        params={"employeeId": "CS-EMP-1", "department": "customerService", "queueOnly": "true"},
    )

    assert response.status_code == 200
    assert _lead_ids(response.json()) == ["LEAD-10"]


def test_assignee_name_matches(client: TestClient, seeded: dict[str, Lead]) -> None:
    response = client.get("/api/leads/get", params={"employeeId": "Manoj"})

    assert response.status_code == 200
    assert _lead_ids(response.json()) == ["LEAD-2"]


def test_uuid_references_match_any_stored_form(client: TestClient, db_session: Session) -> None:
    employee_uuid = uuid.uuid4()
    _seed(db_session, "LEAD-20", 1, sales={"employeeId": str(employee_uuid), "logs": []})
    _seed(db_session, "LEAD-21", 2, sales={"employeeId": employee_uuid.hex, "logs": []})

    response = client.get("/api/leads/get", params={"employeeId": str(employee_uuid).upper(), "department": "sales"})

    assert response.status_code == 200
    assert _lead_ids(response.json()) == ["LEAD-21", "LEAD-20"]


def test_no_match_returns_empty_list(client: TestClient, seeded: dict[str, Lead]) -> None:
    response = client.get("/api/leads/get", params={"employeeId": "nobody"})

    assert response.status_code == 200
    assert response.json() == {"success": True, "count": 0, "leads": []}


@pytest.mark.parametrize("params", [{}, {"employeeId": ""}, {"employeeId": "   ", "department": "sales"}])
def test_employee_id_is_required(client: TestClient, params: dict[str, str]) -> None:
    response = client.get("/api/leads/get", params=params)

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "lead_query_failed"
    assert body["message"] == "employeeId is required"


def test_list_all_leads_newest_first(client: TestClient, seeded: dict[str, Lead]) -> None:
    response = client.get("/api/leads")

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 4
    assert _lead_ids(body) == ["LEAD-4", "LEAD-3", "LEAD-2", "LEAD-1"]


def test_query_does_not_mutate(client: TestClient, db_session: Session, seeded: dict[str, Lead]) -> None:
    client.get("/api/leads/get", params={"employeeId": "M1"})

    versions = db_session.scalars(select(Lead.row_version)).all()
    assert set(versions) == {1}


def test_build_employee_filter_is_usable_directly(db_session: Session, seeded: dict[str, Lead]) -> None:
    stmt = select(Lead.lead_id).where(LeadQueryService.build_employee_filter("M2", "sourcing"))
    assert db_session.scalars(stmt).all() == ["LEAD-4"]


@pytest.mark.parametrize(
    ("department", "expected_department", "expected"),
    [
        ("Customer Service", "customerService", ["sourcing", "shipping"]),
        ("sourcing", "sourcing", ["shipping"]),
        ("Shipping", "shipping", ["sales"]),
        ("sales", "sales", ["sourcing", "shipping", "sales"]),
    ],
)
def test_forward_options_endpoint(
    client: TestClient,
    department: str,
    expected_department: str,
    expected: list[str],
) -> None:
    response = client.get("/api/leads/forward-options", params={"department": department})

    assert response.status_code == 200
    assert response.json() == {"department": expected_department, "options": expected}
