from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from leadflow.context import get_correlation_id
from leadflow.core.auth import AuthUser, get_current_user as get_auth_user
from leadflow.core.database import get_db
from leadflow.leads.departments import forward_options, parse_department
from leadflow.leads.schemas import (
    ClientsResponse,
    DepartmentUpdateResponse,
    ForwardOptionsResponse,
    ForwardRequest,
    ForwardResponse,
    LeadActivityResponse,
    LeadCreate,
    LeadCreateResponse,
    LeadDeleteResponse,
    LeadQueryResponse,
    LeadRead,
    LogSearchRequest,
    LogSearchResponse,
    SalesUpdateRequest,
    ShippingUpdateRequest,
    SourcingUpdateRequest,
)
from leadflow.leads.service import ActorUser, LeadForwardService, LeadQueryService, LeadService
from leadflow.media import MediaStorage, get_media_storage

leads_router = APIRouter(prefix="/api", tags=["leads"])
logs_router = APIRouter(prefix="/api", tags=["leads.logs"])
clients_router = APIRouter(prefix="/api", tags=["leads.clients"])
lead_service = LeadService()
forward_service = LeadForwardService()
query_service = LeadQueryService()


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None
    success: bool = False


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    correlation_id = get_correlation_id() or request.headers.get("x-correlation-id")
    payload = ErrorEnvelope(
        code=code,
        message=message,
        details=details,
        correlation_id=correlation_id,
    )
    return JSONResponse(status_code=status_code, content=payload.__dict__)


def get_current_user(request: Request, auth_user: AuthUser = Depends(get_auth_user)) -> ActorUser:
    correlation_id = get_correlation_id() or request.headers.get("x-correlation-id")
    normalized_roles = {str(role).lower() for role in auth_user.roles}
    is_admin = "admin" in normalized_roles or (auth_user.role or "").lower() == "admin"

    return ActorUser(
        user_id=auth_user.sub,
        name=auth_user.name,
        role=auth_user.role,
        department=auth_user.department,
        permissions=set(auth_user.roles),
        is_admin=is_admin,
        correlation_id=correlation_id,
    )


def require_permission(user: ActorUser, permission: str) -> None:
    if permission not in user.permissions:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Missing permission: {permission}")


@leads_router.post("/leads/forward", response_model=ForwardResponse, response_model_exclude_none=True)
def forward_leads(
    request: Request,
    dto: ForwardRequest,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> ForwardResponse | JSONResponse:
    try:
        require_permission(user, "leads.forward")
        return forward_service.forward(db, user, dto)
    except HTTPException as exc:
        return error_response(
            request,
            status_code=exc.status_code,
            code="lead_forward_failed",
            message=str(exc.detail),
            details=exc.detail,
        )


@leads_router.get("/leads/get", response_model=LeadQueryResponse)
def query_leads(
    request: Request,
    employee_id: str | None = Query(default=None, alias="employeeId"),
    department: str | None = Query(default=None),
    queue_only: bool = Query(default=False, alias="queueOnly"),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> LeadQueryResponse | JSONResponse:
    try:
        require_permission(user, "leads.read")
        return query_service.query(db, employee_id, department=department, queue_only=queue_only)
    except HTTPException as exc:
        return error_response(
            request,
            status_code=exc.status_code,
            code="lead_query_failed",
            message=str(exc.detail),
            details=exc.detail,
        )


@leads_router.get("/leads/forward-options", response_model=ForwardOptionsResponse)
def get_forward_options(
    request: Request,
    department: str | None = Query(default=None),
    user: ActorUser = Depends(get_current_user),
) -> ForwardOptionsResponse | JSONResponse:
    try:
        require_permission(user, "leads.read")
        resolved = parse_department(department)
        return ForwardOptionsResponse(
            department=resolved.value if resolved else None,
            options=[item.value for item in forward_options(department)],
        )
    except HTTPException as exc:
        return error_response(
            request,
            status_code=exc.status_code,
            code="lead_forward_options_failed",
            message=str(exc.detail),
            details=exc.detail,
        )


@leads_router.get("/leads", response_model=LeadQueryResponse)
def list_leads(
    request: Request,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> LeadQueryResponse | JSONResponse:
    try:
        require_permission(user, "leads.read")
        return query_service.list_all(db)
    except HTTPException as exc:
        return error_response(
            request,
            status_code=exc.status_code,
            code="lead_list_failed",
            message=str(exc.detail),
            details=exc.detail,
        )


@leads_router.post("/leads", response_model=LeadCreateResponse, status_code=status.HTTP_201_CREATED)
def create_lead(
    request: Request,
    dto: LeadCreate,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> LeadCreateResponse | JSONResponse:
    try:
        require_permission(user, "leads.create")
        return lead_service.create_lead(db, user, dto)
    except HTTPException as exc:
        return error_response(
            request,
            status_code=exc.status_code,
            code="lead_create_failed",
            message=str(exc.detail),
            details=exc.detail,
        )


@leads_router.get("/leads/{lead_ref}", response_model=LeadRead)
def get_lead(
    request: Request,
    lead_ref: str,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> LeadRead | JSONResponse:
    try:
        require_permission(user, "leads.read")
        return lead_service.get_lead(db, lead_ref)
    except HTTPException as exc:
        return error_response(
            request,
            status_code=exc.status_code,
            code="lead_get_failed",
            message=str(exc.detail),
            details=exc.detail,
        )


@leads_router.delete("/leads/{lead_ref}", response_model=LeadDeleteResponse)
def delete_lead(
    request: Request,
    lead_ref: str,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
    storage: MediaStorage = Depends(get_media_storage),
) -> LeadDeleteResponse | JSONResponse:
    try:
        require_permission(user, "leads.delete")
        return lead_service.delete_lead(db, user, lead_ref, storage)
    except HTTPException as exc:
        return error_response(
            request,
            status_code=exc.status_code,
            code="lead_delete_failed",
            message=str(exc.detail),
            details=exc.detail,
        )


@leads_router.get("/leads/{lead_ref}/logs", response_model=LeadActivityResponse)
def get_lead_logs(
    request: Request,
    lead_ref: str,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> LeadActivityResponse | JSONResponse:
    try:
        require_permission(user, "leads.read")
        return lead_service.lead_activity(db, lead_ref)
    except HTTPException as exc:
        return error_response(
            request,
            status_code=exc.status_code,
            code="lead_logs_failed",
            message=str(exc.detail),
            details=exc.detail,
        )


@leads_router.put("/leads/{lead_ref}/sourcing", response_model=DepartmentUpdateResponse)
def update_sourcing(
    request: Request,
    lead_ref: str,
    dto: SourcingUpdateRequest,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> DepartmentUpdateResponse | JSONResponse:
    try:
        require_permission(user, "leads.update")
        return lead_service.update_sourcing(db, user, lead_ref, dto)
    except HTTPException as exc:
        return error_response(
            request,
            status_code=exc.status_code,
            code="lead_sourcing_update_failed",
            message=str(exc.detail),
            details=exc.detail,
        )


@leads_router.put("/leads/{lead_ref}/shipping", response_model=DepartmentUpdateResponse)
def update_shipping(
    request: Request,
    lead_ref: str,
    dto: ShippingUpdateRequest,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> DepartmentUpdateResponse | JSONResponse:
    try:
        require_permission(user, "leads.update")
        return lead_service.update_shipping(db, user, lead_ref, dto)
    except HTTPException as exc:
        return error_response(
            request,
            status_code=exc.status_code,
            code="lead_shipping_update_failed",
            message=str(exc.detail),
            details=exc.detail,
        )


@leads_router.post("/leads/{lead_ref}/sales", response_model=DepartmentUpdateResponse)
def update_sales(
    request: Request,
    lead_ref: str,
    dto: SalesUpdateRequest,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> DepartmentUpdateResponse | JSONResponse:
    try:
        require_permission(user, "leads.update")
        return lead_service.update_sales(db, user, lead_ref, dto)
    except HTTPException as exc:
        return error_response(
            request,
            status_code=exc.status_code,
            code="lead_sales_update_failed",
            message=str(exc.detail),
            details=exc.detail,
        )


@logs_router.post("/logs", response_model=LogSearchResponse)
def search_logs(
    request: Request,
    dto: LogSearchRequest,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> LogSearchResponse | JSONResponse:
    try:
        require_permission(user, "leads.read")
        return lead_service.search_logs(db, dto.query)
    except HTTPException as exc:
        return error_response(
            request,
            status_code=exc.status_code,
            code="lead_log_search_failed",
            message=str(exc.detail),
            details=exc.detail,
        )


@clients_router.get("/clients", response_model=ClientsResponse)
def list_clients(
    request: Request,
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> ClientsResponse | JSONResponse:
    try:
        require_permission(user, "leads.read")
        return lead_service.list_clients(db, user)
    except HTTPException as exc:
        return error_response(
            request,
            status_code=exc.status_code,
            code="client_list_failed",
            message=str(exc.detail),
            details=exc.detail,
        )
