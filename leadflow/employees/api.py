from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from leadflow.core.database import get_db
from leadflow.employees.schemas import EmployeeListResponse
from leadflow.employees.service import EmployeeDirectory
from leadflow.leads.api import error_response, get_current_user, require_permission
from leadflow.leads.service import ActorUser

router = APIRouter(prefix="/api/employees", tags=["employees"])
directory = EmployeeDirectory()


@router.get("", response_model=EmployeeListResponse)
def list_employees(
    request: Request,
    department: str | None = Query(default=None),
    employee_type: str | None = Query(default=None, alias="type"),
    db: Session = Depends(get_db),
    user: ActorUser = Depends(get_current_user),
) -> EmployeeListResponse | JSONResponse:
    try:
        require_permission(user, "employees.read")
        return directory.list_employees(db, department=department, employee_type=employee_type)
    except HTTPException as exc:
        return error_response(
            request,
            status_code=exc.status_code,
            code="employee_list_failed",
            message=str(exc.detail),
            details=exc.detail,
        )
