from __future__ import annotations

from uuid import UUID

from leadflow.leads.schemas import CamelModel


class EmployeeRead(CamelModel):
    id: UUID
    emp_id: str
    name: str
    phone: str
    type: str
    role: str | None
    department: str | None
    status: str
    created_by_manager_id: str | None


class EmployeeListResponse(CamelModel):
    success: bool = True
    count: int
    employees: list[EmployeeRead]
