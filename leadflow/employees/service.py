from __future__ import annotations

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from leadflow.employees.models import Employee
from leadflow.employees.schemas import EmployeeListResponse, EmployeeRead
from leadflow.leads.departments import department_key, parse_department


class EmployeeDirectory:
    """Read-only lookups against the employee table."""

    def list_employees(
        self,
        session: Session,
        department: str | None = None,
        employee_type: str | None = None,
    ) -> EmployeeListResponse:
        stmt: Select[tuple[Employee]] = select(Employee).where(Employee.status == "Active")
        if employee_type:
            stmt = stmt.where(func.lower(Employee.type) == employee_type.strip().lower())
        employees = list(session.scalars(stmt.order_by(Employee.name.asc())).all())

        if department:
            # Stored department labels vary in spacing and case.
            resolved = parse_department(department)
            wanted = department_key(resolved.value if resolved else department)
            employees = [item for item in employees if department_key(item.department) == wanted]

        items = [EmployeeRead.model_validate(item, from_attributes=True) for item in employees]
        return EmployeeListResponse(count=len(items), employees=items)
