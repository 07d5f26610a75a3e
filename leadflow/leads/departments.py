from __future__ import annotations

import re
from enum import StrEnum


class Department(StrEnum):
    CUSTOMER_SERVICE = "customerService"
    SOURCING = "sourcing"
    SHIPPING = "shipping"
    SALES = "sales"

    @property
    def label(self) -> str:
        return DEPARTMENT_LABELS[self]

    @property
    def column(self) -> str:
        return DEPARTMENT_COLUMNS[self]


DEPARTMENT_LABELS: dict[Department, str] = {
    Department.CUSTOMER_SERVICE: "Customer Service",
    Department.SOURCING: "Sourcing",
    Department.SHIPPING: "Shipping",
    Department.SALES: "Sales",
}

DEPARTMENT_COLUMNS: dict[Department, str] = {
    Department.CUSTOMER_SERVICE: "customer_service",
    Department.SOURCING: "sourcing",
    Department.SHIPPING: "shipping",
    Department.SALES: "sales",
}

GENERAL_LABEL = "General"

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")
_KEY_TO_DEPARTMENT = {_NON_ALNUM_RE.sub("", item.value.lower()): item for item in Department}

_FORWARD_OPTIONS: dict[Department, list[Department]] = {
    Department.CUSTOMER_SERVICE: [Department.SOURCING, Department.SHIPPING],
    Department.SOURCING: [Department.SHIPPING],
    Department.SHIPPING: [Department.SALES],
}
_DEFAULT_FORWARD_OPTIONS = [Department.SOURCING, Department.SHIPPING, Department.SALES]

_CODE_PREFIXES: dict[str, Department] = {
    "CS": Department.CUSTOMER_SERVICE,
    "SO": Department.SOURCING,
    "SH": Department.SHIPPING,
    "SA": Department.SALES,
}


def department_key(value: str | None) -> str:
    return _NON_ALNUM_RE.sub("", (value or "").lower())


def parse_department(value: str | None) -> Department | None:
    """Resolve "Customer Service", "customerService", "customer_service" and friends."""
    return _KEY_TO_DEPARTMENT.get(department_key(value))


def forward_options(department: str | None) -> list[Department]:
    resolved = parse_department(department)
    if resolved is None:
        return list(_DEFAULT_FORWARD_OPTIONS)
    return list(_FORWARD_OPTIONS.get(resolved, _DEFAULT_FORWARD_OPTIONS))


def department_from_code(code: str | None) -> Department | None:
    """Guess a department from the first two characters of an employee/manager code."""
    if not code:
        return None
    return _CODE_PREFIXES.get(code.strip().upper()[:2])
