"""Forward target grammar.

    all
    manager:<id>[|dept:<status>]
    employee:<id>[|dept:<status>]

Keywords are case-sensitive. The status after ``dept:`` is kept verbatim;
a suffix other than ``dept:<status>`` is ignored.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

UNASSIGN_KEYWORD = "all"
MANAGER_PREFIX = "manager:"
EMPLOYEE_PREFIX = "employee:"
DEPT_PREFIX = "dept:"


class InvalidForwardTargetError(ValueError):
    def __init__(self, target: str, reason: str) -> None:
        self.target = target
        self.reason = reason
        super().__init__(f"Invalid target format: {reason}")


@dataclass(frozen=True, slots=True)
class Unassign:
    kind: Literal["unassign"] = "unassign"

    @property
    def status(self) -> str | None:
        return None


@dataclass(frozen=True, slots=True)
class AssignManager:
    assignee_id: str
    status: str | None = None
    kind: Literal["manager"] = "manager"


@dataclass(frozen=True, slots=True)
class AssignEmployee:
    assignee_id: str
    status: str | None = None
    kind: Literal["employee"] = "employee"


ForwardTarget = Unassign | AssignManager | AssignEmployee


def parse_forward_target(raw: str) -> ForwardTarget:
    target = raw.strip()
    if target == UNASSIGN_KEYWORD:
        return Unassign()

    if target.startswith(MANAGER_PREFIX):
        factory: type[AssignManager] | type[AssignEmployee] = AssignManager
        body = target[len(MANAGER_PREFIX):]
    elif target.startswith(EMPLOYEE_PREFIX):
        factory = AssignEmployee
        body = target[len(EMPLOYEE_PREFIX):]
    else:
        raise InvalidForwardTargetError(raw, "expected 'all', 'manager:<id>' or 'employee:<id>'")

    assignee_part, separator, suffix = body.partition("|")
    assignee_id = assignee_part.strip()
    if not assignee_id:
        raise InvalidForwardTargetError(raw, "missing assignee id")

    # Any other suffix, or an empty dept value, leaves the status unchanged.
    status: str | None = None
    if separator and suffix.startswith(DEPT_PREFIX):
        status = suffix[len(DEPT_PREFIX):] or None

    return factory(assignee_id=assignee_id, status=status)


def format_forward_target(target: ForwardTarget) -> str:
    if isinstance(target, Unassign):
        return UNASSIGN_KEYWORD
    prefix = MANAGER_PREFIX if isinstance(target, AssignManager) else EMPLOYEE_PREFIX
    suffix = f"|{DEPT_PREFIX}{target.status}" if target.status else ""
    return f"{prefix}{target.assignee_id}{suffix}"


def forward_comment(assignee_name: str | None, status: str | None) -> str:
    parts = [f"Forwarded to {assignee_name}" if assignee_name else "Unassigned lead"]
    if status:
        parts.append(f"({status})")
    return " ".join(parts)
