from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from fastapi import HTTPException, status
from opentelemetry import trace
from sqlalchemy import ColumnElement, Select, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from leadflow import events
from leadflow.leads.activity import aggregate_lead_logs
from leadflow.leads.departments import DEPARTMENT_LABELS, Department, parse_department
from leadflow.leads.forwarding import (
    InvalidForwardTargetError,
    Unassign,
    format_forward_target,
    forward_comment,
    parse_forward_target,
)
from leadflow.leads.identifiers import (
    LEAD_ID_PREFIX,
    identifier_candidates,
    normalize_identifier,
    parse_storage_id,
)
from leadflow.leads.intake import (
    derive_initial_status,
    map_shipping_info,
    marka_base,
    marka_pattern,
    next_marka,
    normalize_products,
    safe_string,
)
from leadflow.leads.models import Lead, utcnow
from leadflow.leads.schemas import (
    ActivityEntry,
    ClientSummary,
    ClientsResponse,
    CustomerServiceRecord,
    DepartmentRecord,
    DepartmentUpdateResponse,
    ForwardActor,
    ForwardRequest,
    ForwardResponse,
    LeadActivityResponse,
    LeadCreate,
    LeadCreateResponse,
    LeadDeleteResponse,
    LeadQueryResponse,
    LeadRead,
    LogSearchResponse,
    SalesRecord,
    SalesUpdateRequest,
    ShippingRecord,
    ShippingUpdateRequest,
    SourcingRecord,
    SourcingUpdateRequest,
)
from leadflow.media import MediaStorage
from leadflow.metrics import observe_forward_rejected, observe_lead_forwarded, observe_media_cleanup_failure

logger = logging.getLogger("leadflow.leads")
media_logger = logging.getLogger("leadflow.media")
tracer = trace.get_tracer("leadflow.leads")

SYSTEM_ACTOR = "system"


@dataclass
class ActorUser:
    user_id: str
    name: str | None = None
    role: str | None = None
    department: str | None = None
    permissions: set[str] = field(default_factory=set)
    is_admin: bool = False
    correlation_id: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.user_id


def make_log_entry(employee_id: str | None, employee_name: str | None, comment: str) -> dict[str, Any]:
    return {
        "employeeId": employee_id or SYSTEM_ACTOR,
        "employeeName": employee_name or SYSTEM_ACTOR,
        "timestamp": utcnow().isoformat(),
        "comment": comment,
    }


def to_lead_read(lead: Lead) -> LeadRead:
    return LeadRead(
        id=lead.id,
        lead_id=lead.lead_id,
        current_status=lead.current_status,
        current_assigned_employee=lead.current_assigned_employee,
        customer_service=lead.customer_service,
        sourcing=lead.sourcing,
        shipping=lead.shipping,
        sales=lead.sales,
        logs=lead.logs or [],
        created_at=lead.created_at,
        updated_at=lead.updated_at,
        row_version=lead.row_version,
    )


def find_lead(session: Session, reference: str) -> Lead | None:
    """Resolve a storage UUID or a ``LEAD-...`` business id."""
    storage_id = parse_storage_id(reference)
    if storage_id is not None:
        lead = session.get(Lead, storage_id)
        if lead is not None:
            return lead
    key = reference.strip()
    if not key:
        return None
    return session.scalars(select(Lead).where(Lead.lead_id == key)).first()


class LeadForwardService:
    def forward(self, session: Session, actor_user: ActorUser, dto: ForwardRequest) -> ForwardResponse:
        try:
            target = parse_forward_target(dto.target)
        except InvalidForwardTargetError as exc:
            observe_forward_rejected("invalid_target")
            logger.warning(
                "lead.forward_rejected",
                extra={"target": dto.target, "lead_count": len(dto.lead_ids), "error": exc.reason},
            )
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

        target_label = format_forward_target(target)
        assignee: dict[str, str] | None = None
        if not isinstance(target, Unassign):
            assignee = {"employeeId": target.assignee_id, "employeeName": target.assignee_id}
        log_actor = self._log_actor(dto.actor, assignee)
        comment = forward_comment(assignee["employeeName"] if assignee else None, target.status)

        forwarded: list[str] = []
        skipped = 0
        failed = 0
        with tracer.start_as_current_span("leads.forward") as span:
            span.set_attribute("target", target_label)
            span.set_attribute("lead_count", len(dto.lead_ids))
            span.set_attribute("correlation_id", actor_user.correlation_id or "")

            for reference in dto.lead_ids:
                try:
                    lead = find_lead(session, reference)
                    if lead is None:
                        skipped += 1
                        continue
                    lead_key = lead.lead_id
                    if assignee is None:
                        lead.current_assigned_employee = None
                    else:
                        lead.current_assigned_employee = dict(assignee)
                    if target.status:
                        lead.current_status = target.status
                    lead.logs = [*(lead.logs or []), make_log_entry(log_actor[0], log_actor[1], comment)]
                    lead.row_version = (lead.row_version or 0) + 1
                    session.commit()
                except SQLAlchemyError:
                    session.rollback()
                    failed += 1
                    logger.exception(
                        "lead.forward_failed",
                        extra={"lead_id": reference, "target": target_label},
                    )
                    continue
                forwarded.append(lead_key)

            span.set_attribute("forwarded", len(forwarded))
            span.set_attribute("skipped", skipped)
            span.set_attribute("failed", failed)

        observe_lead_forwarded("forwarded", len(forwarded))
        observe_lead_forwarded("skipped", skipped)
        observe_lead_forwarded("failed", failed)
        logger.info(
            "lead.forwarded",
            extra={
                "lead_count": len(forwarded),
                "target": target_label,
                "outcome": "failed" if failed else "ok",
            },
        )

        if forwarded:
            events.publish(
                "lead.forwarded",
                actor_user.user_id,
                {
                    "lead_ids": forwarded,
                    "target": target_label,
                    "assignee_id": assignee["employeeId"] if assignee else None,
                    "status": target.status,
                },
            )

        if failed:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to forward leads")
        return ForwardResponse(success=True, message=f"Forwarded {len(forwarded)} lead(s)")

    @staticmethod
    def _log_actor(actor: ForwardActor | None, assignee: dict[str, str] | None) -> tuple[str, str]:
        employee_id = actor.employee_id if actor and actor.employee_id else None
        employee_name = actor.employee_name if actor and actor.employee_name else None
        if assignee is not None:
            employee_id = employee_id or assignee["employeeId"]
            employee_name = employee_name or assignee["employeeName"]
        return employee_id or SYSTEM_ACTOR, employee_name or SYSTEM_ACTOR


class LeadQueryService:
    @staticmethod
    def build_employee_filter(employee_id: str, department: str | None = None) -> ColumnElement[bool]:
        """Match leads where ``employee_id`` owns the department record or the assignment.

        Every stored form of the id is accepted. With no recognised department
        all four department records are checked.
        """
        candidates = identifier_candidates(employee_id)
        resolved = parse_department(department)
        departments = [resolved] if resolved is not None else list(Department)

        clauses: list[ColumnElement[bool]] = []
        for item in departments:
            column = getattr(Lead, item.column)
            clauses.append(column["employeeId"].as_string().in_(candidates))
        clauses.append(Lead.current_assigned_employee["employeeId"].as_string().in_(candidates))
        clauses.append(Lead.current_assigned_employee["employeeName"].as_string().in_(candidates))
        return or_(*clauses)

    @staticmethod
    def queue_statuses(department: str) -> list[str]:
        resolved = parse_department(department)
        statuses = {department.strip().lower()}
        if resolved is not None:
            statuses.add(resolved.label.lower())
        return sorted(statuses)

    def query(
        self,
        session: Session,
        employee_id: str | None,
        department: str | None = None,
        queue_only: bool = False,
    ) -> LeadQueryResponse:
        if normalize_identifier(employee_id) is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="employeeId is required")
        department = department.strip() if department and department.strip() else None

        stmt: Select[tuple[Lead]] = select(Lead).where(self.build_employee_filter(employee_id, department))
        if queue_only and department:
            stmt = stmt.where(func.lower(Lead.current_status).in_(self.queue_statuses(department)))
        leads = session.scalars(stmt.order_by(Lead.created_at.desc())).all()

        logger.info(
            "lead.query",
            extra={"lead_count": len(leads), "department": department or ""},
        )
        items = [to_lead_read(item) for item in leads]
        return LeadQueryResponse(count=len(items), leads=items)

    def list_all(self, session: Session) -> LeadQueryResponse:
        leads = session.scalars(select(Lead).order_by(Lead.created_at.desc())).all()
        items = [to_lead_read(item) for item in leads]
        return LeadQueryResponse(count=len(items), leads=items)


class LeadService:
    def create_lead(self, session: Session, actor_user: ActorUser, dto: LeadCreate) -> LeadCreateResponse:
        actor_code = normalize_identifier(actor_user.user_id)
        actor_name = actor_user.display_name
        current_status = derive_initial_status(dto.type, actor_user.user_id)
        customer_info = dto.customer_info

        base = marka_base(customer_info)
        contact_number = safe_string(customer_info.get("contactNumber"))
        marka = next_marka(base, contact_number, self._existing_markas(session, base)) if base else ""

        products = normalize_products(dto.products)
        section = {"employeeId": actor_code, "managerId": None, "logs": []}
        customer_service = CustomerServiceRecord.model_validate(
            {
                **section,
                "customerName": safe_string(customer_info.get("customerName")),
                "contactNumber": contact_number,
                "address": safe_string(customer_info.get("address")),
                "city": safe_string(customer_info.get("city")),
                "state": safe_string(customer_info.get("state")),
                "marka": marka,
                "remark": safe_string(customer_info.get("remark")),
                "products": products,
            }
        )

        lead = Lead(
            lead_id=self._next_lead_id(session),
            current_status=current_status,
            current_assigned_employee={"employeeId": actor_code, "employeeName": actor_name},
            customer_service=customer_service.model_dump(mode="json", by_alias=True),
            logs=[make_log_entry(actor_code, actor_name, f"Created by {actor_name} ({actor_code})")],
        )

        if current_status == DEPARTMENT_LABELS[Department.SOURCING]:
            sourcing = SourcingRecord.model_validate(
                {
                    **section,
                    "productName": products[0]["productName"] if products else "",
                    "companyName": safe_string(customer_info.get("companyName")),
                    "companyAddress": safe_string(customer_info.get("companyAddress")),
                    "remark": safe_string(customer_info.get("remark")),
                }
            )
            lead.sourcing = sourcing.model_dump(mode="json", by_alias=True)

        if current_status == DEPARTMENT_LABELS[Department.SHIPPING] or dto.shipping_info is not None:
            mapped = map_shipping_info(dto.shipping_info if dto.shipping_info is not None else customer_info)
            mapped["marka"] = mapped.get("marka") or marka
            mapped["remark"] = mapped.get("remark") or safe_string(customer_info.get("remark"))
            shipping = ShippingRecord.model_validate({**section, **mapped})
            lead.shipping = shipping.model_dump(mode="json", by_alias=True)

        session.add(lead)
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="lead id already exists") from exc
        session.refresh(lead)

        logger.info(
            "lead.created",
            extra={"lead_id": lead.lead_id, "department": current_status},
        )
        events.publish(
            "lead.created",
            actor_user.user_id,
            {"lead_id": lead.lead_id, "id": str(lead.id), "status": current_status, "marka": marka},
        )
        return LeadCreateResponse(data=to_lead_read(lead))

    def get_lead(self, session: Session, reference: str) -> LeadRead:
        return to_lead_read(self._require_lead(session, reference))

    def delete_lead(
        self,
        session: Session,
        actor_user: ActorUser,
        reference: str,
        storage: MediaStorage,
    ) -> LeadDeleteResponse:
        lead = self._require_lead(session, reference)
        lead_key = lead.lead_id
        urls = self._referenced_files(lead)

        session.delete(lead)
        session.commit()

        removed = 0
        for url in urls:
            try:
                storage.delete(url)
            except (OSError, ValueError) as exc:
                observe_media_cleanup_failure()
                media_logger.warning(
                    "media.cleanup_failed",
                    extra={"lead_id": lead_key, "url": url, "error": str(exc)},
                )
                continue
            removed += 1

        logger.info("lead.deleted", extra={"lead_id": lead_key, "outcome": f"{removed}/{len(urls)} files removed"})
        events.publish("lead.deleted", actor_user.user_id, {"lead_id": lead_key, "files_removed": removed})
        return LeadDeleteResponse(message=f"Lead {lead_key} deleted", files_removed=removed)

    def update_sourcing(
        self,
        session: Session,
        actor_user: ActorUser,
        reference: str,
        dto: SourcingUpdateRequest,
    ) -> DepartmentUpdateResponse:
        changes = dto.data.model_dump(mode="json", by_alias=True, exclude_unset=True, exclude_none=True)
        return self._update_department(
            session,
            actor_user,
            reference,
            Department.SOURCING,
            SourcingRecord,
            changes,
            dto.manager_id,
            "Sourcing details updated",
        )

    def update_shipping(
        self,
        session: Session,
        actor_user: ActorUser,
        reference: str,
        dto: ShippingUpdateRequest,
    ) -> DepartmentUpdateResponse:
        changes = dto.shipping.model_dump(mode="json", by_alias=True, exclude_unset=True, exclude_none=True)
        return self._update_department(
            session,
            actor_user,
            reference,
            Department.SHIPPING,
            ShippingRecord,
            changes,
            dto.manager_id,
            "Shipping details updated",
        )

    def update_sales(
        self,
        session: Session,
        actor_user: ActorUser,
        reference: str,
        dto: SalesUpdateRequest,
    ) -> DepartmentUpdateResponse:
        products = dto.products()
        if not products:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="At least one sales product is required")
        first = products[0]
        changes: dict[str, Any] = {
            "trackingNumber": first.tracking_number,
            "warehouseReceipt": first.warehouse_receipt,
        }
        if first.remark:
            changes["remark"] = first.remark
        return self._update_department(
            session,
            actor_user,
            reference,
            Department.SALES,
            SalesRecord,
            changes,
            dto.manager_id,
            "Sales data updated",
        )

    def lead_activity(self, session: Session, reference: str) -> LeadActivityResponse:
        lead = self._require_lead(session, reference)
        entries = [ActivityEntry.model_validate(item) for item in aggregate_lead_logs(lead)]
        return LeadActivityResponse(lead_id=lead.lead_id, count=len(entries), logs=entries)

    def search_logs(self, session: Session, query: str) -> LogSearchResponse:
        key = query.strip()
        lead = session.scalars(
            select(Lead)
            .where(or_(Lead.lead_id == key, Lead.customer_service["marka"].as_string() == key))
            .order_by(Lead.created_at.desc())
        ).first()
        if lead is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lead not found")

        return LogSearchResponse(
            id=lead.id,
            lead_id=lead.lead_id,
            current_status=lead.current_status,
            current_assigned_employee=lead.current_assigned_employee,
            customer_service=lead.customer_service,
            sourcing=lead.sourcing,
            shipping=lead.shipping,
            sales=lead.sales,
            logs=[ActivityEntry.model_validate(item) for item in aggregate_lead_logs(lead)],
        )

    def list_clients(self, session: Session, actor_user: ActorUser) -> ClientsResponse:
        stmt: Select[tuple[Lead]] = select(Lead).order_by(Lead.created_at.asc())
        if not actor_user.is_admin:
            candidates = identifier_candidates(actor_user.user_id)
            stmt = stmt.where(Lead.customer_service["employeeId"].as_string().in_(candidates))

        clients: dict[tuple[str, str, str], ClientSummary] = {}
        for lead in session.scalars(stmt).all():
            record = lead.customer_service or {}
            marka = safe_string(record.get("marka")) or "Unknown"
            customer_name = safe_string(record.get("customerName")) or "Unknown"
            contact_number = safe_string(record.get("contactNumber"))
            key = (marka, customer_name, contact_number)
            summary = clients.get(key)
            if summary is None:
                clients[key] = ClientSummary(
                    marka=marka,
                    customer_name=customer_name,
                    contact_number=contact_number,
                    city=safe_string(record.get("city")),
                    state=safe_string(record.get("state")),
                    total_leads=1,
                    lead_ids=[lead.lead_id],
                )
            else:
                summary.total_leads += 1
                summary.lead_ids.append(lead.lead_id)
        return ClientsResponse(clients=list(clients.values()))

    def _update_department(
        self,
        session: Session,
        actor_user: ActorUser,
        reference: str,
        department: Department,
        record_type: type[DepartmentRecord],
        changes: dict[str, Any],
        manager_id: str | None,
        comment: str,
    ) -> DepartmentUpdateResponse:
        lead = self._require_lead(session, reference)
        current = dict(getattr(lead, department.column) or {})
        actor_code = normalize_identifier(actor_user.user_id)

        merged = {**current, **changes}
        merged["employeeId"] = actor_code
        if manager_id is not None:
            merged["managerId"] = normalize_identifier(manager_id)
        merged["logs"] = [
            *current.get("logs", []),
            make_log_entry(actor_code, actor_user.display_name, comment),
        ]
        record = record_type.model_validate(merged)
        setattr(lead, department.column, record.model_dump(mode="json", by_alias=True))
        lead.row_version = (lead.row_version or 0) + 1
        session.commit()
        session.refresh(lead)

        logger.info(
            "lead.department_updated",
            extra={"lead_id": lead.lead_id, "department": department.label},
        )
        events.publish(
            "lead.department_updated",
            actor_user.user_id,
            {"lead_id": lead.lead_id, "department": department.value, "fields": sorted(changes)},
        )
        return DepartmentUpdateResponse(message=comment, lead=to_lead_read(lead))

    @staticmethod
    def _require_lead(session: Session, reference: str) -> Lead:
        lead = find_lead(session, reference)
        if lead is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lead not found")
        return lead

    @staticmethod
    def _next_lead_id(session: Session) -> str:
        stamp = int(time.time() * 1000)
        while session.scalar(select(Lead.id).where(Lead.lead_id == f"{LEAD_ID_PREFIX}{stamp}")) is not None:
            stamp += 1
        return f"{LEAD_ID_PREFIX}{stamp}"

    @staticmethod
    def _existing_markas(session: Session, base: str) -> list[tuple[str, str]]:
        marka_expr = Lead.customer_service["marka"].as_string()
        rows = session.scalars(
            select(Lead).where(marka_expr.istartswith(base, autoescape=True))
        ).all()
        pattern = marka_pattern(base)
        existing: list[tuple[str, str]] = []
        for lead in rows:
            record = lead.customer_service or {}
            marka = safe_string(record.get("marka"))
            if pattern.match(marka):
                existing.append((marka, safe_string(record.get("contactNumber"))))
        return existing

    @staticmethod
    def _referenced_files(lead: Lead) -> list[str]:
        urls: list[str] = []
        for product in (lead.customer_service or {}).get("products") or []:
            urls.extend(product.get("uploadFiles") or [])
        urls.extend((lead.sourcing or {}).get("uploadDocuments") or [])
        shipping = lead.shipping or {}
        for key in ("uploadInvoice", "uploadPackingList"):
            if shipping.get(key):
                urls.append(shipping[key])
        return [url for url in urls if isinstance(url, str) and url]
