from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from leadflow.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Lead(Base):
    """One customer inquiry.

    Department sections are stored as JSON documents in their wire shape
    (camelCase keys) so nested fields such as ``sourcing.employeeId`` can be
    matched with JSON path extraction.
    """

    __tablename__ = "lead"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    lead_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    current_status: Mapped[str | None] = mapped_column(String(128), nullable=True)
    current_assigned_employee: Mapped[dict[str, Any] | None] = mapped_column(JSON(none_as_null=True), nullable=True)
    customer_service: Mapped[dict[str, Any] | None] = mapped_column(JSON(none_as_null=True), nullable=True)
    sourcing: Mapped[dict[str, Any] | None] = mapped_column(JSON(none_as_null=True), nullable=True)
    shipping: Mapped[dict[str, Any] | None] = mapped_column(JSON(none_as_null=True), nullable=True)
    sales: Mapped[dict[str, Any] | None] = mapped_column(JSON(none_as_null=True), nullable=True)
    logs: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )
    row_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")

    __table_args__ = (
        Index("ix_lead_current_status", "current_status"),
        Index("ix_lead_created_at", "created_at"),
    )
