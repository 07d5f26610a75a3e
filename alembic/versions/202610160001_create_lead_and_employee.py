"""create lead and employee tables

Revision ID: 202610160001
Revises:
Create Date: 2026-10-16 00:00:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610160001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "lead",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("lead_id", sa.String(length=64), nullable=False),
        sa.Column("current_status", sa.String(length=128), nullable=True),
        sa.Column("current_assigned_employee", sa.JSON(none_as_null=True), nullable=True),
        sa.Column("customer_service", sa.JSON(none_as_null=True), nullable=True),
        sa.Column("sourcing", sa.JSON(none_as_null=True), nullable=True),
        sa.Column("shipping", sa.JSON(none_as_null=True), nullable=True),
        sa.Column("sales", sa.JSON(none_as_null=True), nullable=True),
        sa.Column("logs", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("row_version", sa.Integer(), server_default="1", nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("lead_id"),
    )
    op.create_index("ix_lead_current_status", "lead", ["current_status"], unique=False)
    op.create_index("ix_lead_created_at", "lead", ["created_at"], unique=False)

    op.create_table(
        "employee",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("emp_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("role", sa.Text(), nullable=True),
        sa.Column("department", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=32), server_default="Active", nullable=False),
        sa.Column("location", sa.Text(), nullable=True),
        sa.Column("created_by_manager_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("emp_id", name="uq_employee_emp_id"),
        sa.UniqueConstraint("phone", name="uq_employee_phone"),
    )


def downgrade() -> None:
    op.drop_table("employee")
    op.drop_index("ix_lead_created_at", table_name="lead")
    op.drop_index("ix_lead_current_status", table_name="lead")
    op.drop_table("lead")
