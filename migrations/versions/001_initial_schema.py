"""Initial schema: agencies, hosts, availability, booking types, appointments.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "agencies",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "hosts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("agency_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("booking_slug", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("booking_version", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["agency_id"], ["agencies.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_hosts_agency_id"), "hosts", ["agency_id"], unique=False)
    op.create_index(op.f("ix_hosts_booking_slug"), "hosts", ["booking_slug"], unique=True)

    op.create_table(
        "availability_schedules",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("agency_id", sa.Integer(), nullable=True),
        sa.Column("host_id", sa.Integer(), nullable=True),
        sa.Column("timezone", sa.String(), nullable=False),
        sa.Column("weekly_schedule", sa.JSON(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["agency_id"], ["agencies.id"]),
        sa.ForeignKeyConstraint(["host_id"], ["hosts.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_availability_schedules_agency_id"), "availability_schedules", ["agency_id"], unique=True)
    op.create_index(op.f("ix_availability_schedules_host_id"), "availability_schedules", ["host_id"], unique=True)

    op.create_table(
        "date_exceptions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("schedule_id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("is_closed", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("ranges", sa.JSON(), nullable=False),
        sa.Column("reason", sa.String(), nullable=True),
        sa.ForeignKeyConstraint(["schedule_id"], ["availability_schedules.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("schedule_id", "date", name="uq_date_exceptions_schedule_date"),
    )
    op.create_index(op.f("ix_date_exceptions_schedule_id"), "date_exceptions", ["schedule_id"], unique=False)

    op.create_table(
        "booking_types",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("agency_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("buffer_before_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("buffer_after_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("min_notice_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_future_days", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("auto_confirm", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("assignment_type", sa.String(length=20), nullable=False, server_default="ROUND_ROBIN"),
        sa.Column("specific_host_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["agency_id"], ["agencies.id"]),
        sa.ForeignKeyConstraint(["specific_host_id"], ["hosts.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_booking_types_agency_id"), "booking_types", ["agency_id"], unique=False)
    op.create_index(op.f("ix_booking_types_slug"), "booking_types", ["slug"], unique=True)

    op.create_table(
        "booking_type_hosts",
        sa.Column("booking_type_id", sa.Integer(), nullable=False),
        sa.Column("host_id", sa.Integer(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["booking_type_id"], ["booking_types.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["host_id"], ["hosts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("booking_type_id", "host_id"),
    )

    op.create_table(
        "appointments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("agency_id", sa.Integer(), nullable=False),
        sa.Column("host_id", sa.Integer(), nullable=False),
        sa.Column("booking_type_id", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("guest_name", sa.String(), nullable=False),
        sa.Column("guest_email", sa.String(), nullable=False),
        sa.Column("guest_phone", sa.String(), nullable=True),
        sa.Column("guest_company", sa.String(), nullable=True),
        sa.Column("guest_notes", sa.String(), nullable=True),
        sa.Column("guest_timezone", sa.String(), nullable=True),
        sa.Column("cancelled_by", sa.String(), nullable=True),
        sa.Column("cancellation_reason", sa.String(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("rescheduled_to_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["agency_id"], ["agencies.id"]),
        sa.ForeignKeyConstraint(["host_id"], ["hosts.id"]),
        sa.ForeignKeyConstraint(["booking_type_id"], ["booking_types.id"]),
        sa.ForeignKeyConstraint(["rescheduled_to_id"], ["appointments.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_appointments_agency_id"), "appointments", ["agency_id"], unique=False)
    op.create_index(op.f("ix_appointments_booking_type_id"), "appointments", ["booking_type_id"], unique=False)
    op.create_index(op.f("ix_appointments_status"), "appointments", ["status"], unique=False)
    op.create_index("ix_appointments_host_start", "appointments", ["host_id", "start_time"], unique=False)

    if op.get_bind().dialect.name == "postgresql":
        # Live appointments of one host can never overlap, even if two bookers race
        op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
        op.execute(
            """
            ALTER TABLE appointments ADD CONSTRAINT appointments_no_overlap
            EXCLUDE USING gist (
                host_id WITH =,
                tsrange(start_time, end_time, '[)') WITH &&
            ) WHERE (status IN ('SCHEDULED', 'CONFIRMED'))
            """
        )


def downgrade() -> None:
    if op.get_bind().dialect.name == "postgresql":
        op.execute("ALTER TABLE appointments DROP CONSTRAINT IF EXISTS appointments_no_overlap")
    op.drop_index("ix_appointments_host_start", table_name="appointments")
    op.drop_index(op.f("ix_appointments_status"), table_name="appointments")
    op.drop_index(op.f("ix_appointments_booking_type_id"), table_name="appointments")
    op.drop_index(op.f("ix_appointments_agency_id"), table_name="appointments")
    op.drop_table("appointments")
    op.drop_table("booking_type_hosts")
    op.drop_index(op.f("ix_booking_types_slug"), table_name="booking_types")
    op.drop_index(op.f("ix_booking_types_agency_id"), table_name="booking_types")
    op.drop_table("booking_types")
    op.drop_index(op.f("ix_date_exceptions_schedule_id"), table_name="date_exceptions")
    op.drop_table("date_exceptions")
    op.drop_index(op.f("ix_availability_schedules_host_id"), table_name="availability_schedules")
    op.drop_index(op.f("ix_availability_schedules_agency_id"), table_name="availability_schedules")
    op.drop_table("availability_schedules")
    op.drop_index(op.f("ix_hosts_booking_slug"), table_name="hosts")
    op.drop_index(op.f("ix_hosts_agency_id"), table_name="hosts")
    op.drop_table("hosts")
    op.drop_table("agencies")
