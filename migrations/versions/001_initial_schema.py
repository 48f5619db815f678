"""Initial schema: users, availability_patterns, appointments, slots.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_APPOINTMENT = sa.text("status NOT IN ('cancelled', 'no-show')")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("full_name", sa.String(), nullable=True),
        sa.Column("role", sa.String(), nullable=False, server_default="patient"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)
    op.create_index(op.f("ix_users_role"), "users", ["role"], unique=False)

    op.create_table(
        "availability_patterns",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("provider_id", sa.Integer(), nullable=False),
        sa.Column("is_recurring", sa.Boolean(), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=True),
        sa.Column("specific_date", sa.Date(), nullable=True),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("slot_duration", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("break_intervals", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("timezone", sa.String(), nullable=False, server_default="UTC"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["provider_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_availability_patterns_provider_id"), "availability_patterns", ["provider_id"], unique=False
    )
    op.create_index(
        "uq_availability_provider_day_active",
        "availability_patterns",
        ["provider_id", "day_of_week"],
        unique=True,
        postgresql_where=sa.text("is_active AND is_recurring"),
    )
    op.create_index(
        "uq_availability_provider_date_active",
        "availability_patterns",
        ["provider_id", "specific_date"],
        unique=True,
        postgresql_where=sa.text("is_active AND NOT is_recurring"),
    )

    op.create_table(
        "appointments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("reference", sa.String(), nullable=False),
        sa.Column("patient_id", sa.Integer(), nullable=False),
        sa.Column("provider_id", sa.Integer(), nullable=False),
        sa.Column("appointment_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="scheduled"),
        sa.Column("appointment_type", sa.String(), nullable=False),
        sa.Column("appointment_mode", sa.String(), nullable=False, server_default="in-person"),
        sa.Column("reason_for_visit", sa.String(length=500), nullable=False),
        sa.Column("notes", sa.String(length=1000), nullable=True),
        sa.Column("provider_notes", sa.String(length=1000), nullable=True),
        sa.Column("cancellation_reason", sa.String(length=500), nullable=True),
        sa.Column("cancelled_by", sa.String(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("timezone", sa.String(), nullable=False, server_default="UTC"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["patient_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["provider_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_appointments_reference"), "appointments", ["reference"], unique=True)
    op.create_index(op.f("ix_appointments_patient_id"), "appointments", ["patient_id"], unique=False)
    op.create_index(op.f("ix_appointments_provider_id"), "appointments", ["provider_id"], unique=False)
    op.create_index(op.f("ix_appointments_appointment_date"), "appointments", ["appointment_date"], unique=False)
    op.create_index(op.f("ix_appointments_status"), "appointments", ["status"], unique=False)
    op.create_index("ix_appointments_provider_date", "appointments", ["provider_id", "appointment_date"])
    op.create_index("ix_appointments_patient_date", "appointments", ["patient_id", "appointment_date"])
    op.create_index(
        "uq_appointments_provider_start_active",
        "appointments",
        ["provider_id", "appointment_date", "start_time"],
        unique=True,
        postgresql_where=ACTIVE_APPOINTMENT,
    )

    op.create_table(
        "slots",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("provider_id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("is_booked", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("is_blocked", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("block_reason", sa.String(length=200), nullable=True),
        sa.Column("appointment_id", sa.Integer(), nullable=True),
        sa.Column("timezone", sa.String(), nullable=False, server_default="UTC"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["provider_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["appointment_id"], ["appointments.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("provider_id", "date", "start_time", name="uq_slots_provider_date_start"),
    )
    op.create_index(op.f("ix_slots_provider_id"), "slots", ["provider_id"], unique=False)
    op.create_index(op.f("ix_slots_date"), "slots", ["date"], unique=False)
    op.create_index(op.f("ix_slots_is_booked"), "slots", ["is_booked"], unique=False)
    op.create_index(op.f("ix_slots_is_blocked"), "slots", ["is_blocked"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_slots_is_blocked"), table_name="slots")
    op.drop_index(op.f("ix_slots_is_booked"), table_name="slots")
    op.drop_index(op.f("ix_slots_date"), table_name="slots")
    op.drop_index(op.f("ix_slots_provider_id"), table_name="slots")
    op.drop_table("slots")
    op.drop_index("uq_appointments_provider_start_active", table_name="appointments")
    op.drop_index("ix_appointments_patient_date", table_name="appointments")
    op.drop_index("ix_appointments_provider_date", table_name="appointments")
    op.drop_index(op.f("ix_appointments_status"), table_name="appointments")
    op.drop_index(op.f("ix_appointments_appointment_date"), table_name="appointments")
    op.drop_index(op.f("ix_appointments_provider_id"), table_name="appointments")
    op.drop_index(op.f("ix_appointments_patient_id"), table_name="appointments")
    op.drop_index(op.f("ix_appointments_reference"), table_name="appointments")
    op.drop_table("appointments")
    op.drop_index("uq_availability_provider_date_active", table_name="availability_patterns")
    op.drop_index("uq_availability_provider_day_active", table_name="availability_patterns")
    op.drop_index(op.f("ix_availability_patterns_provider_id"), table_name="availability_patterns")
    op.drop_table("availability_patterns")
    op.drop_index(op.f("ix_users_role"), table_name="users")
    op.drop_index(op.f("ix_users_email"), table_name="users")
    op.drop_table("users")
