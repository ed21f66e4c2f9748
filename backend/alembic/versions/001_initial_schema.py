"""Initial schema: events, pending payments, registrations, waiting list, audit and outbox.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def _identity() -> list:
    return [
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
        sa.Column("is_guest_request", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("guest_name", sa.String(255), nullable=True),
        sa.Column("guest_email", sa.String(255), nullable=True),
        sa.Column("guest_phone", sa.String(50), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "bank_accounts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("bank_name", sa.String(255), nullable=True),
        sa.Column("iban", sa.String(34), nullable=False, unique=True),
        sa.Column("swift", sa.String(11), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("qr_code_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    op.create_index("ix_bank_accounts_id", "bank_accounts", ["id"])

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.String(2000), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("venue", sa.String(255), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("currency", sa.String(3), nullable=False, server_default=sa.text("'EUR'")),
        sa.Column("requires_payment", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("allow_waiting_list", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "bank_account_id", sa.Integer(), sa.ForeignKey("bank_accounts.id", ondelete="SET NULL"), nullable=True
        ),
        # Per-event optimistic lock, bumped by every reconciliation write
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("capacity >= 0", name="check_event_capacity_non_negative"),
        sa.CheckConstraint("price >= 0", name="check_event_price_non_negative"),
    )
    op.create_index("ix_events_id", "events", ["id"])
    op.create_index("ix_events_start_date", "events", ["start_date"])

    op.create_table(
        "pending_payments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        *_identity(),
        sa.Column("status", sa.String(32), nullable=False, server_default=sa.text("'AWAITING_PAYMENT'")),
        sa.Column("registration_type", sa.String(32), nullable=False, server_default=sa.text("'INDIVIDUAL'")),
        sa.Column("total_participants", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("friends_data", sa.JSON(), nullable=False),
        sa.Column("dietary_requirements", sa.String(500), nullable=True),
        sa.Column("special_requests", sa.String(1000), nullable=True),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("payment_method", sa.String(32), nullable=False, server_default=sa.text("'QR_CODE'")),
        sa.Column(
            "bank_account_id", sa.Integer(), sa.ForeignKey("bank_accounts.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("variable_symbol", sa.String(10), nullable=False),
        sa.Column("qr_code_data", sa.String(1000), nullable=True),
        sa.Column("reported_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_by", sa.Integer(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.String(500), nullable=True),
        sa.Column("promoted_from_waiting_list", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("waiting_list_position", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("variable_symbol", name="uq_pending_payments_variable_symbol"),
        sa.CheckConstraint("total_participants >= 1", name="check_pending_payment_participants_positive"),
        sa.CheckConstraint("amount >= 0", name="check_pending_payment_amount_non_negative"),
    )
    op.create_index("ix_pending_payments_id", "pending_payments", ["id"])
    op.create_index("ix_pending_payments_event_id", "pending_payments", ["event_id"])
    op.create_index("ix_pending_payments_user_id", "pending_payments", ["user_id"])
    # Capacity checks filter on (event_id, status) for every admission
    op.create_index("ix_pending_payments_event_status", "pending_payments", ["event_id", "status"])

    op.create_table(
        "registrations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        *_identity(),
        sa.Column("status", sa.String(32), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("registration_type", sa.String(32), nullable=False, server_default=sa.text("'INDIVIDUAL'")),
        sa.Column("source", sa.String(32), nullable=False, server_default=sa.text("'DIRECT'")),
        sa.Column("is_group_leader", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("group_size", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("friend_position", sa.Integer(), nullable=True),
        sa.Column(
            "group_leader_id", sa.Integer(), sa.ForeignKey("registrations.id", ondelete="CASCADE"), nullable=True
        ),
        sa.Column("friends_data", sa.JSON(), nullable=False),
        sa.Column("dietary_requirements", sa.String(500), nullable=True),
        sa.Column("special_requests", sa.String(1000), nullable=True),
        sa.Column("requires_payment", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "pending_payment_id",
            sa.Integer(),
            sa.ForeignKey("pending_payments.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("promoted_from_waiting_list", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("waiting_list_position", sa.Integer(), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("attended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.String(500), nullable=True),
        *_timestamps(),
        # One registration per user per event, and per guest contact per event
        sa.UniqueConstraint("user_id", "event_id", name="uq_registration_user_event"),
        sa.UniqueConstraint("event_id", "guest_email", "guest_name", name="uq_registration_guest_event"),
    )
    op.create_index("ix_registrations_id", "registrations", ["id"])
    op.create_index("ix_registrations_event_id", "registrations", ["event_id"])
    op.create_index("ix_registrations_user_id", "registrations", ["user_id"])
    op.create_index("ix_registrations_group_leader_id", "registrations", ["group_leader_id"])
    op.create_index("ix_registrations_pending_payment_id", "registrations", ["pending_payment_id"])
    op.create_index("ix_registrations_event_status", "registrations", ["event_id", "status"])

    op.create_table(
        "waiting_list",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        *_identity(),
        sa.Column("position", sa.Integer(), nullable=True),
        sa.Column("registration_type", sa.String(32), nullable=False, server_default=sa.text("'INDIVIDUAL'")),
        sa.Column("is_group_entry", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("group_size", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("friends_data", sa.JSON(), nullable=False),
        sa.Column("dietary_requirements", sa.String(500), nullable=True),
        sa.Column("special_requests", sa.String(1000), nullable=True),
        sa.Column("payment_method", sa.String(32), nullable=False, server_default=sa.text("'QR_CODE'")),
        sa.Column("promoted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "pending_payment_id",
            sa.Integer(),
            sa.ForeignKey("pending_payments.id", ondelete="SET NULL"),
            nullable=True,
        ),
        *_timestamps(),
        sa.CheckConstraint("position IS NULL OR position > 0", name="check_waiting_list_position_positive"),
        sa.CheckConstraint("group_size >= 1", name="check_waiting_list_group_size_positive"),
    )
    op.create_index("ix_waiting_list_id", "waiting_list", ["id"])
    op.create_index("ix_waiting_list_event_id", "waiting_list", ["event_id"])
    op.create_index("ix_waiting_list_user_id", "waiting_list", ["user_id"])
    op.create_index("ix_waiting_list_event_position", "waiting_list", ["event_id", "position"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor", sa.String(100), nullable=False),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("resource_type", sa.String(50), nullable=False),
        sa.Column("resource_id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_audit_log_id", "audit_log", ["id"])
    op.create_index("ix_audit_log_resource", "audit_log", ["resource_type", "resource_id"])
    op.create_index("ix_audit_log_event", "audit_log", ["event_id"])

    op.create_table(
        "notification_outbox",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("kind", sa.String(40), nullable=False),
        sa.Column("recipient_user_id", sa.Integer(), nullable=True),
        sa.Column("recipient_email", sa.String(255), nullable=True),
        sa.Column("recipient_name", sa.String(255), nullable=True),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("dispatched_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_notification_outbox_id", "notification_outbox", ["id"])
    op.create_index("ix_notification_outbox_undispatched", "notification_outbox", ["dispatched_at"])


def downgrade() -> None:
    op.drop_table("notification_outbox")
    op.drop_table("audit_log")
    op.drop_table("waiting_list")
    op.drop_table("registrations")
    op.drop_table("pending_payments")
    op.drop_table("events")
    op.drop_table("bank_accounts")
    op.drop_table("users")
