"""Initial Cave schema: users, auth tokens, events, tickets, sessions, orders

Revision ID: 20260301_cave
Revises:
Create Date: 2026-03-01

This migration adds:
1. users and auth_tokens (identity for every Cave caller)
2. cave_events (time windows, admission kind, capacity parameters)
3. cave_tickets (shared or personal admission codes)
4. cave_sessions with uq_cave_sessions_user_open, the partial unique index
   that allows one open session per user
5. cave_orders (append-only purchase ledger)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20260301_cave'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. IDENTITY
    # ==========================================================================
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.create_index("ix_users_username", ["username"], unique=True)

    op.create_table(
        "auth_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("token_hash", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_revoked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_reason", sa.String(length=255), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("auth_tokens", schema=None) as batch_op:
        batch_op.create_index("ix_auth_tokens_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_auth_tokens_token_hash", ["token_hash"], unique=True)
        batch_op.create_index("ix_auth_tokens_expires_at", ["expires_at"], unique=False)
        batch_op.create_index("ix_auth_tokens_is_revoked", ["is_revoked"], unique=False)
        batch_op.create_index("ix_auth_tokens_user_active", ["user_id", "is_revoked"], unique=False)

    # ==========================================================================
    # 2. EVENTS
    # ==========================================================================
    op.create_table(
        "cave_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("kind", sa.String(length=16), nullable=False, server_default="scheduled"),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("max_concurrent", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("user_time_limit", sa.Integer(), nullable=False),
        sa.Column("purchase_cap", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("max_participations_per_user", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("allowed_pay", sa.String(length=16), nullable=False, server_default="both"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.CheckConstraint("end_time > start_time", name="ck_cave_events_window"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("cave_events", schema=None) as batch_op:
        batch_op.create_index("ix_cave_events_is_active", ["is_active"], unique=False)
        batch_op.create_index("ix_cave_events_active_start", ["is_active", "start_time"], unique=False)

    # ==========================================================================
    # 3. TICKETS
    # ==========================================================================
    op.create_table(
        "cave_tickets",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("max_use", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("per_user_limit", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("is_personal", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("owner_user_id", sa.Integer(), nullable=True),
        sa.Column("expiry", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.CheckConstraint("is_personal OR owner_user_id IS NULL", name="ck_cave_tickets_owner"),
        sa.ForeignKeyConstraint(["event_id"], ["cave_events.id"]),
        sa.ForeignKeyConstraint(["owner_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("cave_tickets", schema=None) as batch_op:
        batch_op.create_index("ix_cave_tickets_event_id", ["event_id"], unique=False)
        batch_op.create_index("ix_cave_tickets_code", ["code"], unique=True)
        batch_op.create_index("ix_cave_tickets_owner_user_id", ["owner_user_id"], unique=False)
        batch_op.create_index("ix_cave_tickets_is_active", ["is_active"], unique=False)

    # ==========================================================================
    # 4. SESSIONS
    # ==========================================================================
    op.create_table(
        "cave_sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("entered_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("left_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_spent", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.ForeignKeyConstraint(["event_id"], ["cave_events.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("cave_sessions", schema=None) as batch_op:
        batch_op.create_index("ix_cave_sessions_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_cave_sessions_event_id", ["event_id"], unique=False)
        batch_op.create_index("ix_cave_sessions_expires_at", ["expires_at"], unique=False)
        batch_op.create_index("ix_cave_sessions_user_event", ["user_id", "event_id"], unique=False)

    # One open session per user; concurrent inserts race on this index
    op.create_index(
        "uq_cave_sessions_user_open",
        "cave_sessions",
        ["user_id"],
        unique=True,
        sqlite_where=sa.text("left_at IS NULL"),
        postgresql_where=sa.text("left_at IS NULL"),
    )

    # ==========================================================================
    # 5. ORDERS
    # ==========================================================================
    op.create_table(
        "cave_orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("session_id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("paid_with", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["session_id"], ["cave_sessions.id"]),
        sa.ForeignKeyConstraint(["event_id"], ["cave_events.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("cave_orders", schema=None) as batch_op:
        batch_op.create_index("ix_cave_orders_session_id", ["session_id"], unique=False)
        batch_op.create_index("ix_cave_orders_event_id", ["event_id"], unique=False)
        batch_op.create_index("ix_cave_orders_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_cave_orders_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_cave_orders_session_created", ["session_id", "created_at"], unique=False)


def downgrade():
    op.drop_table("cave_orders")
    op.drop_index("uq_cave_sessions_user_open", table_name="cave_sessions")
    op.drop_table("cave_sessions")
    op.drop_table("cave_tickets")
    op.drop_table("cave_events")
    op.drop_table("auth_tokens")
    op.drop_table("users")
