"""001: Cashier sessions, sales orders and supervisor notifications.

Creates the directory, sales, daily session/entry and notification tables.
"""

from alembic import op
import sqlalchemy as sa

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column(
            "role",
            sa.Enum("admin", "manager", "supervisor", "cashier", name="userrole"),
            nullable=False,
            server_default="cashier",
        ),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "sales_orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_number", sa.String(50), nullable=False, unique=True),
        sa.Column("cashier_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("items_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_sales_orders_cashier_created", "sales_orders", ["cashier_id", "created_at"])

    op.create_table(
        "cashier_daily_sessions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("cashier_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("cashier_name", sa.String(255), nullable=False),
        sa.Column("session_date", sa.Date(), nullable=False),
        sa.Column("currently_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("active_entry_index", sa.Integer(), nullable=True),
        sa.Column("total_check_ins", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_check_outs", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_duration_minutes", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_sales", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("total_transactions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("checkout_reason_counts", sa.JSON(), nullable=False),
        sa.Column("admin_reviewed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("admin_reviewed_at", sa.DateTime(), nullable=True),
        sa.Column("admin_reviewed_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("last_activity_time", sa.DateTime(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("cashier_id", "session_date", name="uq_cashier_daily_session"),
    )
    op.create_index("ix_cashier_daily_sessions_cashier_id", "cashier_daily_sessions", ["cashier_id"])
    op.create_index("ix_cashier_daily_sessions_session_date", "cashier_daily_sessions", ["session_date"])

    op.create_table(
        "cashier_session_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "daily_session_id", sa.Integer(),
            sa.ForeignKey("cashier_daily_sessions.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("check_in_time", sa.DateTime(), nullable=False),
        sa.Column("check_out_time", sa.DateTime(), nullable=True),
        sa.Column("checkout_reason", sa.String(32), nullable=True),
        sa.Column("checkout_reason_details", sa.Text(), nullable=True),
        sa.Column("closed_by", sa.Integer(), nullable=True),
        sa.Column("duration_minutes", sa.Float(), nullable=True),
        sa.Column("sales_during_session", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("transactions_during_session", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("screen_share_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("peer_id", sa.String(128), nullable=True),
        sa.Column("last_screen_share_update", sa.DateTime(), nullable=True),
        sa.Column("last_activity_time", sa.DateTime(), nullable=True),
        sa.Column("long_session_notified", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_cashier_session_entries_daily_session_id", "cashier_session_entries", ["daily_session_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("priority", sa.String(20), nullable=False, server_default="medium"),
        sa.Column("recipient_role", sa.String(20), nullable=False, server_default="supervisor"),
        sa.Column("cashier_id", sa.Integer(), nullable=True),
        sa.Column("cashier_name", sa.String(255), nullable=True),
        sa.Column("session_id", sa.Integer(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("source", sa.String(20), nullable=False, server_default="system"),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(), nullable=True),
        sa.Column("read_by", sa.Integer(), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_notifications_id", "notifications", ["id"])
    op.create_index("ix_notifications_type", "notifications", ["type"])
    op.create_index("ix_notifications_cashier_id", "notifications", ["cashier_id"])
    op.create_index("ix_notifications_is_read", "notifications", ["is_read"])
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("cashier_session_entries")
    op.drop_table("cashier_daily_sessions")
    op.drop_table("sales_orders")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
