"""auth core: users, sessions, reset tokens, linked accounts, audit

Revision ID: 0001_auth_core
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_auth_core"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  op.create_table(
    "users",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("email", sa.String(320), nullable=False),
    sa.Column("name", sa.String(200), nullable=False),
    sa.Column("password_hash", sa.String(), nullable=True),
    sa.Column("role", sa.String(32), nullable=False, server_default="member"),
    sa.Column("avatar_url", sa.String(), nullable=True),
    sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.Column("two_factor_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column("two_factor_secret_encrypted", sa.Text(), nullable=True),
    sa.Column("two_factor_verified_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("backup_code_hashes", sa.JSON(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_users_email", "users", ["email"], unique=True)

  op.create_table(
    "sessions",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    sa.Column("token_hash", sa.String(64), nullable=False),
    sa.Column("device_info", sa.String(), nullable=True),
    sa.Column("user_agent", sa.String(), nullable=True),
    sa.Column("ip_address", sa.String(), nullable=True),
    sa.Column("location", sa.String(), nullable=True),
    sa.Column("is_valid", sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("last_active_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_sessions_user_id", "sessions", ["user_id"])
  op.create_index("ix_sessions_token_hash", "sessions", ["token_hash"], unique=True)

  op.create_table(
    "password_reset_tokens",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    sa.Column("token_hash", sa.String(64), nullable=False),
    sa.Column("request_ip", sa.String(), nullable=True),
    sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_password_reset_tokens_user_id", "password_reset_tokens", ["user_id"])
  op.create_index("ix_password_reset_tokens_token_hash", "password_reset_tokens", ["token_hash"], unique=True)

  op.create_table(
    "linked_accounts",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    sa.Column("provider", sa.String(64), nullable=False),
    sa.Column("provider_account_id", sa.String(255), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.UniqueConstraint("provider", "provider_account_id", name="uq_linked_accounts_provider_account"),
  )
  op.create_index("ix_linked_accounts_user_id", "linked_accounts", ["user_id"])

  op.create_table(
    "audit_events",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("actor_id", sa.String(36), nullable=True),
    sa.Column("event_type", sa.String(120), nullable=False),
    sa.Column("entity_type", sa.String(64), nullable=False),
    sa.Column("entity_id", sa.String(36), nullable=True),
    sa.Column("payload", sa.JSON(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_audit_events_actor_id", "audit_events", ["actor_id"])
  op.create_index("ix_audit_events_event_type", "audit_events", ["event_type"])
  op.create_index("ix_audit_events_created_at", "audit_events", ["created_at"])


def downgrade() -> None:
  op.drop_table("audit_events")
  op.drop_table("linked_accounts")
  op.drop_table("password_reset_tokens")
  op.drop_table("sessions")
  op.drop_index("ix_users_email", table_name="users")
  op.drop_table("users")
