"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ATOMIC_INCREMENT_FUNCTION = """
CREATE OR REPLACE FUNCTION atomic_increment(p_table text, p_id text, p_field text, p_delta integer)
RETURNS void
LANGUAGE plpgsql
AS $$
BEGIN
    EXECUTE format(
        'UPDATE %I SET %I = greatest(%I + $1, 0) WHERE id::text = $2',
        p_table, p_field, p_field
    ) USING p_delta, p_id;
END;
$$;
"""


def _uuid_default():
    if op.get_bind().dialect.name == "postgresql":
        return sa.text("gen_random_uuid()::text")
    return None


def upgrade() -> None:
    uuid_default = _uuid_default()
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "accounts",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_accounts_email", "accounts", ["email"], unique=True)
    op.create_table(
        "auth_sessions",
        sa.Column("jti", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("jti"),
    )
    op.create_index("ix_auth_sessions_user_id", "auth_sessions", ["user_id"])
    op.create_table(
        "tickets",
        sa.Column("id", sa.String(length=36), server_default=uuid_default, nullable=False),
        sa.Column("created_by", sa.String(length=36), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("title", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("severity", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), server_default="open", nullable=False),
        sa.Column("visibility", sa.String(length=16), server_default="private", nullable=False),
        sa.Column("upvote_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("image_url", sa.String(length=511), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("upvote_count >= 0", name="ck_tickets_upvote_count_non_negative"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tickets_created_by", "tickets", ["created_by"])
    op.create_table(
        "upvotes",
        sa.Column("id", sa.String(length=36), server_default=uuid_default, nullable=False),
        sa.Column("ticket_id", sa.String(length=36), sa.ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("ticket_id", "user_id", name="uq_upvotes_ticket_user"),
    )
    op.create_index("ix_upvotes_ticket_id", "upvotes", ["ticket_id"])
    op.create_index("ix_upvotes_user_id", "upvotes", ["user_id"])

    if op.get_bind().dialect.name == "postgresql":
        op.execute(ATOMIC_INCREMENT_FUNCTION)


def downgrade() -> None:
    if op.get_bind().dialect.name == "postgresql":
        op.execute("DROP FUNCTION IF EXISTS atomic_increment(text, text, text, integer)")
    op.drop_index("ix_upvotes_user_id", table_name="upvotes")
    op.drop_index("ix_upvotes_ticket_id", table_name="upvotes")
    op.drop_table("upvotes")
    op.drop_index("ix_tickets_created_by", table_name="tickets")
    op.drop_table("tickets")
    op.drop_index("ix_auth_sessions_user_id", table_name="auth_sessions")
    op.drop_table("auth_sessions")
    op.drop_index("ix_accounts_email", table_name="accounts")
    op.drop_table("accounts")
    op.drop_table("profiles")
