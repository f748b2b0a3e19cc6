"""Order sync state and browser sessions.

Revision ID: 5c2e81d0a7f4
Revises:
Create Date: 2026-10-19 09:00:00.000000+00:00
"""

import sqlalchemy as sa
from alembic import op

revision = "5c2e81d0a7f4"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "order_sync_state",
        sa.Column("order_id", sa.Integer(), primary_key=True),
        sa.Column(
            "status",
            sa.Enum("UNSYNCED", "SYNCED", name="order_sync_status", native_enum=False),
            nullable=False,
        ),
        sa.Column("synced_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "browser_sessions",
        sa.Column("token", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("referral_username", sa.String(60), nullable=True),
        sa.Column("referral_captured_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_browser_sessions_user_id", "browser_sessions", ["user_id"])
    op.create_index("ix_browser_sessions_expires_at", "browser_sessions", ["expires_at"])


def downgrade() -> None:
    op.drop_index("ix_browser_sessions_expires_at", table_name="browser_sessions")
    op.drop_index("ix_browser_sessions_user_id", table_name="browser_sessions")
    op.drop_table("browser_sessions")
    op.drop_table("order_sync_state")
