"""Users and medication reminders.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-16
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("full_name", sa.String(length=120), nullable=True),
        sa.Column("email", sa.String(length=254), nullable=True),
        sa.Column("phone_number", sa.String(length=32), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_users_phone_number", "users", ["phone_number"])

    op.create_table(
        "medications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("dosage", sa.String(length=120), server_default="", nullable=False),
        sa.Column("time", sa.String(length=5), nullable=False),
        sa.Column("is_taken", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("last_called_at", sa.DateTime(), nullable=True),
        sa.Column("retry_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_medications_user_id", "medications", ["user_id"])
    op.create_index("ix_medications_pending_time", "medications", ["is_taken", "time"])
    op.create_index("ix_medications_pending_called", "medications", ["is_taken", "last_called_at"])


def downgrade() -> None:
    op.drop_index("ix_medications_pending_called", table_name="medications")
    op.drop_index("ix_medications_pending_time", table_name="medications")
    op.drop_index("ix_medications_user_id", table_name="medications")
    op.drop_table("medications")
    op.drop_index("ix_users_phone_number", table_name="users")
    op.drop_table("users")
