"""create_migration_bridge_tables

Revision ID: 3f2a9c1d7b4e
Revises:
Create Date: 2026-10-17 09:12:03.118204

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3f2a9c1d7b4e"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema - users, migration ledger and migration audit log.

    user_migration.email is unique; provisioning relies on that constraint
    as its only insert-if-absent guard.
    """
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="USER"),
        sa.Column("legacy_user_id", sa.String(64), nullable=True),
        sa.Column("new_user_id", sa.String(64), nullable=True),
        sa.Column("invitation_token", sa.String(128), nullable=True),
        sa.Column("invitation_expires_at", sa.DateTime(), nullable=True),
        sa.Column("invited_by", sa.Integer(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["invited_by"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_legacy_user_id", "users", ["legacy_user_id"], unique=True)
    op.create_index("ix_users_new_user_id", "users", ["new_user_id"])
    op.create_index(
        "ix_users_invitation_token", "users", ["invitation_token"], unique=True
    )

    op.create_table(
        "user_migration",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("legacy_user_id", sa.String(64), nullable=True),
        sa.Column("new_user_id", sa.String(64), nullable=False),
        sa.Column("migrated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("migrated_at", sa.DateTime(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_migration_email", "user_migration", ["email"], unique=True)
    op.create_index(
        "ix_user_migration_legacy_user_id", "user_migration", ["legacy_user_id"]
    )
    op.create_index("ix_user_migration_new_user_id", "user_migration", ["new_user_id"])

    op.create_table(
        "migration_log",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("legacy_user_id", sa.String(64), nullable=True),
        sa.Column("new_user_id", sa.String(64), nullable=False),
        sa.Column("method", sa.String(30), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_migration_log_email", "migration_log", ["email"])


def downgrade() -> None:
    """Downgrade schema - drop all bridge tables.

    WARNING: This discards the migration ledger.
    """
    op.drop_table("migration_log")
    op.drop_table("user_migration")
    op.drop_table("users")
