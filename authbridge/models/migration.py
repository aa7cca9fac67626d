"""
Migration ledger models.

``user_migration`` is the single source of truth for whether an identity has
moved from the legacy provider to the new one. ``migration_log`` is an
append-only audit trail of completed migrations.
"""

import enum

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from authbridge.db.database import Base
from authbridge.utils.time import utcnow


class MigrationStatus(str, enum.Enum):
    """Ledger-side migration state for one email."""

    UNMAPPED = "unmapped"
    SHELL_CREATED = "shell_created"
    MIGRATED = "migrated"
    DELETED = "deleted"


class UserMigration(Base):
    """One ledger entry per normalised email."""

    __tablename__ = "user_migration"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    legacy_user_id = Column(String(64), nullable=True, index=True)
    new_user_id = Column(String(64), nullable=False, index=True)
    migrated = Column(Boolean, nullable=False, default=False)
    migrated_at = Column(DateTime, nullable=True)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def status(self) -> MigrationStatus:
        if self.deleted_at is not None:
            return MigrationStatus.DELETED
        if self.migrated:
            return MigrationStatus.MIGRATED
        return MigrationStatus.SHELL_CREATED


class MigrationLog(Base):
    """Audit row written in the same transaction that marks an entry migrated."""

    __tablename__ = "migration_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, index=True)
    legacy_user_id = Column(String(64), nullable=True)
    new_user_id = Column(String(64), nullable=False)
    method = Column(String(30), nullable=False)  # password_reset, session
    created_at = Column(DateTime, nullable=False, default=utcnow)
