"""
Primary user table, identity-agnostic profile plus both provider ids.
"""

import enum
import secrets
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from authbridge.db.database import Base
from authbridge.utils.time import utcnow

INVITED_PREFIX = "invited_"


def new_placeholder_legacy_id() -> str:
    """Legacy id for an admin-invited row that has no provider account yet."""
    return f"{INVITED_PREFIX}{secrets.token_hex(8)}"


def is_placeholder_legacy_id(legacy_user_id: Optional[str]) -> bool:
    return bool(legacy_user_id) and str(legacy_user_id).startswith(INVITED_PREFIX)


class AccountStage(str, enum.Enum):
    """Where a user row sits on the way from the legacy to the new provider."""

    INVITED = "invited"
    LEGACY_ONLY = "legacy_only"
    BRIDGED = "bridged"
    MIGRATED = "migrated"


class User(Base):
    """User record shared by both identity providers. Never hard-deleted."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)

    # Stored lower-cased and trimmed
    email = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default="USER")

    # Legacy provider (Clerk) id; "invited_<random>" until an invitation is accepted
    legacy_user_id = Column(String(64), nullable=True, unique=True, index=True)
    # New provider (Supabase Auth) id, null until a shell exists
    new_user_id = Column(String(64), nullable=True, index=True)

    invitation_token = Column(String(128), nullable=True, unique=True, index=True)
    invitation_expires_at = Column(DateTime, nullable=True)
    invited_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    migration = relationship(
        "UserMigration",
        primaryjoin="User.email == foreign(UserMigration.email)",
        uselist=False,
        viewonly=True,
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def account_stage(self) -> AccountStage:
        """Stage derived from this row and its ledger entry."""
        if is_placeholder_legacy_id(self.legacy_user_id):
            return AccountStage.INVITED
        entry = self.migration
        if entry is not None and entry.deleted_at is None:
            if entry.migrated:
                return AccountStage.MIGRATED
            return AccountStage.BRIDGED
        if self.new_user_id and not self.legacy_user_id:
            # Provisioned directly in the new provider (accepted invitation)
            return AccountStage.MIGRATED
        if self.new_user_id:
            return AccountStage.BRIDGED
        return AccountStage.LEGACY_ONLY

    def invitation_is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.invitation_expires_at is None:
            return True
        return (now or utcnow()) >= self.invitation_expires_at
