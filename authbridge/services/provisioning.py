"""
Shell account provisioning.

Creates (or refreshes) the new-provider placeholder account for a user who
has so far only authenticated with the legacy provider. Safe to call any
number of times, concurrently, for the same user: the ledger's unique email
is the de-duplication point.
"""

import enum
import secrets
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from authbridge.core.config import settings
from authbridge.core.exceptions import (
    ConflictError,
    EmailAlreadyRegisteredError,
    NotFoundError,
    ValidationError,
)
from authbridge.core.logging import get_logger
from authbridge.crud import migration as crud_migration
from authbridge.crud import user as crud_user
from authbridge.models.migration import UserMigration
from authbridge.services.clerk_service import display_name, primary_email
from authbridge.utils.email import normalize_email
from authbridge.utils.time import isoformat_z, utcnow

logger = get_logger(__name__)


class ProvisionOutcome(str, enum.Enum):
    """Which branch a provisioning call took."""

    CREATED = "created"
    ADOPTED = "adopted"
    REFRESHED = "refreshed"
    ALREADY_MIGRATED = "already_migrated"
    DELETED = "deleted"


@dataclass
class ProvisionResult:
    outcome: ProvisionOutcome
    entry: UserMigration
    # True when this call lost the insert race and re-read the winner's entry
    conflict: bool = False


class ShellAccountProvisioner:
    """Bridges a legacy identity into the new provider."""

    def __init__(self, db: Session, legacy: Any, identity: Any):
        self.db = db
        self.legacy = legacy
        self.identity = identity

    def provision(self, legacy_user_id: str, source: str = "webhook") -> ProvisionResult:
        """
        Provision by legacy id, resolving the email through the legacy provider.

        Raises:
            NotFoundError: The legacy provider has no such user
            ProviderError: Either provider failed; safe to retry
        """
        legacy_user = self.legacy.get_user(legacy_user_id)
        if legacy_user is None:
            raise NotFoundError(f"Legacy user '{legacy_user_id}' not found")
        return self.provision_legacy_user(legacy_user, source=source)

    def provision_legacy_user(
        self, legacy_user: Dict[str, Any], source: str = "webhook"
    ) -> ProvisionResult:
        """
        Provision from a legacy user object already in hand.

        Args:
            legacy_user: Legacy provider user object
            source: "webhook" or "login", recorded in shell metadata

        Returns:
            ProvisionResult naming the branch taken and the ledger entry
        """
        legacy_user_id = legacy_user["id"]
        raw_email = primary_email(legacy_user)
        if not raw_email:
            raise ValidationError(
                f"Legacy user '{legacy_user_id}' has no email address", rule="email"
            )
        email = normalize_email(raw_email)

        entry = crud_migration.get_by_email(self.db, email)
        if entry is None:
            return self._create_shell(email, legacy_user, source)
        return self._handle_existing(entry, legacy_user)

    def _handle_existing(
        self, entry: UserMigration, legacy_user: Dict[str, Any]
    ) -> ProvisionResult:
        log_extra = {
            "email": entry.email,
            "legacy_user_id": legacy_user["id"],
            "new_user_id": entry.new_user_id,
        }

        if entry.deleted_at is not None:
            logger.info("Ledger entry is soft-deleted; not provisioning", extra=log_extra)
            return ProvisionResult(ProvisionOutcome.DELETED, entry)

        if entry.migrated:
            logger.debug("User already migrated; nothing to provision", extra=log_extra)
            return ProvisionResult(ProvisionOutcome.ALREADY_MIGRATED, entry)

        # Shell exists but the user has not chosen a new password yet:
        # refresh profile metadata only, never the credential.
        self.identity.update_metadata(
            entry.new_user_id,
            {
                "clerk_id": legacy_user["id"],
                "first_name": legacy_user.get("first_name"),
                "last_name": legacy_user.get("last_name"),
                "full_name": display_name(legacy_user),
                "last_clerk_login": isoformat_z(utcnow()),
            },
        )
        crud_user.set_user_new_id(
            self.db,
            entry.new_user_id,
            legacy_user_id=legacy_user["id"],
            email=entry.email,
        )
        logger.info("Shell account refreshed", extra=log_extra)
        return ProvisionResult(ProvisionOutcome.REFRESHED, entry)

    def _create_shell(
        self, email: str, legacy_user: Dict[str, Any], source: str
    ) -> ProvisionResult:
        legacy_user_id = legacy_user["id"]
        metadata = {
            "clerk_id": legacy_user_id,
            "first_name": legacy_user.get("first_name"),
            "last_name": legacy_user.get("last_name"),
            "full_name": display_name(legacy_user),
            "migrated": False,
            "created_via": source,
            "last_clerk_login": isoformat_z(utcnow()),
        }

        outcome = ProvisionOutcome.CREATED
        try:
            new_user_id = self.identity.create_account(
                email,
                secrets.token_urlsafe(settings.SHELL_PASSWORD_BYTES),
                metadata,
                email_confirmed=True,
            )
        except EmailAlreadyRegisteredError:
            # Lost a race, or an earlier attempt died before the ledger write
            existing = self.identity.find_account_by_email(email)
            if existing is None:
                raise
            new_user_id = existing["id"]
            outcome = ProvisionOutcome.ADOPTED
            logger.info(
                "Adopting existing new-provider account",
                extra={"email": email, "new_user_id": new_user_id},
            )

        try:
            entry = crud_migration.create_shell(
                self.db, email, legacy_user_id, new_user_id
            )
        except ConflictError:
            entry = self._reread_winner(email)
            if entry.new_user_id != new_user_id:
                logger.warning(
                    "Provisioning race left an orphan new-provider account",
                    extra={
                        "email": email,
                        "orphan_new_user_id": new_user_id,
                        "new_user_id": entry.new_user_id,
                    },
                )
            result = self._handle_existing(entry, legacy_user)
            result.conflict = True
            return result

        crud_user.set_user_new_id(
            self.db, new_user_id, legacy_user_id=legacy_user_id, email=email
        )
        logger.info(
            "Shell account provisioned",
            extra={
                "email": email,
                "legacy_user_id": legacy_user_id,
                "new_user_id": new_user_id,
                "outcome": outcome.value,
                "source": source,
            },
        )
        return ProvisionResult(outcome, entry)

    def _reread_winner(self, email: str) -> UserMigration:
        entry: Optional[UserMigration] = crud_migration.get_by_email(self.db, email)
        if entry is None:
            raise ConflictError(
                f"Ledger conflict for '{email}' but no entry could be read back"
            )
        return entry
