"""
Migration completion: the user sets a new-provider password and the ledger
entry is flipped to migrated.
"""

from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from authbridge.core.exceptions import NotFoundError, ProviderError
from authbridge.core.logging import get_logger
from authbridge.crud import migration as crud_migration
from authbridge.crud import user as crud_user
from authbridge.models.migration import UserMigration
from authbridge.models.user import AccountStage
from authbridge.utils.email import normalize_email
from authbridge.utils.password_policy import validate_password_strength
from authbridge.utils.time import isoformat_z, utcnow

logger = get_logger(__name__)

METHOD_SESSION = "session"
METHOD_PASSWORD_RESET = "password_reset"


@dataclass
class CompletionResult:
    entry: UserMigration
    already_migrated: bool


class MigrationCompletionService:
    """Finalises a migration once the user has chosen a new password."""

    def __init__(self, db: Session, legacy: Any, identity: Any):
        self.db = db
        self.legacy = legacy
        self.identity = identity

    def _resolve(self, identifier: str) -> UserMigration:
        if "@" in identifier:
            entry = crud_migration.get_by_email(self.db, normalize_email(identifier))
        else:
            entry = crud_migration.get_by_legacy_id(self.db, identifier.strip())
        if entry is None or entry.deleted_at is not None:
            raise NotFoundError("No migration record found for this user")
        return entry

    def complete(self, identifier: str, new_password: str) -> CompletionResult:
        """
        Set the new-provider password and mark the ledger entry migrated.

        Args:
            identifier: Legacy provider id (session flow) or email (reset flow)
            new_password: The password the user chose

        Returns:
            CompletionResult; already_migrated=True when nothing was changed

        Raises:
            ValidationError: Password fails a strength rule
            NotFoundError: No live ledger entry for the identifier
            ProviderError: The credential update failed; the ledger is untouched
        """
        validate_password_strength(new_password)
        entry = self._resolve(identifier)
        method = METHOD_PASSWORD_RESET if "@" in identifier else METHOD_SESSION
        log_extra = {
            "email": entry.email,
            "legacy_user_id": entry.legacy_user_id,
            "new_user_id": entry.new_user_id,
            "method": method,
        }

        if entry.migrated:
            logger.info("Migration already complete", extra=log_extra)
            return CompletionResult(entry, already_migrated=True)

        now = utcnow()
        self.identity.update_credential(
            entry.new_user_id,
            new_password,
            {"migrated": True, "migrated_at": isoformat_z(now)},
        )

        try:
            crud_migration.mark_migrated(self.db, entry.email, commit=False)
            crud_user.set_user_new_id(
                self.db,
                entry.new_user_id,
                legacy_user_id=entry.legacy_user_id,
                email=entry.email,
                commit=False,
            )
            crud_migration.record_migration_log(
                self.db, entry.email, entry.legacy_user_id, entry.new_user_id, method
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(
                "Failed to record completed migration", extra=log_extra, exc_info=True
            )
            raise

        self.db.refresh(entry)
        logger.info("Migration completed", extra=log_extra)
        self._revoke_legacy_sessions(entry)
        return CompletionResult(entry, already_migrated=False)

    def _revoke_legacy_sessions(self, entry: UserMigration) -> None:
        legacy_user_id = entry.legacy_user_id
        if not legacy_user_id:
            return
        user = crud_user.get_user_by_email(self.db, entry.email)
        if user is not None and user.account_stage == AccountStage.INVITED:
            # Placeholder id, there is no legacy account to sign out
            return
        try:
            self.legacy.revoke_all_sessions(legacy_user_id)
        except ProviderError as e:
            logger.warning(
                "Could not revoke legacy sessions after migration",
                extra={
                    "legacy_user_id": legacy_user_id,
                    "provider_status": e.status_code,
                    "error": e.message,
                },
            )
