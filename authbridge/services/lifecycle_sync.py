"""
Propagates legacy-provider account deletion into the ledger and user table.
"""

from sqlalchemy.orm import Session

from authbridge.core.logging import get_logger
from authbridge.crud import migration as crud_migration
from authbridge.crud import user as crud_user

logger = get_logger(__name__)


class LifecycleSync:
    def __init__(self, db: Session):
        self.db = db

    def handle_user_deleted(self, legacy_user_id: str) -> bool:
        """
        Soft-delete the ledger entry and user row for a legacy id.

        Redelivery is a no-op: only rows without ``deleted_at`` are touched,
        and ``migrated`` is never cleared.

        Returns:
            True if anything was deleted by this call
        """
        try:
            ledger_deleted = crud_migration.soft_delete(
                self.db, legacy_user_id, commit=False
            )
            user_deleted = crud_user.soft_delete_user_by_legacy_id(
                self.db, legacy_user_id, commit=False
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Legacy user deletion synced",
            extra={
                "legacy_user_id": legacy_user_id,
                "ledger_deleted": ledger_deleted,
                "user_deleted": user_deleted,
            },
        )
        return ledger_deleted or user_deleted
