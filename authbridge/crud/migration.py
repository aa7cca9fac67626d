"""
Migration ledger operations.

The ledger is only ever mutated through ``create_shell``, ``mark_migrated``
and ``soft_delete``. Concurrency control is the unique email constraint
(insert-if-absent) plus conditional updates; no row locks are taken.
"""

from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from authbridge.core.exceptions import ConflictError, NotFoundError
from authbridge.core.logging import get_logger
from authbridge.models.migration import MigrationLog, UserMigration
from authbridge.utils.email import normalize_email
from authbridge.utils.time import utcnow

logger = get_logger(__name__)


def get_by_email(db: Session, email: str) -> Optional[UserMigration]:
    """
    Get the ledger entry for an email, soft-deleted entries included.

    Args:
        db: Database session
        email: Email address (normalised here)

    Returns:
        UserMigration or None if the email has never been bridged
    """
    return (
        db.query(UserMigration)
        .filter(UserMigration.email == normalize_email(email))
        .first()
    )


def get_by_legacy_id(db: Session, legacy_user_id: str) -> Optional[UserMigration]:
    return (
        db.query(UserMigration)
        .filter(UserMigration.legacy_user_id == legacy_user_id)
        .first()
    )


def create_shell(
    db: Session, email: str, legacy_user_id: Optional[str], new_user_id: str
) -> UserMigration:
    """
    Insert a ledger entry for an email that has none.

    Args:
        db: Database session
        email: Email address (normalised here)
        legacy_user_id: Legacy provider id the shell was created for
        new_user_id: New provider id of the shell account

    Returns:
        The created entry with migrated=False

    Raises:
        ConflictError: Another caller already provisioned this email. The
            caller should re-read the entry instead of failing.
    """
    normalized = normalize_email(email)
    entry = UserMigration(
        email=normalized,
        legacy_user_id=legacy_user_id,
        new_user_id=new_user_id,
        migrated=False,
    )
    db.add(entry)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.info(
            "Ledger insert lost provisioning race",
            extra={"email": normalized, "legacy_user_id": legacy_user_id},
        )
        raise ConflictError(
            f"Ledger entry already exists for '{normalized}'",
            details={"email": normalized},
        ) from e
    db.refresh(entry)

    logger.info(
        "Ledger shell entry created",
        extra={
            "email": normalized,
            "legacy_user_id": legacy_user_id,
            "new_user_id": new_user_id,
        },
    )
    return entry


def mark_migrated(db: Session, email: str, commit: bool = True) -> UserMigration:
    """
    Flip an entry to migrated=True. Idempotent.

    The update is conditional on ``migrated = false`` so concurrent callers
    cannot overwrite each other's ``migrated_at``. Nothing in this module ever
    sets ``migrated`` back to False.

    Args:
        db: Database session
        email: Email address (normalised here)
        commit: Commit immediately. Pass False to fold the update into a
            wider transaction the caller commits.

    Returns:
        The (now migrated) entry

    Raises:
        NotFoundError: No live entry exists for the email
    """
    normalized = normalize_email(email)
    entry = get_by_email(db, normalized)
    if entry is None or entry.deleted_at is not None:
        raise NotFoundError(f"No migration record for '{normalized}'")

    result = db.execute(
        update(UserMigration)
        .where(
            UserMigration.email == normalized,
            UserMigration.migrated.is_(False),
            UserMigration.deleted_at.is_(None),
        )
        .values(migrated=True, migrated_at=utcnow(), updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )

    if commit:
        db.commit()
    else:
        db.flush()
    db.refresh(entry)

    if result.rowcount:
        logger.info(
            "Ledger entry marked migrated",
            extra={"email": normalized, "new_user_id": entry.new_user_id},
        )
    else:
        logger.debug(
            "Ledger entry already migrated", extra={"email": normalized}
        )
    return entry


def soft_delete(db: Session, legacy_user_id: str, commit: bool = True) -> bool:
    """
    Soft-delete the ledger entry for a legacy id.

    Only entries without ``deleted_at`` are touched, so redelivery keeps the
    original deletion timestamp. ``migrated`` is left as it is.

    Returns:
        True if an entry was deleted by this call, False if there was nothing
        (left) to delete
    """
    result = db.execute(
        update(UserMigration)
        .where(
            UserMigration.legacy_user_id == legacy_user_id,
            UserMigration.deleted_at.is_(None),
        )
        .values(deleted_at=utcnow(), updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if commit:
        db.commit()
    else:
        db.flush()
    return bool(result.rowcount)


def record_migration_log(
    db: Session,
    email: str,
    legacy_user_id: Optional[str],
    new_user_id: str,
    method: str,
) -> MigrationLog:
    """Append an audit row. The caller owns the transaction."""
    log_row = MigrationLog(
        email=normalize_email(email),
        legacy_user_id=legacy_user_id,
        new_user_id=new_user_id,
        method=method,
    )
    db.add(log_row)
    return log_row
