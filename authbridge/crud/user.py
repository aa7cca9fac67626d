"""
CRUD operations for the primary user table.
"""

import secrets
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from authbridge.core.config import settings
from authbridge.core.exceptions import ConflictError
from authbridge.core.logging import get_logger
from authbridge.models.user import INVITED_PREFIX, User, new_placeholder_legacy_id
from authbridge.utils.email import normalize_email
from authbridge.utils.time import utcnow

logger = get_logger(__name__)


def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
    """
    Get a user by ID.

    Args:
        db: Database session
        user_id: User ID

    Returns:
        User object or None if not found
    """
    return db.query(User).filter(User.id == user_id).first()


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    """
    Get a user by email (normalised before lookup).

    Args:
        db: Database session
        email: Email address

    Returns:
        User object or None if not found
    """
    return db.query(User).filter(User.email == normalize_email(email)).first()


def get_user_by_legacy_id(db: Session, legacy_user_id: str) -> Optional[User]:
    return db.query(User).filter(User.legacy_user_id == legacy_user_id).first()


def get_user_by_invitation_token(db: Session, token: str) -> Optional[User]:
    return db.query(User).filter(User.invitation_token == token).first()


def set_user_new_id(
    db: Session,
    new_user_id: str,
    legacy_user_id: Optional[str] = None,
    email: Optional[str] = None,
    commit: bool = True,
) -> bool:
    """
    Back-fill the new-provider id onto the user row.

    The row is matched by legacy id first and by email when no row carries
    that legacy id.

    Args:
        db: Database session
        new_user_id: New provider account id
        legacy_user_id: Legacy provider id, if known
        email: Email address, if known
        commit: Commit immediately, or leave it to the caller's transaction

    Returns:
        True if a user row was updated, False if no row matched
    """
    user = None
    if legacy_user_id:
        user = get_user_by_legacy_id(db, legacy_user_id)
    if user is None and email:
        user = get_user_by_email(db, email)
    if user is None:
        logger.info(
            "No user row to back-fill new provider id",
            extra={
                "legacy_user_id": legacy_user_id,
                "email": email,
                "new_user_id": new_user_id,
            },
        )
        return False

    if user.new_user_id != new_user_id:
        user.new_user_id = new_user_id  # type: ignore
        user.updated_at = utcnow()  # type: ignore
    if commit:
        db.commit()
    else:
        db.flush()
    return True


def soft_delete_user_by_legacy_id(
    db: Session, legacy_user_id: str, commit: bool = True
) -> bool:
    """
    Soft-delete the user row holding a legacy id.

    Returns:
        True if this call set deleted_at, False if the row was missing or
        already deleted
    """
    now = utcnow()
    result = db.execute(
        update(User)
        .where(User.legacy_user_id == legacy_user_id, User.deleted_at.is_(None))
        .values(deleted_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if commit:
        db.commit()
    else:
        db.flush()
    return bool(result.rowcount)


def link_invitation(
    db: Session, user_id: int, token: str, legacy_user_id: str
) -> bool:
    """
    Consume an invitation token and attach a real legacy id in one UPDATE.

    The WHERE clause includes the token and the placeholder prefix, so of two
    concurrent acceptances only one can match.

    Returns:
        True if this call consumed the token

    Raises:
        ConflictError: Another user row already holds the legacy id
    """
    try:
        result = db.execute(
            update(User)
            .where(
                User.id == user_id,
                User.invitation_token == token,
                User.legacy_user_id.startswith(INVITED_PREFIX, autoescape=True),
            )
            .values(
                legacy_user_id=legacy_user_id,
                invitation_token=None,
                invitation_expires_at=None,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError(
            f"Legacy user '{legacy_user_id}' is already linked to another account"
        ) from e
    return bool(result.rowcount)


def create_invited_user(
    db: Session,
    email: str,
    name: Optional[str] = None,
    role: str = "USER",
    invited_by: Optional[int] = None,
    ttl_days: Optional[int] = None,
) -> User:
    """
    Create an admin-provisioned placeholder row awaiting its first sign-in.

    Args:
        db: Database session
        email: Invitee email
        name: Optional display name
        role: USER, CONTRIBUTOR or ADMIN
        invited_by: Inviting user's id
        ttl_days: Token lifetime, defaults to settings.INVITATION_TTL_DAYS

    Returns:
        The new User with a placeholder legacy id and a fresh token

    Raises:
        ValueError: If a user with the email already exists
    """
    normalized = normalize_email(email)
    if get_user_by_email(db, normalized):
        raise ValueError(f"Email '{normalized}' already exists")

    ttl = ttl_days if ttl_days is not None else settings.INVITATION_TTL_DAYS
    user = User(
        email=normalized,
        name=name,
        role=role,
        legacy_user_id=new_placeholder_legacy_id(),
        invitation_token=secrets.token_urlsafe(32),
        invitation_expires_at=utcnow() + timedelta(days=ttl),
        invited_by=invited_by,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info(
        "Invited user created",
        extra={"user_id": user.id, "email": normalized, "role": role},
    )
    return user


def extend_invitation(db: Session, user_id: int, expires_at: datetime) -> bool:
    """
    Push out an invitation's expiry without regenerating its token.

    Returns:
        False if the user has no outstanding token
    """
    user = get_user_by_id(db, user_id)
    if not user or not user.invitation_token:
        return False
    user.invitation_expires_at = expires_at  # type: ignore
    db.commit()
    return True
