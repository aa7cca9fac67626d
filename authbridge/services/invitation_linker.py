"""
Invitation linking: turns an admin-provisioned placeholder row into a real
account the first time the invitee signs in with the legacy provider.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from authbridge.core.exceptions import (
    AlreadyActivatedError,
    ConflictError,
    ExpiredError,
    InvalidTokenError,
    ValidationError,
)
from authbridge.core.logging import get_logger
from authbridge.crud import user as crud_user
from authbridge.models.user import AccountStage, User

logger = get_logger(__name__)

DEFAULT_INVITER = "Administrator"


@dataclass
class InvitationDetails:
    user: User
    invited_by: str
    expired: bool
    accepted: bool


class InvitationLinker:
    def __init__(self, db: Session):
        self.db = db

    def _get_by_token(self, token: str) -> User:
        user = crud_user.get_user_by_invitation_token(self.db, token) if token else None
        if user is None:
            logger.info("Unknown invitation token presented")
            raise InvalidTokenError("Invalid invitation token")
        return user

    def describe(self, token: str, now: Optional[datetime] = None) -> InvitationDetails:
        """
        Read-only view of an invitation for the page shown before sign-in.

        Raises:
            InvalidTokenError: No row holds the token
        """
        user = self._get_by_token(token)
        inviter = (
            crud_user.get_user_by_id(self.db, user.invited_by)
            if user.invited_by
            else None
        )
        invited_by = (inviter.name or inviter.email) if inviter else DEFAULT_INVITER
        return InvitationDetails(
            user=user,
            invited_by=invited_by,
            expired=user.invitation_is_expired(now),
            accepted=user.account_stage != AccountStage.INVITED,
        )

    def link(
        self, token: str, legacy_user_id: str, now: Optional[datetime] = None
    ) -> User:
        """
        Bind an invitation to a legacy provider id and consume the token.

        An expired token is left in place so an administrator can extend it.

        Raises:
            InvalidTokenError: No row holds the token (or it was just consumed)
            ExpiredError: now is at or past the token's expiry
            AlreadyActivatedError: The row already has a real legacy id, or
                the legacy id is already linked to another user
        """
        if not legacy_user_id:
            raise ValidationError("A legacy user id is required", rule="legacy_user_id")

        user = self._get_by_token(token)
        log_extra = {"user_id": user.id, "legacy_user_id": legacy_user_id}

        if user.invitation_is_expired(now):
            logger.info("Invitation token expired", extra=log_extra)
            raise ExpiredError("Invitation has expired")

        if user.account_stage != AccountStage.INVITED:
            logger.info("Invitation already activated", extra=log_extra)
            raise AlreadyActivatedError("Invitation has already been accepted")

        try:
            linked = crud_user.link_invitation(self.db, user.id, token, legacy_user_id)
        except ConflictError as e:
            logger.info("Legacy account already linked elsewhere", extra=log_extra)
            raise AlreadyActivatedError(
                "This sign-in is already linked to another account"
            ) from e
        if not linked:
            raise InvalidTokenError("Invalid invitation token")

        self.db.refresh(user)
        logger.info("Invitation accepted", extra=log_extra)
        return user
