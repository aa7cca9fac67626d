"""
API dependencies for database access, identity providers and webhook
authentication.
"""

from typing import Any, Dict, Optional

from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from authbridge.core.config import settings
from authbridge.core.exceptions import AuthenticationError, ConfigurationError
from authbridge.core.logging import get_logger
from authbridge.core.security import verify_svix_signature
from authbridge.db.database import get_db
from authbridge.services.clerk_service import clerk_service
from authbridge.services.invitation_linker import InvitationLinker
from authbridge.services.lifecycle_sync import LifecycleSync
from authbridge.services.login_router import LoginRouter
from authbridge.services.migration_completion import MigrationCompletionService
from authbridge.services.provisioning import ShellAccountProvisioner
from authbridge.services.supabase_auth_service import supabase_auth_service
from authbridge.utils.email import normalize_email

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)

__all__ = [
    "get_db",
    "get_legacy_provider",
    "get_identity_provider",
    "get_clerk_session_user_id",
    "get_completion_identifier",
    "get_login_router",
    "get_completion_service",
    "get_invitation_linker",
    "get_provisioner",
    "get_lifecycle_sync",
    "verify_clerk_webhook",
]


def get_legacy_provider() -> Any:
    """Legacy identity provider client (Clerk)."""
    return clerk_service


def get_identity_provider() -> Any:
    """New identity provider client (Supabase Auth)."""
    return supabase_auth_service


def _resolve_clerk_session(legacy: Any, session_id: str) -> str:
    legacy_user_id = legacy.verify_session(session_id)
    if not legacy_user_id:
        logger.warning(
            "Rejected request with inactive legacy session",
            extra={"session_id": session_id},
        )
        raise AuthenticationError("Your sign-in session has ended. Please sign in again.")
    return legacy_user_id


def get_clerk_session_user_id(
    x_clerk_session_id: Optional[str] = Header(None),
    legacy: Any = Depends(get_legacy_provider),
) -> str:
    """Legacy user id owning the caller's active Clerk session."""
    if not x_clerk_session_id:
        raise AuthenticationError("Sign in to continue")
    return _resolve_clerk_session(legacy, x_clerk_session_id)


def get_completion_identifier(
    x_clerk_session_id: Optional[str] = Header(None),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    legacy: Any = Depends(get_legacy_provider),
    identity: Any = Depends(get_identity_provider),
) -> str:
    """
    Identify the user completing a migration from their credentials.

    An active Clerk session yields the legacy id (session flow). A Supabase
    access token from a password-recovery link yields the email (reset
    flow). The request body never names the user.

    Raises:
        AuthenticationError: Neither credential was sent, or it did not verify
    """
    if x_clerk_session_id:
        return _resolve_clerk_session(legacy, x_clerk_session_id)

    if credentials is not None:
        account = identity.get_user_for_token(credentials.credentials)
        if not account or not account.get("email"):
            logger.warning("Rejected completion with invalid recovery token")
            raise AuthenticationError(
                "This password reset link is invalid or has expired"
            )
        return normalize_email(account["email"])

    raise AuthenticationError("Sign in or use a password reset link to continue")


def get_provisioner(
    db: Session = Depends(get_db),
    legacy: Any = Depends(get_legacy_provider),
    identity: Any = Depends(get_identity_provider),
) -> ShellAccountProvisioner:
    return ShellAccountProvisioner(db, legacy, identity)


def get_login_router(
    db: Session = Depends(get_db),
    legacy: Any = Depends(get_legacy_provider),
    identity: Any = Depends(get_identity_provider),
) -> LoginRouter:
    return LoginRouter(db, legacy, identity)


def get_completion_service(
    db: Session = Depends(get_db),
    legacy: Any = Depends(get_legacy_provider),
    identity: Any = Depends(get_identity_provider),
) -> MigrationCompletionService:
    return MigrationCompletionService(db, legacy, identity)


def get_invitation_linker(db: Session = Depends(get_db)) -> InvitationLinker:
    return InvitationLinker(db)


def get_lifecycle_sync(db: Session = Depends(get_db)) -> LifecycleSync:
    return LifecycleSync(db)


async def verify_clerk_webhook(request: Request) -> Dict[str, Any]:
    """
    Verify the Svix signature on a Clerk webhook delivery.

    Returns:
        dict: The verified event payload

    Raises:
        ConfigurationError: The signing secret is not configured
        SignatureInvalidError: Missing headers, stale timestamp or bad signature
    """
    if not settings.CLERK_WEBHOOK_SECRET:
        logger.error("CLERK_WEBHOOK_SECRET is not configured")
        raise ConfigurationError("Webhook secret not configured")

    body = await request.body()
    payload = verify_svix_signature(
        settings.CLERK_WEBHOOK_SECRET,
        {
            "svix-id": request.headers.get("svix-id"),
            "svix-timestamp": request.headers.get("svix-timestamp"),
            "svix-signature": request.headers.get("svix-signature"),
        },
        body,
        tolerance_seconds=settings.WEBHOOK_TOLERANCE_SECONDS,
    )
    logger.info(
        "Webhook signature verified",
        extra={
            "svix_id": request.headers.get("svix-id"),
            "event_type": payload.get("type"),
        },
    )
    return payload
