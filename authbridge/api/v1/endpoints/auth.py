"""
Authentication endpoints: login routing, migration completion and lookup,
and invitation acceptance.
"""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from authbridge.api.deps import (
    get_clerk_session_user_id,
    get_completion_identifier,
    get_completion_service,
    get_db,
    get_invitation_linker,
    get_login_router,
)
from authbridge.core.logging import get_logger
from authbridge.crud import migration as migration_crud
from authbridge.models.migration import MigrationStatus
from authbridge.schemas.auth import (
    AcceptInvitationRequest,
    AcceptInvitationResponse,
    CheckMigrationRequest,
    CheckMigrationResponse,
    CompleteMigrationRequest,
    CompleteMigrationResponse,
    ErrorResponse,
    InvitationInfo,
    InvitationResponse,
    LoginRequest,
    LoginResponse,
    SessionInfo,
)
from authbridge.services.invitation_linker import InvitationLinker
from authbridge.services.login_router import LoginRouter, LoginStatus
from authbridge.services.migration_completion import MigrationCompletionService
from authbridge.utils.email import normalize_email

logger = get_logger(__name__)

router = APIRouter()


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    body = ErrorResponse(error={"code": code, "message": message})
    return JSONResponse(status_code=status_code, content=body.model_dump())


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={401: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def login(request: LoginRequest, login_router: LoginRouter = Depends(get_login_router)):
    """
    Email/password login.

    Tries the new provider first. Users who have not migrated yet are checked
    against the legacy provider and, on success, carried over to the new
    provider with the same password.
    """
    result = login_router.login(request.email, request.password)

    if result.status == LoginStatus.AUTHENTICATED and result.session:
        return LoginResponse(
            status=result.status.value,
            source=result.source.value if result.source else "",
            session=SessionInfo.from_provider(result.session),
        )

    if result.status == LoginStatus.NEEDS_PROVIDER_SWITCH:
        return _error(
            status.HTTP_409_CONFLICT,
            LoginStatus.NEEDS_PROVIDER_SWITCH.value,
            "This account uses a different sign-in method. "
            "Please set a new password to continue.",
        )

    return _error(
        status.HTTP_401_UNAUTHORIZED,
        LoginStatus.INVALID_CREDENTIALS.value,
        "Invalid email or password",
    )


@router.post(
    "/complete-migration",
    response_model=CompleteMigrationResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
def complete_migration(
    request: CompleteMigrationRequest,
    identifier: str = Depends(get_completion_identifier),
    service: MigrationCompletionService = Depends(get_completion_service),
):
    """
    Set a new-provider password and mark the account migrated.

    The user is whoever owns the active legacy session or the password
    recovery token sent with the request.
    """
    result = service.complete(identifier, request.password)
    return CompleteMigrationResponse(already_migrated=result.already_migrated)


@router.post("/check-migration", response_model=CheckMigrationResponse)
def check_migration(request: CheckMigrationRequest, db: Session = Depends(get_db)):
    """Report whether an email or legacy id has a ledger entry and its state."""
    if request.legacy_user_id:
        entry = migration_crud.get_by_legacy_id(db, request.legacy_user_id)
    else:
        entry = migration_crud.get_by_email(db, normalize_email(request.email))

    if entry is None or entry.deleted_at is not None:
        return CheckMigrationResponse(
            exists=False, migrated=False, status=MigrationStatus.UNMAPPED.value
        )
    return CheckMigrationResponse(
        exists=True, migrated=bool(entry.migrated), status=entry.status.value
    )


@router.post(
    "/accept-invitation",
    response_model=AcceptInvitationResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        410: {"model": ErrorResponse},
    },
)
def accept_invitation(
    request: AcceptInvitationRequest,
    legacy_user_id: str = Depends(get_clerk_session_user_id),
    linker: InvitationLinker = Depends(get_invitation_linker),
):
    """Bind an invitation token to the legacy id the invitee just signed in with."""
    linker.link(request.token, legacy_user_id)
    return AcceptInvitationResponse()


@router.get(
    "/invitation/{token}",
    response_model=InvitationResponse,
    responses={404: {"model": ErrorResponse}},
)
def get_invitation(
    token: str, linker: InvitationLinker = Depends(get_invitation_linker)
):
    """Describe an invitation before the invitee signs in to accept it."""
    details = linker.describe(token)
    user = details.user
    return InvitationResponse(
        invitation=InvitationInfo(
            email=user.email,
            name=user.name,
            role=user.role,
            invited_by=details.invited_by,
            expires_at=user.invitation_expires_at,
            expired=details.expired,
            accepted=details.accepted,
        )
    )
