"""
Pydantic schemas for the login, migration and invitation endpoints.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class ErrorDetail(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorDetail


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=1024)

    @field_validator("email")
    @classmethod
    def strip_email(cls, v: str) -> str:
        return v.strip()


class SessionInfo(BaseModel):
    """New-provider session handed back to the client."""

    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    user_id: Optional[str] = None

    @classmethod
    def from_provider(cls, session: Dict[str, Any]) -> "SessionInfo":
        user = session.get("user") or {}
        return cls(
            access_token=session["access_token"],
            refresh_token=session.get("refresh_token"),
            token_type=session.get("token_type") or "bearer",
            expires_in=session.get("expires_in"),
            user_id=user.get("id"),
        )


class LoginResponse(BaseModel):
    success: bool = True
    status: str
    source: str
    session: SessionInfo


class CompleteMigrationRequest(BaseModel):
    """The user is identified by their session or reset token, not the body."""

    password: str = Field(..., max_length=1024)


class CompleteMigrationResponse(BaseModel):
    success: bool = True
    already_migrated: bool = False


class CheckMigrationRequest(BaseModel):
    legacy_user_id: Optional[str] = Field(None, max_length=64)
    email: Optional[str] = Field(None, max_length=255)

    @model_validator(mode="after")
    def require_identifier(self) -> "CheckMigrationRequest":
        if not (self.legacy_user_id or self.email):
            raise ValueError("Either legacy_user_id or email is required")
        return self


class CheckMigrationResponse(BaseModel):
    success: bool = True
    exists: bool
    migrated: bool
    status: str


class AcceptInvitationRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=128)


class AcceptInvitationResponse(BaseModel):
    success: bool = True


class InvitationInfo(BaseModel):
    email: str
    name: Optional[str] = None
    role: str
    invited_by: str
    expires_at: Optional[datetime] = None
    expired: bool
    accepted: bool


class InvitationResponse(BaseModel):
    success: bool = True
    invitation: InvitationInfo


class WebhookResponse(BaseModel):
    success: bool = True
    event: str
    action: str
