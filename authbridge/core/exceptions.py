"""
Error taxonomy shared by the migration bridge components.

Every error carries a stable ``code`` (used in JSON error bodies) and the
HTTP status an endpoint answers with when the error reaches it.
"""

from typing import Any, Dict, Optional


class MigrationError(Exception):
    """Base class for all bridge errors."""

    code = "error"
    http_status = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(MigrationError):
    """Bad input shape or strength; the caller can resubmit."""

    code = "validation_error"
    http_status = 400

    def __init__(self, message: str, rule: Optional[str] = None):
        super().__init__(message, {"rule": rule} if rule else None)
        self.rule = rule


class AuthenticationError(MigrationError):
    """The caller did not prove who they are (no or unverifiable session)."""

    code = "unauthorized"
    http_status = 401


class NotFoundError(MigrationError):
    """Referenced ledger entry, user or token is absent."""

    code = "not_found"
    http_status = 404


class InvalidTokenError(NotFoundError):
    """No invited user holds the supplied invitation token."""

    code = "invalid_token"


class ConflictError(MigrationError):
    """Insert-if-absent lost a race. Recovered internally by re-reading."""

    code = "conflict"
    http_status = 409


class ExpiredError(MigrationError):
    """Token or record is past its validity."""

    code = "expired"
    http_status = 410


class AlreadyActivatedError(MigrationError):
    """Invited row already holds a real legacy-provider id."""

    code = "already_activated"
    http_status = 409


class ProviderError(MigrationError):
    """An identity provider call failed, timed out or was unreachable."""

    code = "provider_error"
    http_status = 503

    def __init__(
        self,
        message: str,
        provider: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.provider = provider
        self.status_code = status_code


class EmailAlreadyRegisteredError(ProviderError):
    """The new provider already has an account for this email."""

    def __init__(self, email: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"An account already exists for '{email}'",
            provider="supabase",
            status_code=422,
            details=details,
        )
        self.email = email


class SignatureInvalidError(MigrationError):
    """Webhook payload failed authenticity checks; never retried."""

    code = "signature_invalid"
    http_status = 400


class ConfigurationError(MigrationError):
    """Required configuration (e.g. a signing secret) is missing."""

    code = "configuration_error"
    http_status = 500
