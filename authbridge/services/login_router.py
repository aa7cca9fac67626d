"""
Login routing between the new and the legacy identity provider.

The new provider is tried first. The legacy provider is only consulted for
emails whose account has not reached the migrated stage; once it has, the new
provider's answer is final.
"""

import enum
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from authbridge.core.exceptions import ProviderError
from authbridge.core.logging import get_logger
from authbridge.crud import migration as crud_migration
from authbridge.crud import user as crud_user
from authbridge.models.user import AccountStage
from authbridge.services.provisioning import ProvisionOutcome, ShellAccountProvisioner
from authbridge.utils.email import normalize_email
from authbridge.utils.time import isoformat_z, utcnow

logger = get_logger(__name__)


class LoginStatus(str, enum.Enum):
    AUTHENTICATED = "authenticated"
    INVALID_CREDENTIALS = "invalid_credentials"
    NEEDS_PROVIDER_SWITCH = "needs_provider_switch"


class LoginSource(str, enum.Enum):
    NEW_PROVIDER = "new_provider"
    LEGACY_CARRY_FORWARD = "legacy_carry_forward"


@dataclass
class LoginResult:
    status: LoginStatus
    session: Optional[Dict[str, Any]] = None
    source: Optional[LoginSource] = None


class LoginRouter:
    """Decides which provider authenticates a login attempt."""

    def __init__(self, db: Session, legacy: Any, identity: Any):
        self.db = db
        self.legacy = legacy
        self.identity = identity
        self.provisioner = ShellAccountProvisioner(db, legacy, identity)

    def login(self, email: str, password: str) -> LoginResult:
        """
        Authenticate an email/password pair, migrating on the way if needed.

        Returns:
            LoginResult with status AUTHENTICATED (and a new-provider session),
            INVALID_CREDENTIALS or NEEDS_PROVIDER_SWITCH

        Raises:
            ValidationError: Email is not an address
            ProviderError: A provider call failed; the caller should retry
        """
        email = normalize_email(email)

        session = self.identity.authenticate(email, password)
        if session:
            logger.info("Login via new provider", extra={"email": email})
            return LoginResult(LoginStatus.AUTHENTICATED, session, LoginSource.NEW_PROVIDER)

        if self._is_migrated(email):
            logger.info("Login rejected for migrated user", extra={"email": email})
            return LoginResult(LoginStatus.INVALID_CREDENTIALS)

        return self._login_via_legacy(email, password)

    def _is_migrated(self, email: str) -> bool:
        user = crud_user.get_user_by_email(self.db, email)
        if user is not None and not user.is_deleted:
            return user.account_stage == AccountStage.MIGRATED
        entry = crud_migration.get_by_email(self.db, email)
        return entry is not None and entry.deleted_at is None and bool(entry.migrated)

    def _login_via_legacy(self, email: str, password: str) -> LoginResult:
        legacy_user = self.legacy.get_user_by_email(email)
        if legacy_user is None:
            logger.info("Login rejected: unknown to both providers", extra={"email": email})
            return LoginResult(LoginStatus.INVALID_CREDENTIALS)

        legacy_user_id = legacy_user["id"]
        log_extra = {"email": email, "legacy_user_id": legacy_user_id}

        if not legacy_user.get("password_enabled", True):
            # Social-login-only legacy account: there is no password to carry
            logger.info("Legacy account has no password", extra=log_extra)
            return LoginResult(LoginStatus.NEEDS_PROVIDER_SWITCH)

        if not self.legacy.verify_password(legacy_user_id, password):
            logger.info("Login rejected by legacy provider", extra=log_extra)
            return LoginResult(LoginStatus.INVALID_CREDENTIALS)

        result = self.provisioner.provision_legacy_user(legacy_user, source="login")
        if result.outcome in (ProvisionOutcome.DELETED, ProvisionOutcome.ALREADY_MIGRATED):
            logger.info(
                "Legacy password accepted but ledger forbids carry-forward",
                extra={**log_extra, "outcome": result.outcome.value},
            )
            return LoginResult(LoginStatus.INVALID_CREDENTIALS)

        new_user_id = result.entry.new_user_id
        now = isoformat_z(utcnow())
        try:
            self.identity.update_credential(
                new_user_id,
                password,
                {"password_carried_forward_at": now, "last_clerk_login": now},
            )
        except ProviderError as e:
            if e.status_code == 422:
                logger.info(
                    "New provider rejected carried-forward password",
                    extra={**log_extra, "new_user_id": new_user_id},
                )
                return LoginResult(LoginStatus.NEEDS_PROVIDER_SWITCH)
            raise

        session = self.identity.authenticate(email, password)
        if not session:
            raise ProviderError(
                "New provider refused the credential it just accepted",
                provider="supabase",
                details={"new_user_id": new_user_id},
            )

        logger.info(
            "Login carried forward from legacy provider",
            extra={
                **log_extra,
                "new_user_id": new_user_id,
                "outcome": result.outcome.value,
            },
        )
        return LoginResult(
            LoginStatus.AUTHENTICATED, session, LoginSource.LEGACY_CARRY_FORWARD
        )
