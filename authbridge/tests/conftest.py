"""
Test configuration and fixtures.
"""

import base64
import json
import os
import time
import uuid
import warnings
from typing import Any, Dict, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import authbridge.models  # noqa: F401  (register tables on Base)
from authbridge.api.deps import get_identity_provider, get_legacy_provider
from authbridge.core.config import settings
from authbridge.core.exceptions import EmailAlreadyRegisteredError, ProviderError
from authbridge.core.security import sign_payload
from authbridge.db.database import Base, get_db
from authbridge.main import app

warnings.filterwarnings("ignore", category=DeprecationWarning, module="pydantic.*")
warnings.filterwarnings(
    "ignore", category=PendingDeprecationWarning, module="starlette.*"
)

WEBHOOK_SECRET = "whsec_" + base64.b64encode(b"authbridge-test-signing-key").decode()


def get_test_database_url():
    """In-memory SQLite unless DATABASE_URL points at a real PostgreSQL."""
    return os.environ.get("DATABASE_URL") or "sqlite://"


SQLALCHEMY_DATABASE_URL = get_test_database_url()

if SQLALCHEMY_DATABASE_URL.startswith("sqlite"):
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    engine = create_engine(SQLALCHEMY_DATABASE_URL, poolclass=StaticPool)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    """Override get_db dependency for testing."""
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(scope="session", autouse=True)
def setup_test_tables():
    """Create all tables once at the session start."""
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(scope="function")
def db():
    """Create test database session.

    Tests share the same database, so use unique emails and ids.
    """
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def unique_email():
    return f"user_{uuid.uuid4().hex[:10]}@example.com"


class FakeLegacyProvider:
    """In-memory stand-in for ClerkService."""

    def __init__(self):
        self.users: Dict[str, Dict[str, Any]] = {}
        self.passwords: Dict[str, str] = {}
        self.revoked: list = []
        self.revoke_error: Optional[ProviderError] = None
        self.sessions: Dict[str, Dict[str, Any]] = {}

    def add_user(
        self,
        email: str,
        password: Optional[str] = "Secret123",
        first_name: str = "Ada",
        last_name: str = "Lovelace",
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        user_id = user_id or f"user_{uuid.uuid4().hex[:12]}"
        user = {
            "id": user_id,
            "email_addresses": [{"id": f"idn_{user_id}", "email_address": email}],
            "primary_email_address_id": f"idn_{user_id}",
            "first_name": first_name,
            "last_name": last_name,
            "password_enabled": password is not None,
        }
        self.users[user_id] = user
        if password is not None:
            self.passwords[user_id] = password
        return user

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self.users.get(user_id)

    def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        for user in self.users.values():
            if user["email_addresses"][0]["email_address"].lower() == email.lower():
                return user
        return None

    def verify_password(self, user_id: str, password: str) -> bool:
        return self.passwords.get(user_id) == password

    def add_session(self, user_id: str, status: str = "active") -> str:
        session_id = f"sess_{uuid.uuid4().hex[:12]}"
        self.sessions[session_id] = {"id": session_id, "user_id": user_id, "status": status}
        return session_id

    def verify_session(self, session_id: str) -> Optional[str]:
        session = self.sessions.get(session_id)
        if session is None or session["status"] != "active":
            return None
        return session["user_id"]

    def revoke_all_sessions(self, user_id: str) -> int:
        if self.revoke_error:
            raise self.revoke_error
        self.revoked.append(user_id)
        return 1


class FakeIdentityProvider:
    """In-memory stand-in for SupabaseAuthService."""

    def __init__(self):
        self.accounts: Dict[str, Dict[str, Any]] = {}
        self.create_calls = 0
        self.update_error: Optional[ProviderError] = None
        self.create_error: Optional[ProviderError] = None
        self.access_tokens: Dict[str, str] = {}

    def create_account(self, email, password, metadata=None, email_confirmed=True):
        self.create_calls += 1
        if self.create_error:
            raise self.create_error
        if self.find_account_by_email(email):
            raise EmailAlreadyRegisteredError(email)
        account_id = str(uuid.uuid4())
        self.accounts[account_id] = {
            "id": account_id,
            "email": email,
            "password": password,
            "email_confirmed": email_confirmed,
            "user_metadata": dict(metadata or {}),
        }
        return account_id

    def update_credential(self, account_id, password, metadata=None):
        if self.update_error:
            raise self.update_error
        account = self.accounts[account_id]
        account["password"] = password
        account["user_metadata"].update(metadata or {})

    def update_metadata(self, account_id, metadata):
        self.accounts[account_id]["user_metadata"].update(metadata)

    def find_account_by_email(self, email):
        for account in self.accounts.values():
            if account["email"].lower() == email.lower():
                return account
        return None

    def issue_recovery_token(self, email: str) -> str:
        """Access token as handed out by a password-recovery link."""
        token = f"recovery-{uuid.uuid4().hex}"
        self.access_tokens[token] = email
        return token

    def get_user_for_token(self, access_token):
        email = self.access_tokens.get(access_token)
        if email is None:
            return None
        account = self.find_account_by_email(email)
        return account or {"id": str(uuid.uuid4()), "email": email}

    def authenticate(self, email, password):
        account = self.find_account_by_email(email)
        if account is None or account["password"] != password:
            return None
        return {
            "access_token": f"access-{account['id']}",
            "refresh_token": f"refresh-{account['id']}",
            "token_type": "bearer",
            "expires_in": 3600,
            "user": {"id": account["id"], "email": account["email"]},
        }


@pytest.fixture
def legacy_provider():
    return FakeLegacyProvider()


@pytest.fixture
def identity_provider():
    return FakeIdentityProvider()


@pytest.fixture(scope="function")
def client(monkeypatch, legacy_provider, identity_provider):
    """Test client wired to the in-memory providers."""
    monkeypatch.setattr(settings, "CLERK_WEBHOOK_SECRET", WEBHOOK_SECRET)
    app.dependency_overrides[get_legacy_provider] = lambda: legacy_provider
    app.dependency_overrides[get_identity_provider] = lambda: identity_provider

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.pop(get_legacy_provider, None)
    app.dependency_overrides.pop(get_identity_provider, None)


def signed_webhook(
    event_type: str,
    data: Dict[str, Any],
    secret: str = WEBHOOK_SECRET,
    timestamp: Optional[int] = None,
):
    """Return (body, headers) for a Svix-signed Clerk delivery."""
    body = json.dumps({"type": event_type, "object": "event", "data": data}).encode()
    msg_id = f"msg_{uuid.uuid4().hex}"
    timestamp = int(time.time()) if timestamp is None else timestamp
    headers = {
        "svix-id": msg_id,
        "svix-timestamp": str(timestamp),
        "svix-signature": sign_payload(secret, msg_id, timestamp, body),
        "content-type": "application/json",
    }
    return body, headers
