"""
Tests for Svix signature verification and the Clerk webhook endpoint.
"""

import json
import time
import uuid

import pytest

from authbridge.core.config import settings
from authbridge.core.exceptions import ProviderError, SignatureInvalidError
from authbridge.core.security import sign_payload, verify_svix_signature
from authbridge.crud import migration as migration_crud
from authbridge.models.user import User
from authbridge.tests.conftest import WEBHOOK_SECRET, signed_webhook

WEBHOOK_URL = f"{settings.API_V1_STR}/webhooks/clerk"


class TestVerifySvixSignature:
    def setup_method(self):
        self.body = b'{"type": "user.deleted", "data": {"id": "user_1"}}'
        self.now = 1_700_000_000
        self.headers = {
            "svix-id": "msg_1",
            "svix-timestamp": str(self.now),
            "svix-signature": sign_payload(WEBHOOK_SECRET, "msg_1", self.now, self.body),
        }

    def test_valid_signature(self):
        payload = verify_svix_signature(WEBHOOK_SECRET, self.headers, self.body, now=self.now)
        assert payload["data"]["id"] == "user_1"

    def test_any_listed_signature_may_match(self):
        self.headers["svix-signature"] = "v1,bm90LXRoaXMtb25l " + self.headers["svix-signature"]
        verify_svix_signature(WEBHOOK_SECRET, self.headers, self.body, now=self.now)

    def test_tampered_body(self):
        with pytest.raises(SignatureInvalidError):
            verify_svix_signature(
                WEBHOOK_SECRET, self.headers, self.body + b" ", now=self.now
            )

    def test_wrong_secret(self):
        other = "whsec_" + "b3RoZXItc2VjcmV0"
        with pytest.raises(SignatureInvalidError):
            verify_svix_signature(other, self.headers, self.body, now=self.now)

    def test_missing_header(self):
        del self.headers["svix-signature"]
        with pytest.raises(SignatureInvalidError):
            verify_svix_signature(WEBHOOK_SECRET, self.headers, self.body, now=self.now)

    def test_stale_timestamp(self):
        with pytest.raises(SignatureInvalidError):
            verify_svix_signature(
                WEBHOOK_SECRET, self.headers, self.body, now=self.now + 301
            )

    def test_within_tolerance(self):
        verify_svix_signature(WEBHOOK_SECRET, self.headers, self.body, now=self.now + 300)

    def test_non_json_body(self):
        body = b"not json"
        self.headers["svix-signature"] = sign_payload(
            WEBHOOK_SECRET, "msg_1", self.now, body
        )
        with pytest.raises(SignatureInvalidError):
            verify_svix_signature(WEBHOOK_SECRET, self.headers, body, now=self.now)


def test_session_created_provisions_shell(client, db, legacy_provider, unique_email):
    legacy_user = legacy_provider.add_user(unique_email)
    body, headers = signed_webhook("session.created", {"user_id": legacy_user["id"]})

    response = client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "event": "session.created",
        "action": "created",
    }
    entry = migration_crud.get_by_email(db, unique_email)
    assert entry.legacy_user_id == legacy_user["id"]
    assert entry.migrated is False

    body, headers = signed_webhook("session.created", {"user_id": legacy_user["id"]})
    response = client.post(WEBHOOK_URL, content=body, headers=headers)
    assert response.json()["action"] == "refreshed"


def test_user_deleted_redelivery_is_noop(client, db, unique_email):
    legacy_id = f"user_{uuid.uuid4().hex[:12]}"
    db.add(User(email=unique_email, legacy_user_id=legacy_id))
    db.commit()

    body, headers = signed_webhook("user.deleted", {"id": legacy_id, "deleted": True})
    first = client.post(WEBHOOK_URL, content=body, headers=headers)
    second = client.post(WEBHOOK_URL, content=body, headers=headers)

    assert first.status_code == 200
    assert first.json()["action"] == "deleted"
    assert second.status_code == 200
    assert second.json()["action"] == "noop"


def test_bad_signature_is_rejected(client, legacy_provider, identity_provider, unique_email):
    legacy_user = legacy_provider.add_user(unique_email)
    body, headers = signed_webhook(
        "session.created",
        {"user_id": legacy_user["id"]},
        secret="whsec_" + "d3Jvbmcta2V5",
    )

    response = client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "signature_invalid"
    assert identity_provider.create_calls == 0


def test_stale_delivery_is_rejected(client, legacy_provider):
    body, headers = signed_webhook(
        "session.created", {"user_id": "user_x"}, timestamp=int(time.time()) - 3600
    )
    response = client.post(WEBHOOK_URL, content=body, headers=headers)
    assert response.status_code == 400


def test_unknown_event_acknowledged(client):
    body, headers = signed_webhook("email.created", {"id": "ema_1"})
    response = client.post(WEBHOOK_URL, content=body, headers=headers)
    assert response.status_code == 200
    assert response.json()["action"] == "ignored"


def test_missing_user_id_is_validation_error(client):
    body, headers = signed_webhook("session.created", {})
    response = client.post(WEBHOOK_URL, content=body, headers=headers)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "validation_error"


def test_session_for_vanished_legacy_user(client):
    body, headers = signed_webhook("session.created", {"user_id": "user_gone"})
    response = client.post(WEBHOOK_URL, content=body, headers=headers)
    assert response.status_code == 200
    assert response.json()["action"] == "legacy_user_missing"


def test_provider_failure_asks_for_retry(
    client, legacy_provider, identity_provider, unique_email
):
    legacy_user = legacy_provider.add_user(unique_email)
    identity_provider.create_error = ProviderError(
        "timeout", provider="supabase", status_code=None
    )
    body, headers = signed_webhook("session.created", {"user_id": legacy_user["id"]})

    response = client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "provider_error"


def test_missing_secret_is_server_error(client, monkeypatch):
    monkeypatch.setattr(settings, "CLERK_WEBHOOK_SECRET", None)
    body, headers = signed_webhook("user.deleted", {"id": "user_1"})

    response = client.post(WEBHOOK_URL, content=body, headers=headers)

    assert response.status_code == 500
    assert json.loads(response.content)["error"]["code"] == "configuration_error"
