"""
Clerk Backend API client (legacy identity provider).

This service handles:
- Looking up legacy users by id and by email address
- Verifying a password against the legacy account
- Resolving an active session to the user who owns it
- Revoking a user's active legacy sessions once they have migrated
"""

import json
from typing import Any, Dict, List, Optional

import requests

from authbridge.core.config import settings
from authbridge.core.exceptions import ProviderError
from authbridge.core.logging import get_logger

logger = get_logger(__name__)

PROVIDER = "clerk"


class ClerkService:
    """Service for interacting with the Clerk Backend API."""

    def __init__(self):
        """Initialize the Clerk service."""
        self.api_url = settings.CLERK_API_URL
        self.secret_key = settings.CLERK_SECRET_KEY
        self.timeout = settings.PROVIDER_TIMEOUT_SECONDS

        if not self.secret_key:
            logger.error("CLERK_SECRET_KEY is required but not configured")
            raise ValueError("CLERK_SECRET_KEY is required but not configured")

    def _make_clerk_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        passthrough: tuple = (),
    ) -> Optional[Any]:
        """
        Make a request to the Clerk Backend API.

        Args:
            method: HTTP method
            endpoint: API endpoint (without base URL)
            params: Query string parameters
            data: JSON body for POST requests
            passthrough: Status codes that mean "no result" rather than failure

        Returns:
            Parsed response body, or None for a passthrough status

        Raises:
            ProviderError: On any other non-2xx status, timeout or connection error
        """
        url = f"{self.api_url}/{endpoint}"
        headers = {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

        logger.debug(
            json.dumps(
                {
                    "event": "clerk_api_request_started",
                    "method": method,
                    "endpoint": endpoint,
                }
            )
        )

        try:
            response = requests.request(
                method=method,
                url=url,
                headers=headers,
                params=params,
                json=data,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(
                json.dumps(
                    {
                        "event": "clerk_api_request_failed",
                        "error_type": type(e).__name__,
                        "error_message": str(e),
                        "method": method,
                        "endpoint": endpoint,
                    }
                )
            )
            raise ProviderError(
                f"Clerk request failed: {type(e).__name__}", provider=PROVIDER
            ) from e

        if response.status_code in (200, 201, 202, 204):
            logger.info(
                json.dumps(
                    {
                        "event": "clerk_api_request_success",
                        "method": method,
                        "endpoint": endpoint,
                        "status_code": response.status_code,
                    }
                )
            )
            if response.status_code == 204 or not response.content:
                return {}
            try:
                return response.json()
            except ValueError:
                return {}

        try:
            error_response = response.json()
        except ValueError:
            error_response = {"raw_response": response.text}

        if response.status_code in passthrough:
            logger.info(
                json.dumps(
                    {
                        "event": "clerk_api_request_no_result",
                        "method": method,
                        "endpoint": endpoint,
                        "status_code": response.status_code,
                    }
                )
            )
            return None

        logger.error(
            json.dumps(
                {
                    "event": "clerk_api_request_failed",
                    "method": method,
                    "endpoint": endpoint,
                    "status_code": response.status_code,
                    "error_response": error_response,
                }
            )
        )
        raise ProviderError(
            f"Clerk returned HTTP {response.status_code}",
            provider=PROVIDER,
            status_code=response.status_code,
            details={"error_response": error_response},
        )

    def get_user(self, user_id: str) -> Optional[Dict]:
        """
        Fetch a legacy user by id.

        Returns:
            Clerk user object or None if Clerk has no such user
        """
        return self._make_clerk_request("GET", f"users/{user_id}", passthrough=(404,))

    def get_user_by_email(self, email: str) -> Optional[Dict]:
        """
        Find a legacy user by email address.

        Returns:
            First matching Clerk user object or None
        """
        users = self._make_clerk_request(
            "GET", "users", params={"email_address": email, "limit": 1}
        )
        if not users:
            logger.info(
                json.dumps({"event": "clerk_user_not_found_by_email", "email": email})
            )
            return None
        return users[0]

    def verify_password(self, user_id: str, password: str) -> bool:
        """
        Check a password against the legacy account.

        Clerk answers an incorrect password with HTTP 422.

        Returns:
            True if Clerk verified the password
        """
        response = self._make_clerk_request(
            "POST",
            f"users/{user_id}/verify_password",
            data={"password": password},
            passthrough=(400, 404, 422),
        )
        verified = bool(response and response.get("verified"))
        logger.info(
            json.dumps(
                {
                    "event": "clerk_password_verified"
                    if verified
                    else "clerk_password_rejected",
                    "user_id": user_id,
                }
            )
        )
        return verified

    def verify_session(self, session_id: str) -> Optional[str]:
        """
        Resolve a Clerk session to its owner.

        Only sessions Clerk reports as ``active`` count; ended, revoked,
        expired and unknown sessions all come back as None.

        Returns:
            The legacy user id owning the session, or None
        """
        session = self._make_clerk_request(
            "GET", f"sessions/{session_id}", passthrough=(400, 404)
        )
        if not session or session.get("status") != "active":
            logger.info(
                json.dumps(
                    {
                        "event": "clerk_session_rejected",
                        "session_id": session_id,
                        "status": (session or {}).get("status"),
                    }
                )
            )
            return None
        return session.get("user_id")

    def revoke_all_sessions(self, user_id: str) -> int:
        """
        Revoke every active legacy session for a user.

        Returns:
            Number of sessions revoked
        """
        sessions: List[Dict] = (
            self._make_clerk_request(
                "GET", "sessions", params={"user_id": user_id, "status": "active"}
            )
            or []
        )
        for session in sessions:
            self._make_clerk_request(
                "POST", f"sessions/{session['id']}/revoke", passthrough=(404,)
            )
        logger.info(
            json.dumps(
                {
                    "event": "clerk_sessions_revoked",
                    "user_id": user_id,
                    "count": len(sessions),
                }
            )
        )
        return len(sessions)


def primary_email(user: Dict) -> Optional[str]:
    """Return the primary email address of a Clerk user object."""
    addresses = user.get("email_addresses") or []
    primary_id = user.get("primary_email_address_id")
    for address in addresses:
        if address.get("id") == primary_id:
            return address.get("email_address")
    if addresses:
        return addresses[0].get("email_address")
    return None


def display_name(user: Dict) -> Optional[str]:
    parts = [user.get("first_name"), user.get("last_name")]
    name = " ".join(p for p in parts if p)
    return name or None


class DisabledClerkService:
    """Clerk service used when configuration is missing.

    Provides the same interface as ClerkService; every call fails with a
    ProviderError so callers answer 503 instead of crashing at import.
    """

    def _unavailable(self, operation: str, **fields: Any) -> ProviderError:
        logger.warning(
            json.dumps({"event": f"clerk_disabled_{operation}", **fields})
        )
        return ProviderError("Clerk is not configured", provider=PROVIDER)

    def get_user(self, user_id: str) -> Optional[Dict]:
        raise self._unavailable("get_user", user_id=user_id)

    def get_user_by_email(self, email: str) -> Optional[Dict]:
        raise self._unavailable("get_user_by_email", email=email)

    def verify_password(self, user_id: str, password: str) -> bool:
        raise self._unavailable("verify_password", user_id=user_id)

    def verify_session(self, session_id: str) -> Optional[str]:
        raise self._unavailable("verify_session", session_id=session_id)

    def revoke_all_sessions(self, user_id: str) -> int:
        raise self._unavailable("revoke_all_sessions", user_id=user_id)


# Global instance with safe fallback when not configured
clerk_service: Any
try:
    clerk_service = ClerkService()
except Exception as e:  # pragma: no cover - depends on environment
    logger.warning(
        json.dumps(
            {
                "event": "clerk_service_initialization_failed",
                "error": str(e),
                "note": "Using DisabledClerkService",
            }
        )
    )
    clerk_service = DisabledClerkService()
