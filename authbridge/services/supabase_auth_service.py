"""
Supabase Auth (GoTrue) client (new identity provider).

Admin calls authenticate with the service-role key; password sign-in uses
the anon key, exactly as a browser client would.
"""

import json
from typing import Any, Dict, Optional

import requests

from authbridge.core.config import settings
from authbridge.core.exceptions import EmailAlreadyRegisteredError, ProviderError
from authbridge.core.logging import get_logger

logger = get_logger(__name__)

PROVIDER = "supabase"
REDACTED = "***REDACTED***"
ADMIN_PAGE_SIZE = 200


def _is_email_exists(status_code: int, error_response: Dict[str, Any]) -> bool:
    if status_code != 422:
        return False
    if error_response.get("error_code") == "email_exists":
        return True
    message = str(error_response.get("msg") or error_response.get("message") or "")
    return "already been registered" in message.lower()


class SupabaseAuthService:
    """Service for interacting with the Supabase Auth admin and token APIs."""

    def __init__(self):
        """Initialize the Supabase Auth service."""
        self.base_url = settings.SUPABASE_URL
        self.service_role_key = settings.SUPABASE_SERVICE_ROLE_KEY
        self.anon_key = settings.SUPABASE_ANON_KEY or settings.SUPABASE_SERVICE_ROLE_KEY
        self.timeout = settings.PROVIDER_TIMEOUT_SECONDS

        if not self.base_url:
            logger.error("SUPABASE_URL is required but not configured")
            raise ValueError("SUPABASE_URL is required but not configured")
        if not self.service_role_key:
            logger.error("SUPABASE_SERVICE_ROLE_KEY is required but not configured")
            raise ValueError("SUPABASE_SERVICE_ROLE_KEY is required but not configured")

        self.auth_url = f"{self.base_url}/auth/v1"

    def _make_supabase_request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        admin: bool = True,
        bearer: Optional[str] = None,
    ) -> requests.Response:
        """
        Send a request to the Auth API.

        Args:
            method: HTTP method
            endpoint: Path below /auth/v1
            data: JSON body
            params: Query string parameters
            admin: Use the service-role key instead of the anon key
            bearer: End-user access token sent instead of the key as the
                bearer credential

        Returns:
            The raw response, whatever its status

        Raises:
            ProviderError: On timeout or connection failure
        """
        key = self.service_role_key if admin else self.anon_key
        url = f"{self.auth_url}/{endpoint}"
        headers = {
            "apikey": key,
            "Authorization": f"Bearer {bearer or key}",
            "Content-Type": "application/json",
        }

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
                        "event": "supabase_api_request_failed",
                        "error_type": type(e).__name__,
                        "error_message": str(e),
                        "method": method,
                        "endpoint": endpoint,
                    }
                )
            )
            raise ProviderError(
                f"Supabase request failed: {type(e).__name__}", provider=PROVIDER
            ) from e

        logger.info(
            json.dumps(
                {
                    "event": "supabase_api_request_completed",
                    "method": method,
                    "endpoint": endpoint,
                    "status_code": response.status_code,
                }
            )
        )
        return response

    @staticmethod
    def _error_body(response: requests.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {"raw_response": response.text}
        return body if isinstance(body, dict) else {"raw_response": body}

    def _raise_for_status(self, response: requests.Response, operation: str) -> None:
        if response.status_code < 400:
            return
        error_response = self._error_body(response)
        logger.error(
            json.dumps(
                {
                    "event": f"supabase_{operation}_failed",
                    "status_code": response.status_code,
                    "error_response": error_response,
                }
            )
        )
        raise ProviderError(
            f"Supabase {operation} returned HTTP {response.status_code}",
            provider=PROVIDER,
            status_code=response.status_code,
            details={"error_response": error_response},
        )

    def create_account(
        self,
        email: str,
        password: str,
        metadata: Optional[Dict[str, Any]] = None,
        email_confirmed: bool = True,
    ) -> str:
        """
        Create an account through the admin API.

        Args:
            email: Email address
            password: Initial password
            metadata: user_metadata to attach
            email_confirmed: Mark the email as already verified

        Returns:
            The new account id

        Raises:
            EmailAlreadyRegisteredError: An account already exists for the email
            ProviderError: Any other failure
        """
        user_data = {
            "email": email,
            "password": password,
            "email_confirm": email_confirmed,
            "user_metadata": metadata or {},
        }
        safe_user_data = {**user_data, "password": REDACTED}
        logger.debug(
            json.dumps(
                {"event": "supabase_user_creation_api_call", "user_data": safe_user_data}
            )
        )

        response = self._make_supabase_request("POST", "admin/users", user_data)
        if response.status_code >= 400:
            error_response = self._error_body(response)
            if _is_email_exists(response.status_code, error_response):
                logger.info(
                    json.dumps(
                        {"event": "supabase_user_already_registered", "email": email}
                    )
                )
                raise EmailAlreadyRegisteredError(
                    email, details={"error_response": error_response}
                )
        self._raise_for_status(response, "user_creation")

        account_id = response.json()["id"]
        logger.info(
            json.dumps(
                {
                    "event": "supabase_user_created",
                    "email": email,
                    "supabase_user_id": account_id,
                    "email_confirmed": email_confirmed,
                }
            )
        )
        return account_id

    def update_credential(
        self, account_id: str, password: str, metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Set a new password, optionally merging metadata in the same call.

        Raises:
            ProviderError: status_code 422 when Supabase rejects the password
        """
        data: Dict[str, Any] = {"password": password}
        if metadata:
            data["user_metadata"] = metadata
        response = self._make_supabase_request("PUT", f"admin/users/{account_id}", data)
        self._raise_for_status(response, "password_update")
        logger.info(
            json.dumps(
                {"event": "supabase_user_password_updated", "supabase_user_id": account_id}
            )
        )

    def update_metadata(self, account_id: str, metadata: Dict[str, Any]) -> None:
        """Merge user_metadata keys on an account. Credentials are untouched."""
        response = self._make_supabase_request(
            "PUT", f"admin/users/{account_id}", {"user_metadata": metadata}
        )
        self._raise_for_status(response, "metadata_update")
        logger.info(
            json.dumps(
                {
                    "event": "supabase_user_metadata_updated",
                    "supabase_user_id": account_id,
                    "keys": sorted(metadata.keys()),
                }
            )
        )

    def find_account_by_email(self, email: str) -> Optional[Dict]:
        """
        Find an account by email by paging through the admin listing.

        The admin API has no email filter, so this is only used to adopt an
        account whose creation raced or crashed before the ledger write.

        Returns:
            Supabase user object or None
        """
        target = email.strip().lower()
        page = 1
        while True:
            response = self._make_supabase_request(
                "GET",
                "admin/users",
                params={"page": page, "per_page": ADMIN_PAGE_SIZE},
            )
            self._raise_for_status(response, "user_listing")
            users = response.json().get("users") or []
            for user in users:
                if (user.get("email") or "").lower() == target:
                    return user
            if len(users) < ADMIN_PAGE_SIZE:
                logger.info(
                    json.dumps(
                        {"event": "supabase_user_not_found_by_email", "email": target}
                    )
                )
                return None
            page += 1

    def authenticate(self, email: str, password: str) -> Optional[Dict]:
        """
        Password sign-in.

        Supabase answers an unknown email and a wrong password identically
        (HTTP 400 ``invalid_grant``), so both come back as None.

        Returns:
            Session dict (access_token, refresh_token, expires_in, user) or None
        """
        response = self._make_supabase_request(
            "POST",
            "token",
            {"email": email, "password": password},
            params={"grant_type": "password"},
            admin=False,
        )
        if response.status_code in (400, 401):
            logger.info(
                json.dumps(
                    {
                        "event": "supabase_password_sign_in_rejected",
                        "email": email,
                        "error_response": self._error_body(response),
                    }
                )
            )
            return None
        self._raise_for_status(response, "password_sign_in")
        return response.json()

    def get_user_for_token(self, access_token: str) -> Optional[Dict]:
        """
        Resolve an end-user access token (e.g. from a recovery link).

        Returns:
            Supabase user object, or None if the token is invalid or expired
        """
        response = self._make_supabase_request(
            "GET", "user", admin=False, bearer=access_token
        )
        if response.status_code in (401, 403):
            logger.info(
                json.dumps(
                    {
                        "event": "supabase_access_token_rejected",
                        "status_code": response.status_code,
                    }
                )
            )
            return None
        self._raise_for_status(response, "token_lookup")
        return response.json()


class DisabledSupabaseAuthService:
    """Supabase service used when configuration is missing.

    Every call fails with a ProviderError so endpoints answer 503.
    """

    def _unavailable(self, operation: str, **fields: Any) -> ProviderError:
        logger.warning(
            json.dumps({"event": f"supabase_disabled_{operation}", **fields})
        )
        return ProviderError("Supabase Auth is not configured", provider=PROVIDER)

    def create_account(
        self,
        email: str,
        password: str,
        metadata: Optional[Dict[str, Any]] = None,
        email_confirmed: bool = True,
    ) -> str:
        raise self._unavailable("create_account", email=email)

    def update_credential(
        self, account_id: str, password: str, metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        raise self._unavailable("update_credential", supabase_user_id=account_id)

    def update_metadata(self, account_id: str, metadata: Dict[str, Any]) -> None:
        raise self._unavailable("update_metadata", supabase_user_id=account_id)

    def find_account_by_email(self, email: str) -> Optional[Dict]:
        raise self._unavailable("find_account_by_email", email=email)

    def authenticate(self, email: str, password: str) -> Optional[Dict]:
        raise self._unavailable("authenticate", email=email)

    def get_user_for_token(self, access_token: str) -> Optional[Dict]:
        raise self._unavailable("get_user_for_token")


# Global instance with safe fallback when not configured
supabase_auth_service: Any
try:
    supabase_auth_service = SupabaseAuthService()
except Exception as e:  # pragma: no cover - depends on environment
    logger.warning(
        json.dumps(
            {
                "event": "supabase_service_initialization_failed",
                "error": str(e),
                "note": "Using DisabledSupabaseAuthService",
            }
        )
    )
    supabase_auth_service = DisabledSupabaseAuthService()
