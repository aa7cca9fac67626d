"""
Webhook signature verification for Clerk (Svix-signed) deliveries.

Svix signs ``"{svix-id}.{svix-timestamp}.{raw body}"`` with HMAC-SHA256 keyed
by the base64 part of the ``whsec_`` secret. The ``svix-signature`` header is
a space-separated list of ``v1,<base64>`` entries; any one matching accepts.
"""

import base64
import hashlib
import hmac
import json
import time
from typing import Any, Dict, Optional

from authbridge.core.exceptions import SignatureInvalidError
from authbridge.core.logging import get_logger

logger = get_logger(__name__)

SECRET_PREFIX = "whsec_"


def _secret_bytes(secret: str) -> bytes:
    if secret.startswith(SECRET_PREFIX):
        secret = secret[len(SECRET_PREFIX) :]
    return base64.b64decode(secret)


def sign_payload(secret: str, msg_id: str, timestamp: int, body: bytes) -> str:
    """Return the ``v1,<base64>`` signature Svix would send for a payload."""
    signed_content = f"{msg_id}.{timestamp}.".encode() + body
    digest = hmac.new(_secret_bytes(secret), signed_content, hashlib.sha256).digest()
    return "v1," + base64.b64encode(digest).decode()


def verify_svix_signature(
    secret: str,
    headers: Dict[str, Optional[str]],
    body: bytes,
    tolerance_seconds: int = 300,
    now: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Verify a Svix-signed delivery and return its parsed JSON payload.

    Args:
        secret: ``whsec_...`` signing secret
        headers: Mapping holding svix-id, svix-timestamp and svix-signature
        body: Raw request body, exactly as received
        tolerance_seconds: Maximum clock skew either way
        now: Current epoch seconds (tests)

    Raises:
        SignatureInvalidError: Missing headers, stale timestamp, no matching
            signature, or a body that is not a JSON object
    """
    msg_id = headers.get("svix-id")
    timestamp = headers.get("svix-timestamp")
    signature_header = headers.get("svix-signature")

    if not msg_id or not timestamp or not signature_header:
        logger.warning(
            "Webhook rejected: missing signature headers",
            extra={
                "svix_id_present": bool(msg_id),
                "svix_timestamp_present": bool(timestamp),
                "svix_signature_present": bool(signature_header),
            },
        )
        raise SignatureInvalidError("Missing webhook signature headers")

    try:
        sent_at = int(timestamp)
    except ValueError as e:
        raise SignatureInvalidError("Invalid webhook timestamp") from e

    current = time.time() if now is None else now
    if abs(current - sent_at) > tolerance_seconds:
        logger.warning(
            "Webhook rejected: timestamp outside tolerance",
            extra={"svix_id": msg_id, "svix_timestamp": sent_at},
        )
        raise SignatureInvalidError("Webhook timestamp outside tolerance")

    expected = sign_payload(secret, msg_id, sent_at, body).split(",", 1)[1]
    for candidate in signature_header.split(" "):
        version, _, value = candidate.partition(",")
        if version == "v1" and hmac.compare_digest(value, expected):
            break
    else:
        logger.warning("Webhook rejected: bad signature", extra={"svix_id": msg_id})
        raise SignatureInvalidError("Webhook signature mismatch")

    try:
        payload = json.loads(body)
    except ValueError as e:
        raise SignatureInvalidError("Webhook body is not valid JSON") from e
    if not isinstance(payload, dict):
        raise SignatureInvalidError("Webhook body is not a JSON object")
    return payload
