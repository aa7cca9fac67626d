"""
Clerk webhook receiver.

Deliveries are at-least-once and may arrive out of order; every handler is
idempotent. A non-2xx answer makes Clerk retry, so provider failures are
allowed to surface as 503 while bad signatures answer 400.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from authbridge.api.deps import get_lifecycle_sync, get_provisioner, verify_clerk_webhook
from authbridge.core.exceptions import NotFoundError, ValidationError
from authbridge.core.logging import get_logger
from authbridge.schemas.auth import ErrorResponse, WebhookResponse
from authbridge.services.lifecycle_sync import LifecycleSync
from authbridge.services.provisioning import ShellAccountProvisioner

logger = get_logger(__name__)

router = APIRouter()

SESSION_CREATED = "session.created"
USER_DELETED = "user.deleted"


def _require(data: Dict[str, Any], key: str, event_type: str) -> str:
    value = data.get(key)
    if not value:
        raise ValidationError(f"{event_type} payload is missing data.{key}", rule=key)
    return str(value)


@router.post(
    "/clerk",
    response_model=WebhookResponse,
    responses={400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
def clerk_webhook(
    payload: Dict[str, Any] = Depends(verify_clerk_webhook),
    provisioner: ShellAccountProvisioner = Depends(get_provisioner),
    lifecycle: LifecycleSync = Depends(get_lifecycle_sync),
):
    """Handle session.created (provision shell) and user.deleted (soft delete)."""
    event_type = str(payload.get("type") or "")
    data = payload.get("data") or {}

    if event_type == SESSION_CREATED:
        legacy_user_id = _require(data, "user_id", event_type)
        try:
            result = provisioner.provision(legacy_user_id, source="webhook")
        except NotFoundError:
            # User deleted in Clerk after the session event was queued
            logger.info(
                "Webhook for unknown legacy user ignored",
                extra={"event_type": event_type, "legacy_user_id": legacy_user_id},
            )
            return WebhookResponse(event=event_type, action="legacy_user_missing")
        return WebhookResponse(event=event_type, action=result.outcome.value)

    if event_type == USER_DELETED:
        legacy_user_id = _require(data, "id", event_type)
        deleted = lifecycle.handle_user_deleted(legacy_user_id)
        return WebhookResponse(event=event_type, action="deleted" if deleted else "noop")

    logger.info("Unhandled webhook event ignored", extra={"event_type": event_type})
    return WebhookResponse(event=event_type, action="ignored")
