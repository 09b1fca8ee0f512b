"""
Webhooks Router
===============
POST /api/v1/webhooks/whoop: Whoop notifies us that a recovery, sleep or
workout changed. We do not trust the payload's data; it only tells us whose
stored copy is stale, and a background sync fetches the real records.

Signature: base64(HMAC-SHA256(secret, X-WHOOP-Signature-Timestamp + raw body)),
checked whenever ``whoop_webhook_secret`` is configured. The timestamp
(epoch milliseconds) must also be within ``whoop_webhook_tolerance_seconds``
of now, so a captured request cannot be replayed later.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import time
from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Request, status
from pydantic import ValidationError

from artemis.config import get_settings
from artemis.models.api import WebhookAck, WhoopWebhookEvent
from artemis.models.wearable import Provider
from artemis.services.sync import get_sync_orchestrator
from artemis.services.token_store import get_token_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])

SYNC_EVENTS = {"recovery.updated", "sleep.updated", "workout.updated"}


def whoop_signature(secret: str, timestamp: str, body: bytes) -> str:
    mac = hmac.new(secret.encode("utf-8"), timestamp.encode("utf-8") + body, hashlib.sha256).digest()
    return base64.b64encode(mac).decode("utf-8")


def _is_fresh(timestamp: str, tolerance_seconds: int) -> bool:
    try:
        sent_ms = int(timestamp)
    except ValueError:
        return False
    return abs(time.time() * 1000 - sent_ms) <= tolerance_seconds * 1000


@router.post(
    "/whoop",
    response_model=WebhookAck,
    summary="Whoop data-change notification",
    responses={401: {"description": "Bad signature"}},
)
async def whoop_webhook(
    request: Request,
    x_whoop_signature: Optional[str] = Header(None),
    x_whoop_signature_timestamp: Optional[str] = Header(None),
) -> WebhookAck:
    body = await request.body()
    settings = get_settings()
    secret = settings.whoop_webhook_secret

    if secret:
        if not x_whoop_signature or not x_whoop_signature_timestamp:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail={"message": "Missing webhook signature", "code": "invalid_signature"},
            )
        expected = whoop_signature(secret, x_whoop_signature_timestamp, body)
        if not hmac.compare_digest(expected, x_whoop_signature):
            logger.warning("Rejected Whoop webhook with bad signature")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail={"message": "Invalid webhook signature", "code": "invalid_signature"},
            )
        if not _is_fresh(x_whoop_signature_timestamp, settings.whoop_webhook_tolerance_seconds):
            logger.warning("Rejected Whoop webhook with stale timestamp %s", x_whoop_signature_timestamp)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail={"message": "Webhook timestamp outside the allowed window", "code": "stale_signature"},
            )

    try:
        event = WhoopWebhookEvent.model_validate_json(body)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": "Malformed webhook payload", "code": "invalid_payload"},
        ) from exc

    if event.type not in SYNC_EVENTS:
        return WebhookAck(received=True, scheduled=False)

    user_id = get_token_store().find_user_by_provider_id(Provider.WHOOP, str(event.user_id))
    if user_id is None:
        # Acknowledge anyway so Whoop stops retrying for a user we no longer hold
        logger.info("Whoop webhook for unknown Whoop user %s", event.user_id)
        return WebhookAck(received=True, scheduled=False)

    get_sync_orchestrator().schedule_background_sync(user_id)
    return WebhookAck(received=True, scheduled=True)
