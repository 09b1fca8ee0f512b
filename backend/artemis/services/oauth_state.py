"""
Signed OAuth state
==================
The ``state`` parameter round-trips through the vendor's consent screen. We
sign it so the callback can trust which user and provider it belongs to
without a server-side session table.

Format: ``<base64url(json payload)>.<base64url(hmac-sha256)>``. The payload
carries ``uid``, ``provider``, a random ``nonce`` and the issue time ``iat``.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import secrets
from datetime import datetime, timezone
from typing import Any, Optional

from artemis.config import get_settings
from artemis.models.wearable import Provider


class InvalidOAuthState(Exception):
    """State is malformed, tampered with, expired, or for another user/provider."""


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def _b64url_decode(value: str) -> bytes:
    pad = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode((value + pad).encode("utf-8"))


def _sign(payload_b64: str, secret: str) -> str:
    mac = hmac.new(secret.encode("utf-8"), payload_b64.encode("utf-8"), hashlib.sha256).digest()
    return _b64url_encode(mac)


def create_oauth_state(user_id: str, provider: Provider, secret: Optional[str] = None) -> str:
    payload = {
        "uid": user_id,
        "provider": provider.value,
        "nonce": secrets.token_urlsafe(8),
        "iat": int(datetime.now(timezone.utc).timestamp()),
    }
    raw = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
    payload_b64 = _b64url_encode(raw)
    return f"{payload_b64}.{_sign(payload_b64, secret or get_settings().oauth_state_secret)}"


def verify_oauth_state(
    token: str,
    user_id: str,
    provider: Provider,
    *,
    secret: Optional[str] = None,
    ttl_seconds: Optional[int] = None,
) -> dict[str, Any]:
    """Return the payload if ``token`` is valid for (user_id, provider). Raises InvalidOAuthState."""
    settings = get_settings()
    if not token or "." not in token:
        raise InvalidOAuthState("Malformed state")

    payload_b64, signature = token.split(".", 1)
    expected = _sign(payload_b64, secret or settings.oauth_state_secret)
    if not hmac.compare_digest(signature, expected):
        raise InvalidOAuthState("Bad state signature")

    try:
        payload = json.loads(_b64url_decode(payload_b64))
        issued_at = int(payload["iat"])
    except (ValueError, KeyError, TypeError) as exc:
        raise InvalidOAuthState("Unreadable state payload") from exc

    ttl = ttl_seconds if ttl_seconds is not None else settings.oauth_state_ttl_seconds
    now = int(datetime.now(timezone.utc).timestamp())
    if ttl > 0 and now - issued_at > ttl:
        raise InvalidOAuthState("State expired")

    if payload.get("uid") != user_id or payload.get("provider") != provider.value:
        raise InvalidOAuthState("State was issued for a different user or provider")
    return payload
