"""
Provider Token Store
====================
Owns every stored OAuth grant and hands out access tokens that are valid
right now.

Responsibilities:
- get_valid_token(): return a non-expired access token, refreshing it
  (at most once per expiry) when it is inside the expiry buffer
- save_tokens(): persist a new grant after an OAuth callback or a refresh
- disconnect(): best-effort revoke with the vendor, then deactivate locally
- connection_info() / list_connected(): what the settings page shows
- mark_synced(): stamp last_sync_at after a sync pass

Refresh rules:
- Refreshes are serialised per (user, provider). A caller that waited on the
  lock re-reads the row and reuses the token the winner just stored.
- The vendor rejecting the refresh grant (400/401/403) is final: the
  integration is deactivated and the caller sees "not connected".
- Timeouts and 5xx are retried ``token_refresh_attempts`` times before the
  integration is given up on.

Tokens are never written to the log.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from artemis.config import get_settings
from artemis.db.integrations import IntegrationRepository
from artemis.models.wearable import ConnectionInfo, Integration, Provider, TokenSet
from artemis.services.locks import KeyedLock
from artemis.services.providers.base import (
    ProviderAPIError,
    ProviderAuthError,
    ProviderError,
    ProviderTimeoutError,
)
from artemis.services.providers.registry import ProviderRegistry, get_provider_registry

logger = logging.getLogger(__name__)

# Linear backoff between transient refresh failures
_RETRY_BACKOFF_SECONDS = 0.5


class TokenStore:
    def __init__(
        self,
        repository: Optional[IntegrationRepository] = None,
        registry: Optional[ProviderRegistry] = None,
        settings=None,
    ) -> None:
        self._repo = repository or IntegrationRepository()
        self._registry = registry if registry is not None else get_provider_registry()
        self._settings = settings or get_settings()
        self._refresh_locks = KeyedLock()

    # ---- Reads -----------------------------------------------------------

    async def get_valid_token(self, user_id: str, provider: Provider) -> Optional[str]:
        """A usable access token for (user, provider), or None if not connected."""
        integration = self._repo.get_active(user_id, provider)
        if integration is None:
            return None
        if not self._needs_refresh(integration):
            return integration.access_token

        async with self._refresh_locks((user_id, provider)):
            # Another caller may have refreshed while we waited
            integration = self._repo.get_active(user_id, provider)
            if integration is None:
                return None
            if not self._needs_refresh(integration):
                return integration.access_token
            return await self._refresh(integration)

    def connection_info(self, user_id: str, provider: Provider) -> ConnectionInfo:
        integration = self._repo.get_active(user_id, provider)
        if integration is None:
            return ConnectionInfo(provider=provider, connected=False)
        return ConnectionInfo(
            provider=provider,
            connected=True,
            connected_at=integration.connected_at,
            last_sync_at=integration.last_sync_at,
        )

    def list_connected(self, user_id: str) -> list[Provider]:
        return sorted({i.provider for i in self._repo.list_active(user_id)}, key=lambda p: p.value)

    def find_user_by_provider_id(self, provider: Provider, provider_user_id: str) -> Optional[str]:
        integration = self._repo.find_by_provider_user_id(provider, provider_user_id)
        return integration.user_id if integration else None

    # ---- Writes ----------------------------------------------------------

    def save_tokens(
        self,
        user_id: str,
        provider: Provider,
        tokens: TokenSet,
        provider_user_id: Optional[str] = None,
        previous: Optional[Integration] = None,
    ) -> Integration:
        """Store a fresh grant as the one active row for (user, provider)."""
        now = datetime.now(timezone.utc)
        if tokens.expires_in is not None:
            lifetime = timedelta(seconds=tokens.expires_in)
        else:
            lifetime = self._registry[provider].default_token_lifetime

        integration = Integration(
            user_id=user_id,
            provider=provider,
            provider_user_id=provider_user_id or (previous.provider_user_id if previous else None),
            access_token=tokens.access_token,
            # Some vendors omit refresh_token on refresh when it is not rotated
            refresh_token=tokens.refresh_token or (previous.refresh_token if previous else None),
            token_expires_at=now + lifetime,
            connected_at=previous.connected_at if previous and previous.connected_at else now,
            last_sync_at=previous.last_sync_at if previous else None,
            is_active=True,
        )
        return self._repo.replace(integration)

    async def disconnect(self, user_id: str, provider: Provider) -> None:
        integration = self._repo.get_active(user_id, provider)
        if integration is None:
            return
        try:
            await self._registry[provider].revoke_token(integration.access_token)
        except ProviderError as exc:
            logger.warning("Revoke failed for user %s on %s: %s", user_id, provider.value, exc)
        self._repo.deactivate(user_id, provider)
        logger.info("Disconnected %s for user %s", provider.value, user_id)

    def mark_synced(self, user_id: str, provider: Provider) -> None:
        self._repo.touch_last_sync(user_id, provider)

    # ---- Refresh ---------------------------------------------------------

    def _needs_refresh(self, integration: Integration) -> bool:
        if integration.token_expires_at is None:
            return False
        buffer = timedelta(minutes=self._settings.token_expiry_buffer_minutes)
        return integration.token_expires_at - buffer <= datetime.now(timezone.utc)

    async def _refresh(self, integration: Integration) -> Optional[str]:
        user_id, provider = integration.user_id, integration.provider
        if not integration.refresh_token:
            logger.warning("No refresh token stored for user %s on %s", user_id, provider.value)
            self._repo.deactivate(user_id, provider)
            return None

        client = self._registry[provider]
        attempts = max(1, self._settings.token_refresh_attempts)
        for attempt in range(1, attempts + 1):
            try:
                tokens = await client.refresh_token(integration.refresh_token)
            except ProviderAuthError as exc:
                logger.warning(
                    "Refresh rejected for user %s on %s (%s): deactivating",
                    user_id, provider.value, exc.status_code,
                )
                break
            except (ProviderTimeoutError, ProviderAPIError) as exc:
                transient = isinstance(exc, ProviderTimeoutError) or exc.is_transient
                if not transient or attempt == attempts:
                    logger.warning(
                        "Refresh failed for user %s on %s after %d attempt(s): %s",
                        user_id, provider.value, attempt, exc,
                    )
                    break
                await asyncio.sleep(_RETRY_BACKOFF_SECONDS * attempt)
                continue
            except ProviderError as exc:
                logger.warning("Refresh failed for user %s on %s: %s", user_id, provider.value, exc)
                break

            saved = self.save_tokens(user_id, provider, tokens, previous=integration)
            logger.info("Refreshed %s token for user %s", provider.value, user_id)
            return saved.access_token

        self._repo.deactivate(user_id, provider)
        return None


_default_store: Optional[TokenStore] = None


def get_token_store() -> TokenStore:
    global _default_store
    if _default_store is None:
        _default_store = TokenStore()
    return _default_store
