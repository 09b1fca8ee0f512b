"""
Tests for the provider token store
==================================
Covers:
- A token well inside its lifetime is returned without a refresh
- A token inside the expiry buffer is refreshed exactly once
- Concurrent callers with an expired token share a single refresh
- Refresh rejected by the vendor -> integration deactivated, None returned
- Transient refresh failures are retried, then given up on
- save_tokens(): one active row per (user, provider), default lifetime when
  expires_in is missing, refresh token carried over when not rotated
- disconnect(): revoke failure still deactivates locally
- connection_info() / list_connected() / find_user_by_provider_id()

Run: pytest tests/test_token_store.py -v
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from artemis.db.integrations import IntegrationRepository
from artemis.models.wearable import Provider, TokenSet
from artemis.services.providers.base import (
    ProviderAPIError,
    ProviderAuthError,
    ProviderTimeoutError,
)
from artemis.services.token_store import TokenStore

_USER_ID = "user-1"
_TABLE = "user_integrations"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _seed_integration(fake_db, expires_in: timedelta, provider=Provider.WHOOP, **extra) -> None:
    now = datetime.now(timezone.utc)
    row = {
        "user_id": _USER_ID,
        "provider": provider.value,
        "provider_user_id": "10129",
        "access_token": "old-access-token",
        "refresh_token": "old-refresh-token",
        "token_expires_at": (now + expires_in).isoformat(),
        "connected_at": (now - timedelta(days=3)).isoformat(),
        "is_active": True,
    }
    row.update(extra)
    fake_db.seed(_TABLE, row)


@pytest.fixture
def whoop(make_provider):
    return make_provider(Provider.WHOOP)


@pytest.fixture
def store(fake_db, whoop, settings, make_provider):
    return TokenStore(
        repository=IntegrationRepository(db=fake_db),
        registry={Provider.WHOOP: whoop, Provider.OURA: make_provider(Provider.OURA)},
        settings=settings,
    )


# ---------------------------------------------------------------------------
# get_valid_token
# ---------------------------------------------------------------------------

class TestGetValidToken:

    @pytest.mark.asyncio
    async def test_valid_token_is_returned_without_refresh(self, fake_db, store, whoop):
        _seed_integration(fake_db, timedelta(hours=2))

        token = await store.get_valid_token(_USER_ID, Provider.WHOOP)

        assert token == "old-access-token"
        assert whoop.refresh_calls == 0

    @pytest.mark.asyncio
    async def test_not_connected_returns_none(self, store):
        assert await store.get_valid_token(_USER_ID, Provider.WHOOP) is None

    @pytest.mark.asyncio
    async def test_expired_token_is_refreshed_once(self, fake_db, store, whoop):
        _seed_integration(fake_db, timedelta(minutes=-1))

        token = await store.get_valid_token(_USER_ID, Provider.WHOOP)

        assert token == "new-access-token"
        assert whoop.refresh_calls == 1
        active = fake_db.rows(_TABLE, is_active=True)
        assert len(active) == 1
        assert active[0]["access_token"] == "new-access-token"
        assert active[0]["refresh_token"] == "new-refresh-token"
        assert active[0]["provider_user_id"] == "10129"

    @pytest.mark.asyncio
    async def test_token_inside_expiry_buffer_is_refreshed(self, fake_db, store, whoop):
        # settings.token_expiry_buffer_minutes == 5
        _seed_integration(fake_db, timedelta(minutes=3))

        token = await store.get_valid_token(_USER_ID, Provider.WHOOP)

        assert token == "new-access-token"
        assert whoop.refresh_calls == 1

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self, fake_db, store, whoop):
        _seed_integration(fake_db, timedelta(minutes=-10))

        tokens = await asyncio.gather(*(store.get_valid_token(_USER_ID, Provider.WHOOP) for _ in range(5)))

        assert tokens == ["new-access-token"] * 5
        assert whoop.refresh_calls == 1
        assert len(fake_db.rows(_TABLE, is_active=True)) == 1

    @pytest.mark.asyncio
    async def test_rejected_refresh_deactivates(self, fake_db, store, whoop):
        _seed_integration(fake_db, timedelta(minutes=-1))
        whoop.refresh_errors = [ProviderAuthError(Provider.WHOOP, 400, '{"error":"invalid_grant"}')]

        token = await store.get_valid_token(_USER_ID, Provider.WHOOP)

        assert token is None
        assert whoop.refresh_calls == 1
        assert fake_db.rows(_TABLE, is_active=True) == []
        # and the user now reads as disconnected
        assert store.connection_info(_USER_ID, Provider.WHOOP).connected is False

    @pytest.mark.asyncio
    async def test_missing_refresh_token_deactivates(self, fake_db, store, whoop):
        _seed_integration(fake_db, timedelta(minutes=-1), refresh_token=None)

        assert await store.get_valid_token(_USER_ID, Provider.WHOOP) is None
        assert whoop.refresh_calls == 0
        assert fake_db.rows(_TABLE, is_active=True) == []

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, fake_db, store, whoop):
        _seed_integration(fake_db, timedelta(minutes=-1))
        whoop.refresh_errors = [ProviderAPIError(Provider.WHOOP, 503, "unavailable")]

        with patch("artemis.services.token_store._RETRY_BACKOFF_SECONDS", 0):
            token = await store.get_valid_token(_USER_ID, Provider.WHOOP)

        assert token == "new-access-token"
        assert whoop.refresh_calls == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_configured_attempts(self, fake_db, store, whoop, settings):
        _seed_integration(fake_db, timedelta(minutes=-1))
        whoop.refresh_errors = [ProviderTimeoutError(Provider.WHOOP, "timed out") for _ in range(5)]

        with patch("artemis.services.token_store._RETRY_BACKOFF_SECONDS", 0):
            token = await store.get_valid_token(_USER_ID, Provider.WHOOP)

        assert token is None
        assert whoop.refresh_calls == settings.token_refresh_attempts
        assert fake_db.rows(_TABLE, is_active=True) == []

    @pytest.mark.asyncio
    async def test_unrotated_refresh_token_is_kept(self, fake_db, store, whoop):
        _seed_integration(fake_db, timedelta(minutes=-1))
        whoop.refresh_result = TokenSet(access_token="new-access-token", expires_in=3600)

        await store.get_valid_token(_USER_ID, Provider.WHOOP)

        [active] = fake_db.rows(_TABLE, is_active=True)
        assert active["refresh_token"] == "old-refresh-token"


# ---------------------------------------------------------------------------
# save_tokens / disconnect
# ---------------------------------------------------------------------------

class TestSaveAndDisconnect:

    def test_save_replaces_the_active_row(self, fake_db, store):
        _seed_integration(fake_db, timedelta(hours=1))

        store.save_tokens(_USER_ID, Provider.WHOOP, TokenSet(access_token="fresh", refresh_token="r", expires_in=3600))

        rows = fake_db.rows(_TABLE, user_id=_USER_ID, provider="whoop")
        assert len(rows) == 2
        assert [r["access_token"] for r in rows if r["is_active"]] == ["fresh"]

    def test_default_lifetime_when_expires_in_missing(self, store):
        before = datetime.now(timezone.utc)

        saved = store.save_tokens(_USER_ID, Provider.WHOOP, TokenSet(access_token="fresh"))

        assert saved.token_expires_at >= before + timedelta(hours=24)
        assert saved.token_expires_at <= datetime.now(timezone.utc) + timedelta(hours=24)

    def test_provider_user_id_is_stored(self, fake_db, store):
        store.save_tokens(_USER_ID, Provider.OURA, TokenSet(access_token="t", expires_in=60), provider_user_id="oura-9")

        assert store.find_user_by_provider_id(Provider.OURA, "oura-9") == _USER_ID
        assert store.find_user_by_provider_id(Provider.OURA, "someone-else") is None

    @pytest.mark.asyncio
    async def test_disconnect_revokes_and_deactivates(self, fake_db, store, whoop):
        _seed_integration(fake_db, timedelta(hours=1))

        await store.disconnect(_USER_ID, Provider.WHOOP)

        assert whoop.revoked == ["old-access-token"]
        assert fake_db.rows(_TABLE, is_active=True) == []

    @pytest.mark.asyncio
    async def test_disconnect_survives_revoke_failure(self, fake_db, store, whoop):
        _seed_integration(fake_db, timedelta(hours=1))
        whoop.revoke_error = ProviderAPIError(Provider.WHOOP, 500, "boom")

        await store.disconnect(_USER_ID, Provider.WHOOP)

        assert fake_db.rows(_TABLE, is_active=True) == []

    @pytest.mark.asyncio
    async def test_disconnect_when_not_connected_is_a_noop(self, fake_db, store, whoop):
        await store.disconnect(_USER_ID, Provider.WHOOP)

        assert whoop.revoked == []
        assert fake_db.writes == []


# ---------------------------------------------------------------------------
# Connection listing
# ---------------------------------------------------------------------------

class TestConnections:

    def test_connection_info(self, fake_db, store):
        _seed_integration(fake_db, timedelta(hours=1))

        info = store.connection_info(_USER_ID, Provider.WHOOP)

        assert info.connected is True
        assert info.connected_at is not None
        assert store.connection_info(_USER_ID, Provider.OURA).connected is False

    def test_list_connected_is_sorted(self, fake_db, store):
        _seed_integration(fake_db, timedelta(hours=1), provider=Provider.WHOOP)
        _seed_integration(fake_db, timedelta(hours=1), provider=Provider.OURA)

        assert store.list_connected(_USER_ID) == [Provider.OURA, Provider.WHOOP]

    def test_mark_synced_stamps_last_sync(self, fake_db, store):
        _seed_integration(fake_db, timedelta(hours=1))

        store.mark_synced(_USER_ID, Provider.WHOOP)

        [row] = fake_db.rows(_TABLE, is_active=True)
        assert row["last_sync_at"] is not None
