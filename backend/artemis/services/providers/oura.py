"""
Oura client: REST API v2.

Daily collections take ``start_date`` / ``end_date`` and return ``data``.
Readiness and activity are daily summaries; sleep uses the detailed
``/sleep`` periods because only they carry raw durations (the daily_sleep
summary holds contributor scores, not minutes).
"""

from __future__ import annotations

from artemis.models.wearable import Provider
from artemis.services.providers.base import FetchWindow, WearableProvider

OURA_API_URL = "https://api.ouraring.com/v2/usercollection"
OURA_AUTHORIZE_URL = "https://cloud.ouraring.com/oauth/authorize"
OURA_TOKEN_URL = "https://api.ouraring.com/oauth/token"
OURA_REVOKE_URL = "https://api.ouraring.com/oauth/revoke"


class OuraProvider(WearableProvider):
    provider = Provider.OURA
    authorize_url = OURA_AUTHORIZE_URL
    token_url = OURA_TOKEN_URL
    scopes = ("daily", "heartrate", "personal", "session", "workout")

    async def revoke_token(self, access_token: str) -> None:
        await self._request("GET", OURA_REVOKE_URL, params={"access_token": access_token})

    async def fetch_user_id(self, access_token: str) -> str:
        info = await self._get_json(f"{OURA_API_URL}/personal_info", access_token)
        return str(info["id"])

    async def fetch_recovery(self, access_token: str, window: FetchWindow) -> list[dict]:
        return await self._collection("/daily_readiness", access_token, window)

    async def fetch_sleep(self, access_token: str, window: FetchWindow) -> list[dict]:
        return await self._collection("/sleep", access_token, window)

    async def fetch_activity(self, access_token: str, window: FetchWindow) -> list[dict]:
        return await self._collection("/daily_activity", access_token, window)

    async def _collection(self, path: str, access_token: str, window: FetchWindow) -> list[dict]:
        data = await self._get_json(
            f"{OURA_API_URL}{path}",
            access_token,
            params={
                "start_date": window.start.isoformat(),
                "end_date": window.end.isoformat(),
            },
        )
        return list(data.get("data") or [])
