"""
Whoop client: developer API v1.

Recovery, sleep and workouts are collection endpoints taking ISO ``start`` /
``end`` datetimes and a ``limit``; records come back under ``records``.
"""

from __future__ import annotations

from datetime import timedelta

from artemis.models.wearable import Provider
from artemis.services.providers.base import FetchWindow, WearableProvider

WHOOP_API_URL = "https://api.prod.whoop.com/developer/v1"
WHOOP_AUTHORIZE_URL = "https://api.prod.whoop.com/oauth/oauth2/auth"
WHOOP_TOKEN_URL = "https://api.prod.whoop.com/oauth/oauth2/token"


class WhoopProvider(WearableProvider):
    provider = Provider.WHOOP
    authorize_url = WHOOP_AUTHORIZE_URL
    token_url = WHOOP_TOKEN_URL
    scopes = ("offline", "read:recovery", "read:sleep", "read:workout", "read:profile")
    default_token_lifetime = timedelta(hours=1)

    async def revoke_token(self, access_token: str) -> None:
        await self._request(
            "DELETE",
            f"{WHOOP_API_URL}/user/access",
            headers={"Authorization": f"Bearer {access_token}"},
        )

    async def fetch_user_id(self, access_token: str) -> str:
        profile = await self._get_json(f"{WHOOP_API_URL}/user/profile/basic", access_token)
        return str(profile["user_id"])

    async def fetch_recovery(self, access_token: str, window: FetchWindow) -> list[dict]:
        return await self._collection("/recovery", access_token, window)

    async def fetch_sleep(self, access_token: str, window: FetchWindow) -> list[dict]:
        return await self._collection("/activity/sleep", access_token, window)

    async def fetch_activity(self, access_token: str, window: FetchWindow) -> list[dict]:
        return await self._collection("/activity/workout", access_token, window)

    async def _collection(self, path: str, access_token: str, window: FetchWindow) -> list[dict]:
        data = await self._get_json(
            f"{WHOOP_API_URL}{path}",
            access_token,
            params={
                "start": window.start_datetime().isoformat(),
                "end": window.end_datetime().isoformat(),
                "limit": window.limit,
            },
        )
        return list(data.get("records") or [])
