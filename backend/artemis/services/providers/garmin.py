"""
Garmin client: Health API (wellness-api).

Summaries are queried by *upload* time, not by calendar date, and Garmin
rejects ranges longer than 24 hours. A window is therefore walked one day
at a time and the results concatenated; the normaliser keys records by
``calendarDate`` so a summary uploaded a day late still lands on the
right day.
"""

from __future__ import annotations

from datetime import timedelta

from artemis.models.wearable import Provider
from artemis.services.providers.base import FetchWindow, WearableProvider

GARMIN_API_URL = "https://apis.garmin.com/wellness-api/rest"
GARMIN_AUTHORIZE_URL = "https://connect.garmin.com/oauth2Confirm"
GARMIN_TOKEN_URL = "https://diauth.garmin.com/di-oauth2-service/oauth/token"


class GarminProvider(WearableProvider):
    provider = Provider.GARMIN
    authorize_url = GARMIN_AUTHORIZE_URL
    token_url = GARMIN_TOKEN_URL
    default_token_lifetime = timedelta(hours=24)

    async def revoke_token(self, access_token: str) -> None:
        # Deregistering the user is Garmin's equivalent of revoking the grant
        await self._request(
            "DELETE",
            f"{GARMIN_API_URL}/user/registration",
            headers={"Authorization": f"Bearer {access_token}"},
        )

    async def fetch_user_id(self, access_token: str) -> str:
        body = await self._get_json(f"{GARMIN_API_URL}/user/id", access_token)
        return str(body["userId"])

    async def fetch_recovery(self, access_token: str, window: FetchWindow) -> list[dict]:
        return await self._by_upload_day("/dailies", access_token, window)

    async def fetch_sleep(self, access_token: str, window: FetchWindow) -> list[dict]:
        return await self._by_upload_day("/sleeps", access_token, window)

    async def fetch_activity(self, access_token: str, window: FetchWindow) -> list[dict]:
        return await self._by_upload_day("/activities", access_token, window)

    async def _by_upload_day(self, path: str, access_token: str, window: FetchWindow) -> list[dict]:
        records: list[dict] = []
        start = window.start_datetime()
        end = window.end_datetime()
        while start < end:
            chunk_end = min(start + timedelta(days=1), end)
            body = await self._get_json(
                f"{GARMIN_API_URL}{path}",
                access_token,
                params={
                    "uploadStartTimeInSeconds": int(start.timestamp()),
                    "uploadEndTimeInSeconds": int(chunk_end.timestamp()),
                },
            )
            records.extend(body or [])
            start = chunk_end
        return records
