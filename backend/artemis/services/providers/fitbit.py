"""
Fitbit client: Web API v1.

Fitbit differs from the other vendors in three ways:

- Token and revoke endpoints authenticate the app with HTTP Basic client
  credentials instead of form fields.
- Data is fetched one day at a time, with a short pause between calls.
- The API allows 150 requests per user per hour and reports the remaining
  budget on every response. We track it per access token and refuse to send
  a request once it is spent, raising ProviderRateLimitError so the
  orchestrator can skip the cell instead of failing it hard.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx

from artemis.models.wearable import Provider
from artemis.services.providers.base import (
    FetchWindow,
    ProviderRateLimitError,
    WearableProvider,
)

logger = logging.getLogger(__name__)

FITBIT_API_URL = "https://api.fitbit.com/1"
FITBIT_SLEEP_API_URL = "https://api.fitbit.com/1.2"
FITBIT_AUTHORIZE_URL = "https://www.fitbit.com/oauth2/authorize"
FITBIT_TOKEN_URL = "https://api.fitbit.com/oauth2/token"
FITBIT_REVOKE_URL = "https://api.fitbit.com/oauth2/revoke"

# Imperial units so activity distances are consistently miles
_UNIT_HEADERS = {"Accept-Language": "en_US"}


@dataclass
class RateLimitInfo:
    limit: int
    remaining: int
    reset_at: datetime


class FitbitRateLimiter:
    """Remaining-request budget per access token, read from response headers."""

    def __init__(self) -> None:
        self._info: dict[str, RateLimitInfo] = {}

    def check(self, access_token: str) -> None:
        info = self._info.get(access_token)
        if info is None:
            return
        if info.remaining <= 0 and datetime.now(timezone.utc) < info.reset_at:
            raise ProviderRateLimitError(Provider.FITBIT, info.reset_at)

    def update(self, access_token: str, headers: httpx.Headers) -> None:
        remaining = headers.get("fitbit-rate-limit-remaining")
        reset = headers.get("fitbit-rate-limit-reset")
        limit = headers.get("fitbit-rate-limit-limit")
        if not (remaining and reset and limit):
            return
        now = datetime.now(timezone.utc)
        self._prune(now)
        try:
            self._info[access_token] = RateLimitInfo(
                limit=int(limit),
                remaining=int(remaining),
                # reset header is seconds until the window rolls over
                reset_at=now + timedelta(seconds=int(reset)),
            )
        except ValueError:
            logger.warning("Unparseable Fitbit rate limit headers: %s/%s/%s", remaining, reset, limit)

    def get(self, access_token: str) -> Optional[RateLimitInfo]:
        return self._info.get(access_token)

    def _prune(self, now: datetime) -> None:
        # Tokens rotate every few hours; a rolled-over window is never consulted again
        for token in [t for t, info in self._info.items() if info.reset_at <= now]:
            del self._info[token]


class FitbitProvider(WearableProvider):
    provider = Provider.FITBIT
    authorize_url = FITBIT_AUTHORIZE_URL
    token_url = FITBIT_TOKEN_URL
    scopes = ("activity", "heartrate", "sleep", "profile")
    default_token_lifetime = timedelta(hours=8)

    def __init__(self, *args: Any, request_delay_ms: int = 100, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._request_delay = request_delay_ms / 1000
        self.rate_limiter = FitbitRateLimiter()

    def _token_auth(self) -> tuple[dict, Optional[httpx.BasicAuth]]:
        return {"client_id": self._client_id}, httpx.BasicAuth(self._client_id, self._client_secret)

    async def revoke_token(self, access_token: str) -> None:
        await self._request(
            "POST",
            FITBIT_REVOKE_URL,
            data={"token": access_token},
            auth=httpx.BasicAuth(self._client_id, self._client_secret),
        )

    async def fetch_user_id(self, access_token: str) -> str:
        profile = await self._api_get(f"{FITBIT_API_URL}/user/-/profile.json", access_token)
        return str(profile["user"]["encodedId"])

    async def fetch_recovery(self, access_token: str, window: FetchWindow) -> list[dict]:
        return await self._per_day(
            access_token,
            window,
            lambda day: f"{FITBIT_API_URL}/user/-/activities/heart/date/{day.isoformat()}/1d.json",
        )

    async def fetch_sleep(self, access_token: str, window: FetchWindow) -> list[dict]:
        return await self._per_day(
            access_token,
            window,
            lambda day: f"{FITBIT_SLEEP_API_URL}/user/-/sleep/date/{day.isoformat()}.json",
        )

    async def fetch_activity(self, access_token: str, window: FetchWindow) -> list[dict]:
        return await self._per_day(
            access_token,
            window,
            lambda day: f"{FITBIT_API_URL}/user/-/activities/date/{day.isoformat()}.json",
        )

    async def _per_day(self, access_token: str, window: FetchWindow, url_for) -> list[dict]:
        """Fetch one payload per day, tagging each with the day it covers.

        Running out of quota part-way raises ProviderRateLimitError carrying
        the days already fetched.
        """
        payloads: list[dict] = []
        days = window.days()
        for index, day in enumerate(days):
            try:
                body = await self._api_get(url_for(day), access_token)
            except ProviderRateLimitError as exc:
                exc.partial = payloads
                raise
            payloads.append({"date": day.isoformat(), **body})
            if index < len(days) - 1 and self._request_delay:
                await asyncio.sleep(self._request_delay)
        return payloads

    async def _api_get(self, url: str, access_token: str) -> Any:
        self.rate_limiter.check(access_token)
        return await self._get_json(url, access_token, headers=_UNIT_HEADERS)

    def _after_response(self, response: httpx.Response) -> None:
        authorization = response.request.headers.get("Authorization", "")
        if authorization.startswith("Bearer "):
            self.rate_limiter.update(authorization.removeprefix("Bearer "), response.headers)
