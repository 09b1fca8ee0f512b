"""
Wearable Provider Interface
===========================
The one capability every vendor integration implements: OAuth code exchange,
refresh, revoke, and date-ranged fetches of recovery / sleep / activity data.

Fetches return the vendor's records verbatim (plain dicts). Mapping them into
unified records is the normaliser's job, so a client never decides what a
field means. It only knows where the endpoint lives and how to authenticate.

All HTTP goes through ``WearableProvider._request`` so every call gets the
same timeout, the same error taxonomy, and the same logging.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional
from urllib.parse import urlencode

import httpx

from artemis.models.wearable import DataType, Provider, TokenSet

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ProviderError(Exception):
    """Base class for anything a vendor call can fail with."""

    def __init__(self, provider: Provider, message: str) -> None:
        self.provider = provider
        super().__init__(message)


class ProviderAPIError(ProviderError):
    """Non-2xx response from a vendor API."""

    def __init__(self, provider: Provider, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(provider, f"{provider.value} API error {status_code}: {body[:200]}")

    @property
    def is_transient(self) -> bool:
        return self.status_code >= 500


class ProviderAuthError(ProviderAPIError):
    """Token rejected (401/403) or refresh grant refused (400)."""


class ProviderRateLimitError(ProviderError):
    """Quota exhausted. ``retry_after`` is when the vendor says to come back.

    ``partial`` holds payloads fetched before the quota ran out, when the
    fetch was a multi-request walk that got part of the way.
    """

    def __init__(
        self,
        provider: Provider,
        retry_after: Optional[datetime] = None,
        partial: Optional[list[dict]] = None,
    ) -> None:
        self.retry_after = retry_after
        self.partial = partial or []
        when = f" until {retry_after.isoformat()}" if retry_after else ""
        super().__init__(provider, f"{provider.value} rate limit exceeded{when}")


class ProviderTimeoutError(ProviderError):
    """Timeout or transport failure. Transient: safe to retry later."""


# ---------------------------------------------------------------------------
# Fetch window
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FetchWindow:
    """Inclusive date range plus the page size sent to the vendor.

    Only the first page is ever requested.
    """

    start: date
    end: date
    limit: int = 25

    @classmethod
    def trailing(cls, days: int, limit: int = 25, today: Optional[date] = None) -> "FetchWindow":
        end = today or datetime.now(timezone.utc).date()
        return cls(start=end - timedelta(days=days), end=end, limit=limit)

    def days(self) -> list[date]:
        span = (self.end - self.start).days
        return [self.start + timedelta(days=i) for i in range(span + 1)]

    def start_datetime(self) -> datetime:
        return datetime.combine(self.start, datetime.min.time(), tzinfo=timezone.utc)

    def end_datetime(self) -> datetime:
        # exclusive upper bound: midnight after the last day
        return datetime.combine(self.end + timedelta(days=1), datetime.min.time(), tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# WearableProvider
# ---------------------------------------------------------------------------


class WearableProvider(ABC):
    """Base class for one vendor's OAuth + data client."""

    provider: Provider
    authorize_url: str
    token_url: str
    scopes: tuple[str, ...] = ()
    supported_data_types: tuple[DataType, ...] = (
        DataType.RECOVERY,
        DataType.SLEEP,
        DataType.ACTIVITY,
    )
    # Used when the token endpoint omits expires_in
    default_token_lifetime = timedelta(hours=24)

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        timeout: float = 15.0,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri
        self._timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self._client_id and self._client_secret)

    # ---- OAuth -----------------------------------------------------------

    def authorization_url(self, state: str) -> str:
        params = {
            "response_type": "code",
            "client_id": self._client_id,
            "redirect_uri": self._redirect_uri,
            "scope": " ".join(self.scopes),
            "state": state,
        }
        return f"{self.authorize_url}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> TokenSet:
        """Trade an OAuth authorisation code for an access + refresh token pair."""
        return await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self._redirect_uri,
            }
        )

    async def refresh_token(self, refresh_token: str) -> TokenSet:
        """Use a refresh token to obtain a new token pair."""
        return await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )

    @abstractmethod
    async def revoke_token(self, access_token: str) -> None:
        """Tell the vendor to invalidate the grant."""

    @abstractmethod
    async def fetch_user_id(self, access_token: str) -> str:
        """Vendor-side id of the user owning ``access_token``."""

    # ---- Data ------------------------------------------------------------

    @abstractmethod
    async def fetch_recovery(self, access_token: str, window: FetchWindow) -> list[dict]:
        ...

    @abstractmethod
    async def fetch_sleep(self, access_token: str, window: FetchWindow) -> list[dict]:
        ...

    @abstractmethod
    async def fetch_activity(self, access_token: str, window: FetchWindow) -> list[dict]:
        ...

    async def fetch(self, data_type: DataType, access_token: str, window: FetchWindow) -> list[dict]:
        """Dispatch to the fetcher for ``data_type``."""
        if data_type not in self.supported_data_types:
            return []
        fetchers = {
            DataType.RECOVERY: self.fetch_recovery,
            DataType.SLEEP: self.fetch_sleep,
            DataType.ACTIVITY: self.fetch_activity,
        }
        return await fetchers[data_type](access_token, window)

    # ---- HTTP helpers ----------------------------------------------------

    def _token_auth(self) -> tuple[dict, Optional[httpx.BasicAuth]]:
        """Credentials for the token endpoint: form fields by default."""
        return {"client_id": self._client_id, "client_secret": self._client_secret}, None

    async def _token_request(self, form: dict) -> TokenSet:
        fields, auth = self._token_auth()
        response = await self._request(
            "POST",
            self.token_url,
            data={**form, **fields},
            auth=auth,
            token_endpoint=True,
        )
        return TokenSet(**response.json())

    async def _get_json(
        self,
        url: str,
        access_token: str,
        params: Optional[dict] = None,
        headers: Optional[dict] = None,
    ) -> Any:
        response = await self._request(
            "GET",
            url,
            params=params,
            headers={"Authorization": f"Bearer {access_token}", **(headers or {})},
        )
        return response.json()

    async def _request(
        self,
        method: str,
        url: str,
        *,
        token_endpoint: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        """Shared async HTTP call. Maps failures onto the provider error taxonomy."""
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise ProviderTimeoutError(self.provider, f"{self.provider.value} request timed out: {url}") from exc
        except httpx.TransportError as exc:
            raise ProviderTimeoutError(self.provider, f"{self.provider.value} transport error: {exc}") from exc

        self._after_response(response)

        if response.is_success:
            return response

        logger.warning(
            "%s %s %s returned %s", self.provider.value, method, url, response.status_code
        )
        if response.status_code == 429:
            raise ProviderRateLimitError(self.provider, _retry_after(response))
        if response.status_code in (401, 403) or (token_endpoint and response.status_code == 400):
            raise ProviderAuthError(self.provider, response.status_code, response.text)
        raise ProviderAPIError(self.provider, response.status_code, response.text)

    def _after_response(self, response: httpx.Response) -> None:
        """Hook for vendors that read quota headers off every response."""


def _retry_after(response: httpx.Response) -> Optional[datetime]:
    value = response.headers.get("retry-after")
    if value and value.isdigit():
        return datetime.now(timezone.utc) + timedelta(seconds=int(value))
    return None
