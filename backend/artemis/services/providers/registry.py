"""
Provider registry: one client instance per vendor, built once at startup.

Services take the registry as a constructor argument so tests can hand in
their own clients. Everything else uses the cached one.
"""

from __future__ import annotations

from functools import lru_cache

from artemis.config import Settings, get_settings
from artemis.models.wearable import Provider
from artemis.services.providers.base import WearableProvider
from artemis.services.providers.fitbit import FitbitProvider
from artemis.services.providers.garmin import GarminProvider
from artemis.services.providers.oura import OuraProvider
from artemis.services.providers.whoop import WhoopProvider

ProviderRegistry = dict[Provider, WearableProvider]


def build_provider_registry(settings: Settings) -> ProviderRegistry:
    timeout = settings.provider_timeout_seconds
    return {
        Provider.WHOOP: WhoopProvider(
            settings.whoop_client_id,
            settings.whoop_client_secret,
            settings.whoop_redirect_uri,
            timeout=timeout,
        ),
        Provider.OURA: OuraProvider(
            settings.oura_client_id,
            settings.oura_client_secret,
            settings.oura_redirect_uri,
            timeout=timeout,
        ),
        Provider.FITBIT: FitbitProvider(
            settings.fitbit_client_id,
            settings.fitbit_client_secret,
            settings.fitbit_redirect_uri,
            timeout=timeout,
            request_delay_ms=settings.fitbit_request_delay_ms,
        ),
        Provider.GARMIN: GarminProvider(
            settings.garmin_client_id,
            settings.garmin_client_secret,
            settings.garmin_redirect_uri,
            timeout=timeout,
        ),
    }


@lru_cache
def get_provider_registry() -> ProviderRegistry:
    return build_provider_registry(get_settings())
