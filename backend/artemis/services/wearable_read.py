"""
Unified Read Service
====================
The one place the dashboard gets wearable data from.

Two sources, one output shape:
- Live: the owner looking at their own data. Fetched from every connected
  provider in parallel and normalised on the way out. Optionally kicks off a
  background sync so the stored copy catches up.
- Stored: a trainer looking at a client. Read from the unified tables only,
  after re-checking the trainer relationship. The client's tokens are never
  touched on this path.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from artemis.config import get_settings
from artemis.db.wearable_data import WearableDataRepository
from artemis.models.wearable import DataType, Provider, UnifiedRecord
from artemis.services.normalizer import aggregate_by_date, normalise_batch
from artemis.services.providers.base import FetchWindow
from artemis.services.providers.registry import ProviderRegistry, get_provider_registry
from artemis.services.sync import SyncOrchestrator, get_sync_orchestrator
from artemis.services.token_store import TokenStore, get_token_store
from artemis.services.trainer_access import TrainerAccessService, get_trainer_access_service

logger = logging.getLogger(__name__)


class LiveDataUnavailableError(Exception):
    """Every connected provider failed a live read."""

    def __init__(self, providers: list[Provider]) -> None:
        self.providers = providers
        names = ", ".join(p.value for p in providers)
        super().__init__(f"Live data unavailable from: {names}")


class UnifiedReadService:
    def __init__(
        self,
        token_store: Optional[TokenStore] = None,
        repository: Optional[WearableDataRepository] = None,
        registry: Optional[ProviderRegistry] = None,
        trainer_access: Optional[TrainerAccessService] = None,
        orchestrator: Optional[SyncOrchestrator] = None,
        settings=None,
    ) -> None:
        self._tokens = token_store or get_token_store()
        self._repo = repository or WearableDataRepository()
        self._registry = registry if registry is not None else get_provider_registry()
        self._trainers = trainer_access or get_trainer_access_service()
        self._orchestrator = orchestrator
        self._settings = settings or get_settings()

    # ---- Live (owner) ----------------------------------------------------

    async def get_live(
        self,
        user_id: str,
        data_type: DataType,
        days: int = 7,
        background_sync: bool = False,
    ) -> list[UnifiedRecord]:
        """Fresh records from every connected provider, newest first.

        An empty list means nothing is connected, including a provider whose
        token died on refresh. If at least one provider answers, its records
        are returned and the failures are only logged.
        """
        providers = self._tokens.list_connected(user_id)
        if not providers:
            return []

        if background_sync:
            (self._orchestrator or get_sync_orchestrator()).schedule_background_sync(user_id)

        window = FetchWindow.trailing(days, limit=self._settings.provider_page_limit)
        outcomes = await asyncio.gather(
            *(self._fetch_live(user_id, provider, data_type, window) for provider in providers),
            return_exceptions=True,
        )

        records: list[UnifiedRecord] = []
        failed: list[Provider] = []
        answered = 0
        for provider, outcome in zip(providers, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("Live %s read from %s failed for user %s: %s", data_type.value, provider.value, user_id, outcome)
                failed.append(provider)
            elif outcome is not None:
                answered += 1
                records.extend(outcome)

        if failed and not answered:
            raise LiveDataUnavailableError(failed)
        return sorted(records, key=lambda r: r.date, reverse=True)

    async def _fetch_live(
        self, user_id: str, provider: Provider, data_type: DataType, window: FetchWindow
    ) -> Optional[list[UnifiedRecord]]:
        """Normalised records, or None when the provider is no longer connected."""
        token = await self._tokens.get_valid_token(user_id, provider)
        if token is None:
            return None
        payloads = await self._registry[provider].fetch(data_type, token, window)
        return normalise_batch(provider, data_type, payloads)

    # ---- Stored (trainer) ------------------------------------------------

    def get_stored(
        self,
        requester_id: str,
        client_id: str,
        data_type: DataType,
        days: int = 7,
    ) -> list[UnifiedRecord]:
        """Stored records for ``client_id``. Raises TrainerAccessDenied."""
        if requester_id != client_id:
            self._trainers.require_access(requester_id, client_id)
        since = datetime.now(timezone.utc).date() - timedelta(days=days)
        return self._repo.list_records(client_id, data_type, since)

    # ---- Effective user --------------------------------------------------

    async def get_for_viewer(
        self,
        requester_id: str,
        data_type: DataType,
        days: int = 7,
        client_id: Optional[str] = None,
        background_sync: bool = False,
    ) -> list[UnifiedRecord]:
        if client_id is None or client_id == requester_id:
            return await self.get_live(requester_id, data_type, days, background_sync=background_sync)
        return self.get_stored(requester_id, client_id, data_type, days)

    async def get_aggregated(
        self,
        requester_id: str,
        data_type: DataType,
        days: int = 7,
        client_id: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        records = await self.get_for_viewer(requester_id, data_type, days, client_id=client_id)
        return aggregate_by_date(data_type, records)


_default_service: Optional[UnifiedReadService] = None


def get_read_service() -> UnifiedReadService:
    global _default_service
    if _default_service is None:
        _default_service = UnifiedReadService()
    return _default_service
