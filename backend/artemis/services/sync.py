"""
Sync Orchestrator
=================
Pulls data from every connected provider into the unified tables.

A sync pass is a grid of cells, one per (provider, data type):

    started -> fetch -> normalise -> upsert -> success | error

- Providers run concurrently; a provider's data types run one after another
  so a single vendor never sees parallel requests from us for one user.
- Any failure is contained in its cell: it is logged, written to
  wearable_sync_status, and reported in the result map. sync_all() does not
  raise for a failed cell.
- The fetch window is incremental. First sync backfills ``sync_window_days``;
  after that we start ``sync_overlap_days`` before the high-water mark so
  records the vendor scores late are picked up. Upserts make the overlap
  harmless.
- A rate-limited cell stores the vendor's retry-after and is skipped until
  then. Records fetched before the limit hit are still upserted and move
  the high-water mark, so a long backfill makes progress across passes.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from artemis.config import get_settings
from artemis.db.wearable_data import WearableDataRepository
from artemis.models.wearable import (
    DataType,
    Provider,
    SyncReport,
    SyncResult,
    SyncState,
    SyncStatus,
)
from artemis.services.locks import KeyedLock
from artemis.services.normalizer import normalise_batch
from artemis.services.providers.base import FetchWindow, ProviderRateLimitError
from artemis.services.providers.registry import ProviderRegistry, get_provider_registry
from artemis.services.token_store import TokenStore, get_token_store

logger = logging.getLogger(__name__)

NOT_CONNECTED = "Not connected: no valid token"


class SyncOrchestrator:
    def __init__(
        self,
        token_store: Optional[TokenStore] = None,
        repository: Optional[WearableDataRepository] = None,
        registry: Optional[ProviderRegistry] = None,
        settings=None,
    ) -> None:
        self._tokens = token_store or get_token_store()
        self._repo = repository or WearableDataRepository()
        self._registry = registry if registry is not None else get_provider_registry()
        self._settings = settings or get_settings()
        self._write_locks = KeyedLock()
        self._background: dict[str, asyncio.Task] = {}

    # ---- Entry points ----------------------------------------------------

    async def sync_all(self, user_id: str) -> SyncReport:
        """Sync every connected provider. Returns provider -> data type -> result."""
        providers = self._tokens.list_connected(user_id)
        if not providers:
            return {}

        outcomes = await asyncio.gather(
            *(self.sync_provider(user_id, provider) for provider in providers),
            return_exceptions=True,
        )

        report: SyncReport = {}
        for provider, outcome in zip(providers, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("Sync of %s for user %s failed outright: %s", provider.value, user_id, outcome)
                report[provider.value] = {
                    data_type.value: SyncResult(success=False, error=str(outcome))
                    for data_type in self._registry[provider].supported_data_types
                }
            else:
                report[provider.value] = outcome
        return report

    async def sync_provider(self, user_id: str, provider: Provider) -> dict[str, SyncResult]:
        client = self._registry[provider]
        results: dict[str, SyncResult] = {}

        token = await self._tokens.get_valid_token(user_id, provider)
        if token is None:
            for data_type in client.supported_data_types:
                previous = self._repo.get_sync_status(user_id, provider, data_type)
                self._record(
                    user_id, provider, data_type, previous,
                    state=SyncState.ERROR,
                    last_sync_at=_utcnow(),
                    last_sync_error=NOT_CONNECTED,
                    sync_count=0,
                )
                results[data_type.value] = SyncResult(success=False, error=NOT_CONNECTED)
            return results

        for data_type in client.supported_data_types:
            results[data_type.value] = await self.sync_cell(user_id, provider, data_type, token)

        if any(result.success for result in results.values()):
            self._tokens.mark_synced(user_id, provider)

        synced = sum(result.synced for result in results.values())
        logger.info("Synced %d %s record(s) for user %s", synced, provider.value, user_id)
        return results

    async def sync_cell(
        self,
        user_id: str,
        provider: Provider,
        data_type: DataType,
        access_token: str,
        today: Optional[date] = None,
    ) -> SyncResult:
        previous = self._repo.get_sync_status(user_id, provider, data_type)
        now = _utcnow()

        if previous and previous.retry_after and previous.retry_after > now:
            logger.info(
                "Skipping %s/%s for user %s: rate limited until %s",
                provider.value, data_type.value, user_id, previous.retry_after.isoformat(),
            )
            return SyncResult(
                success=False,
                skipped=True,
                rate_limited=True,
                retry_after=previous.retry_after,
                error=previous.last_sync_error,
            )

        try:
            self._record(user_id, provider, data_type, previous, state=SyncState.STARTED, last_sync_at=now)

            window = self.fetch_window(previous, today or now.date())
            payloads = await self._registry[provider].fetch(data_type, access_token, window)
            records = normalise_batch(provider, data_type, payloads)

            async with self._write_locks((user_id, provider)):
                written = self._repo.upsert_records(user_id, data_type, records)

        except ProviderRateLimitError as exc:
            logger.warning("%s/%s rate limited for user %s: %s", provider.value, data_type.value, user_id, exc)
            written, high_water_mark = await self._store_partial(user_id, provider, data_type, previous, exc.partial)
            self._record(
                user_id, provider, data_type, previous,
                state=SyncState.ERROR,
                last_sync_at=now,
                last_sync_error=str(exc),
                sync_count=written,
                high_water_mark=high_water_mark,
                retry_after=exc.retry_after,
            )
            return SyncResult(
                success=False,
                synced=written,
                error=str(exc),
                rate_limited=True,
                retry_after=exc.retry_after,
            )

        except Exception as exc:
            logger.exception("%s/%s sync failed for user %s", provider.value, data_type.value, user_id)
            self._record(
                user_id, provider, data_type, previous,
                state=SyncState.ERROR,
                last_sync_at=now,
                last_sync_error=str(exc),
                sync_count=0,
            )
            return SyncResult(success=False, error=str(exc))

        self._record(
            user_id, provider, data_type, previous,
            state=SyncState.SUCCESS,
            last_sync_at=now,
            last_successful_sync_at=_utcnow(),
            last_sync_error=None,
            sync_count=written,
            high_water_mark=_high_water_mark(previous, records),
            retry_after=None,
        )
        return SyncResult(success=True, synced=written)

    def schedule_background_sync(self, user_id: str) -> Optional[asyncio.Task]:
        """Start sync_all for ``user_id`` without waiting for it.

        A user already syncing in the background gets the running task back
        rather than a second one.
        """
        if not self._settings.enable_background_sync:
            return None
        running = self._background.get(user_id)
        if running is not None and not running.done():
            return running

        task = asyncio.create_task(self._run_background(user_id))
        self._background[user_id] = task
        task.add_done_callback(lambda _: self._background.pop(user_id, None))
        return task

    # ---- Helpers ---------------------------------------------------------

    def fetch_window(self, previous: Optional[SyncStatus], today: date) -> FetchWindow:
        earliest = today - timedelta(days=self._settings.sync_window_days)
        start = earliest
        if previous and previous.high_water_mark:
            resume = previous.high_water_mark - timedelta(days=self._settings.sync_overlap_days)
            start = min(max(earliest, resume), today)
        return FetchWindow(start=start, end=today, limit=self._settings.provider_page_limit)

    async def _store_partial(
        self,
        user_id: str,
        provider: Provider,
        data_type: DataType,
        previous: Optional[SyncStatus],
        payloads: list[dict],
    ) -> tuple[int, Optional[date]]:
        """Upsert what a rate-limited fetch got before the quota ran out.

        Returns the rows written and the high-water mark to resume from.
        """
        records = normalise_batch(provider, data_type, payloads)
        if not records:
            return 0, _high_water_mark(previous, [])
        try:
            async with self._write_locks((user_id, provider)):
                written = self._repo.upsert_records(user_id, data_type, records)
        except Exception:
            logger.exception("Storing partial %s/%s data failed for user %s", provider.value, data_type.value, user_id)
            return 0, _high_water_mark(previous, [])
        logger.info(
            "Kept %d %s/%s record(s) fetched before the rate limit for user %s",
            written, provider.value, data_type.value, user_id,
        )
        return written, _high_water_mark(previous, records)

    async def _run_background(self, user_id: str) -> None:
        try:
            report = await self.sync_all(user_id)
        except Exception:
            logger.exception("Background sync failed for user %s", user_id)
            return
        failed = [
            f"{provider}/{data_type}"
            for provider, cells in report.items()
            for data_type, result in cells.items()
            if not result.success and not result.skipped
        ]
        if failed:
            logger.warning("Background sync for user %s finished with failures: %s", user_id, ", ".join(failed))

    def _record(
        self,
        user_id: str,
        provider: Provider,
        data_type: DataType,
        previous: Optional[SyncStatus],
        **changes,
    ) -> None:
        base = previous.model_dump() if previous else {
            "user_id": user_id,
            "provider": provider,
            "data_type": data_type,
        }
        base.update(changes)
        self._repo.save_sync_status(SyncStatus(**base))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _high_water_mark(previous: Optional[SyncStatus], records: list) -> Optional[date]:
    """Latest stored record date, never moving backwards."""
    latest = max((record.date for record in records), default=None)
    if previous and previous.high_water_mark:
        return max(previous.high_water_mark, latest or previous.high_water_mark)
    return latest


_default_orchestrator: Optional[SyncOrchestrator] = None


def get_sync_orchestrator() -> SyncOrchestrator:
    global _default_orchestrator
    if _default_orchestrator is None:
        _default_orchestrator = SyncOrchestrator()
    return _default_orchestrator
