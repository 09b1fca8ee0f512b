"""
Wearable Data Repository
========================
Unified recovery / sleep / activity rows and the per-cell sync status.

Every write is an upsert on the table's natural key (see supabase/schema.sql),
so re-syncing an overlapping window rewrites rows in place. Two writers
racing on the same key end with one row holding whichever value Postgres
committed last.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from artemis.db.supabase import get_supabase_client
from artemis.models.wearable import (
    RECORD_MODELS,
    DataType,
    Provider,
    SyncStatus,
    UnifiedRecord,
)

RECORD_TABLES: dict[DataType, str] = {
    DataType.RECOVERY: "wearable_recovery_data",
    DataType.SLEEP: "wearable_sleep_data",
    DataType.ACTIVITY: "wearable_activity_data",
}

NATURAL_KEYS: dict[DataType, str] = {
    DataType.RECOVERY: "user_id,provider,date",
    DataType.SLEEP: "user_id,provider,date",
    DataType.ACTIVITY: "user_id,provider,activity_id",
}

SYNC_STATUS_TABLE = "wearable_sync_status"


class WearableDataRepository:
    def __init__(self, db=None) -> None:
        self._db = db if db is not None else get_supabase_client()

    # ---- Unified records -------------------------------------------------

    def upsert_records(self, user_id: str, data_type: DataType, records: list[UnifiedRecord]) -> int:
        """Upsert ``records`` by natural key. Returns how many rows were written."""
        if not records:
            return 0
        synced_at = datetime.now(timezone.utc).isoformat()
        rows = [
            {
                **record.model_dump(mode="json", exclude={"synced_at"}),
                "user_id": user_id,
                "raw_data": record.raw,
                "synced_at": synced_at,
            }
            for record in records
        ]
        self._db.table(RECORD_TABLES[data_type]).upsert(rows, on_conflict=NATURAL_KEYS[data_type]).execute()
        return len(rows)

    def list_records(
        self,
        user_id: str,
        data_type: DataType,
        since: date,
        provider: Optional[Provider] = None,
    ) -> list[UnifiedRecord]:
        query = (
            self._db.table(RECORD_TABLES[data_type])
            .select("*")
            .eq("user_id", user_id)
            .gte("date", since.isoformat())
        )
        if provider is not None:
            query = query.eq("provider", provider.value)
        result = query.order("date", desc=True).execute()

        model = RECORD_MODELS[data_type]
        fields = model.model_fields
        return [
            model(
                **{key: value for key, value in row.items() if key in fields and key != "raw"},
                raw=row.get("raw_data") or {},
            )
            for row in result.data or []
        ]

    # ---- Sync status -----------------------------------------------------

    def get_sync_status(self, user_id: str, provider: Provider, data_type: DataType) -> Optional[SyncStatus]:
        result = (
            self._db.table(SYNC_STATUS_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .eq("provider", provider.value)
            .eq("data_type", data_type.value)
            .limit(1)
            .execute()
        )
        return SyncStatus(**result.data[0]) if result.data else None

    def list_sync_status(self, user_id: str) -> list[SyncStatus]:
        result = self._db.table(SYNC_STATUS_TABLE).select("*").eq("user_id", user_id).execute()
        return [SyncStatus(**row) for row in result.data or []]

    def save_sync_status(self, status: SyncStatus) -> None:
        (
            self._db.table(SYNC_STATUS_TABLE)
            .upsert(status.model_dump(mode="json"), on_conflict="user_id,provider,data_type")
            .execute()
        )
