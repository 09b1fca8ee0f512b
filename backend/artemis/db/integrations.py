"""
Integration Repository
======================
Reads and writes ``user_integrations``: one row per OAuth grant.

Rows are never deleted. A reconnect or a token rotation deactivates the
current row and inserts a new one, so the table doubles as an audit trail
of every grant a user has given.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from artemis.db.supabase import get_supabase_client
from artemis.models.wearable import Integration, Provider

TABLE = "user_integrations"


class IntegrationRepository:
    def __init__(self, db=None) -> None:
        self._db = db if db is not None else get_supabase_client()

    def get_active(self, user_id: str, provider: Provider) -> Optional[Integration]:
        result = (
            self._db.table(TABLE)
            .select("*")
            .eq("user_id", user_id)
            .eq("provider", provider.value)
            .eq("is_active", True)
            .order("connected_at", desc=True)
            .limit(1)
            .execute()
        )
        return Integration(**result.data[0]) if result.data else None

    def list_active(self, user_id: str) -> list[Integration]:
        result = (
            self._db.table(TABLE)
            .select("*")
            .eq("user_id", user_id)
            .eq("is_active", True)
            .execute()
        )
        return [Integration(**row) for row in result.data or []]

    def find_by_provider_user_id(self, provider: Provider, provider_user_id: str) -> Optional[Integration]:
        result = (
            self._db.table(TABLE)
            .select("*")
            .eq("provider", provider.value)
            .eq("provider_user_id", provider_user_id)
            .eq("is_active", True)
            .limit(1)
            .execute()
        )
        return Integration(**result.data[0]) if result.data else None

    def replace(self, integration: Integration) -> Integration:
        """Deactivate any active row for (user, provider) and insert ``integration``."""
        self.deactivate(integration.user_id, integration.provider)
        row = integration.model_dump(mode="json", exclude={"id"}, exclude_none=True)
        result = self._db.table(TABLE).insert(row).execute()
        return Integration(**result.data[0]) if result.data else integration

    def deactivate(self, user_id: str, provider: Provider) -> None:
        (
            self._db.table(TABLE)
            .update({"is_active": False})
            .eq("user_id", user_id)
            .eq("provider", provider.value)
            .eq("is_active", True)
            .execute()
        )

    def touch_last_sync(self, user_id: str, provider: Provider, when: Optional[datetime] = None) -> None:
        when = when or datetime.now(timezone.utc)
        (
            self._db.table(TABLE)
            .update({"last_sync_at": when.isoformat()})
            .eq("user_id", user_id)
            .eq("provider", provider.value)
            .eq("is_active", True)
            .execute()
        )
