"""
Trainer Repository
==================
``trainer_clients`` relationships plus the ``users`` lookups that gate them.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from artemis.db.supabase import get_supabase_client

RELATIONSHIPS_TABLE = "trainer_clients"
USERS_TABLE = "users"

_PUBLIC_USER_FIELDS = "id, email, full_name, user_type"


class TrainerRepository:
    def __init__(self, db=None) -> None:
        self._db = db if db is not None else get_supabase_client()

    # ---- Users -----------------------------------------------------------

    def find_user_by_email(self, email: str) -> Optional[dict]:
        result = (
            self._db.table(USERS_TABLE)
            .select(_PUBLIC_USER_FIELDS)
            .eq("email", email.strip().lower())
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    def get_users(self, user_ids: list[str]) -> list[dict]:
        if not user_ids:
            return []
        result = self._db.table(USERS_TABLE).select(_PUBLIC_USER_FIELDS).in_("id", user_ids).execute()
        return result.data or []

    # ---- Relationships ---------------------------------------------------

    def get_relationship(self, trainer_id: str, client_id: str) -> Optional[dict]:
        result = (
            self._db.table(RELATIONSHIPS_TABLE)
            .select("*")
            .eq("trainer_id", trainer_id)
            .eq("client_id", client_id)
            .limit(1)
            .execute()
        )
        return result.data[0] if result.data else None

    def insert_relationship(self, trainer_id: str, client_id: str, granted_by: str) -> dict:
        row = {
            "trainer_id": trainer_id,
            "client_id": client_id,
            "granted_by": granted_by,
            "granted_at": datetime.now(timezone.utc).isoformat(),
            "is_active": True,
        }
        result = self._db.table(RELATIONSHIPS_TABLE).insert(row).execute()
        return result.data[0] if result.data else row

    def set_active(self, relationship_id: str, is_active: bool) -> dict:
        values: dict = {"is_active": is_active}
        if is_active:
            values["granted_at"] = datetime.now(timezone.utc).isoformat()
        result = self._db.table(RELATIONSHIPS_TABLE).update(values).eq("id", relationship_id).execute()
        return result.data[0] if result.data else values

    def list_active_for_trainer(self, trainer_id: str) -> list[dict]:
        result = (
            self._db.table(RELATIONSHIPS_TABLE)
            .select("*")
            .eq("trainer_id", trainer_id)
            .eq("is_active", True)
            .execute()
        )
        return result.data or []

    def list_active_for_client(self, client_id: str) -> list[dict]:
        result = (
            self._db.table(RELATIONSHIPS_TABLE)
            .select("*")
            .eq("client_id", client_id)
            .eq("is_active", True)
            .execute()
        )
        return result.data or []
