"""
Trainer Access Service
======================
Client-granted, revocable read access for trainers.

A trainer can read a client's *stored* wearable data only while an active
trainer_clients row links them. The check is repeated on every read, so a
revoke takes effect on the trainer's next request.
"""

from __future__ import annotations

import logging
from typing import Optional

from artemis.db.trainers import TrainerRepository

logger = logging.getLogger(__name__)


class TrainerAccessDenied(Exception):
    """Requester has no active relationship with the client whose data was asked for."""

    def __init__(self, requester_id: str, client_id: str) -> None:
        self.requester_id = requester_id
        self.client_id = client_id
        super().__init__("Access denied: no active trainer relationship with this client")


class TrainerAccessConflict(Exception):
    """The relationship being granted is already active."""


class TrainerNotFound(Exception):
    """No trainer account matches the given email."""


class TrainerAccessService:
    def __init__(self, repository: Optional[TrainerRepository] = None) -> None:
        self._repo = repository or TrainerRepository()

    def has_active_access(self, trainer_id: str, client_id: str) -> bool:
        relationship = self._repo.get_relationship(trainer_id, client_id)
        return bool(relationship and relationship.get("is_active"))

    def require_access(self, trainer_id: str, client_id: str) -> None:
        if not self.has_active_access(trainer_id, client_id):
            logger.warning("Denied trainer %s access to client %s", trainer_id, client_id)
            raise TrainerAccessDenied(trainer_id, client_id)

    def grant_access(self, client_id: str, trainer_email: str) -> dict:
        """Let the trainer with ``trainer_email`` read ``client_id``'s data.

        Reactivates a previously revoked relationship instead of adding a
        second row.
        """
        trainer = self._repo.find_user_by_email(trainer_email)
        if trainer is None or trainer.get("user_type") != "trainer":
            raise TrainerNotFound(f"No trainer account for {trainer_email}")
        if trainer["id"] == client_id:
            raise TrainerAccessConflict("Cannot grant access to yourself")

        existing = self._repo.get_relationship(trainer["id"], client_id)
        if existing and existing.get("is_active"):
            raise TrainerAccessConflict("Trainer already has access")

        if existing:
            relationship = self._repo.set_active(existing["id"], True)
        else:
            relationship = self._repo.insert_relationship(trainer["id"], client_id, granted_by=client_id)

        logger.info("Client %s granted access to trainer %s", client_id, trainer["id"])
        return {**existing, **relationship} if existing else relationship

    def revoke_access(self, client_id: str, trainer_id: str) -> bool:
        """Returns False when there was no active relationship to revoke."""
        existing = self._repo.get_relationship(trainer_id, client_id)
        if not existing or not existing.get("is_active"):
            return False
        self._repo.set_active(existing["id"], False)
        logger.info("Client %s revoked access for trainer %s", client_id, trainer_id)
        return True

    def list_clients(self, trainer_id: str) -> list[dict]:
        relationships = self._repo.list_active_for_trainer(trainer_id)
        users = {u["id"]: u for u in self._repo.get_users([r["client_id"] for r in relationships])}
        return [
            {**users.get(r["client_id"], {"id": r["client_id"]}), "granted_at": r.get("granted_at")}
            for r in relationships
        ]

    def list_trainers(self, client_id: str) -> list[dict]:
        relationships = self._repo.list_active_for_client(client_id)
        users = {u["id"]: u for u in self._repo.get_users([r["trainer_id"] for r in relationships])}
        return [
            {**users.get(r["trainer_id"], {"id": r["trainer_id"]}), "granted_at": r.get("granted_at")}
            for r in relationships
        ]


_default_service: Optional[TrainerAccessService] = None


def get_trainer_access_service() -> TrainerAccessService:
    global _default_service
    if _default_service is None:
        _default_service = TrainerAccessService()
    return _default_service
