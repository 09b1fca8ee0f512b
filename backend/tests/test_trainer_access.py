"""
Tests for trainer access
========================
Covers:
- grant_access(): by trainer email, case-insensitive; unknown email or a
  non-trainer account -> TrainerNotFound; already active -> conflict
- Granting again after a revoke reactivates the same row
- revoke_access(): takes effect on the next check; False when nothing to revoke
- list_clients() / list_trainers(): only active relationships, with profiles

Run: pytest tests/test_trainer_access.py -v
"""

import pytest

from artemis.db.trainers import TrainerRepository
from artemis.services.trainer_access import (
    TrainerAccessConflict,
    TrainerAccessDenied,
    TrainerAccessService,
    TrainerNotFound,
)

_CLIENT = {"id": "client-1", "email": "client@example.com", "full_name": "Casey Client", "user_type": "client"}
_TRAINER = {"id": "trainer-1", "email": "coach@example.com", "full_name": "Terry Trainer", "user_type": "trainer"}
_OTHER_CLIENT = {"id": "client-2", "email": "other@example.com", "full_name": "Other", "user_type": "client"}


@pytest.fixture
def service(fake_db):
    fake_db.seed("users", _CLIENT, _TRAINER, _OTHER_CLIENT)
    return TrainerAccessService(repository=TrainerRepository(db=fake_db))


class TestGrantAccess:

    def test_grant_creates_active_relationship(self, fake_db, service):
        relationship = service.grant_access("client-1", "coach@example.com")

        assert relationship["trainer_id"] == "trainer-1"
        assert relationship["client_id"] == "client-1"
        assert relationship["granted_by"] == "client-1"
        assert relationship["is_active"] is True
        assert service.has_active_access("trainer-1", "client-1") is True

    def test_email_lookup_ignores_case_and_whitespace(self, service):
        service.grant_access("client-1", "  Coach@Example.COM ")
        assert service.has_active_access("trainer-1", "client-1") is True

    def test_unknown_email(self, service):
        with pytest.raises(TrainerNotFound):
            service.grant_access("client-1", "nobody@example.com")

    def test_non_trainer_account(self, service):
        with pytest.raises(TrainerNotFound):
            service.grant_access("client-1", "other@example.com")

    def test_duplicate_grant_conflicts(self, service):
        service.grant_access("client-1", "coach@example.com")
        with pytest.raises(TrainerAccessConflict):
            service.grant_access("client-1", "coach@example.com")

    def test_regrant_reactivates_existing_row(self, fake_db, service):
        service.grant_access("client-1", "coach@example.com")
        service.revoke_access("client-1", "trainer-1")

        relationship = service.grant_access("client-1", "coach@example.com")

        assert relationship["is_active"] is True
        assert len(fake_db.rows("trainer_clients")) == 1


class TestRevokeAccess:

    def test_revoke_takes_effect_immediately(self, service):
        service.grant_access("client-1", "coach@example.com")
        service.require_access("trainer-1", "client-1")

        assert service.revoke_access("client-1", "trainer-1") is True

        with pytest.raises(TrainerAccessDenied) as exc_info:
            service.require_access("trainer-1", "client-1")
        assert exc_info.value.client_id == "client-1"

    def test_revoke_without_relationship(self, service):
        assert service.revoke_access("client-1", "trainer-1") is False

    def test_revoke_twice(self, service):
        service.grant_access("client-1", "coach@example.com")
        service.revoke_access("client-1", "trainer-1")
        assert service.revoke_access("client-1", "trainer-1") is False


class TestListings:

    def test_trainer_sees_active_clients_only(self, fake_db, service):
        service.grant_access("client-1", "coach@example.com")
        fake_db.seed(
            "trainer_clients",
            {"trainer_id": "trainer-1", "client_id": "client-2", "granted_by": "client-2", "is_active": False},
        )

        clients = service.list_clients("trainer-1")

        assert [c["id"] for c in clients] == ["client-1"]
        assert clients[0]["full_name"] == "Casey Client"
        assert clients[0]["granted_at"] is not None

    def test_client_sees_their_trainers(self, service):
        service.grant_access("client-1", "coach@example.com")

        trainers = service.list_trainers("client-1")

        assert [t["email"] for t in trainers] == ["coach@example.com"]
        assert service.list_trainers("client-2") == []
