"""
API Request / Response Schemas
==============================
Bodies for the integration, wearable, trainer and webhook routers.

Unified records inside ``records`` are already serialised with their
camelCase aliases, so live and stored reads look identical to the client.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from artemis.models.wearable import ConnectionInfo, DataType, Provider, SyncResult, SyncStatus


# ---------------------------------------------------------------------------
# Integrations
# ---------------------------------------------------------------------------

class IntegrationListResponse(BaseModel):
    integrations: list[ConnectionInfo]


class AuthorizeResponse(BaseModel):
    provider: Provider
    authorization_url: str
    state: str


class OAuthCallbackRequest(BaseModel):
    code: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)


class DisconnectResponse(BaseModel):
    provider: Provider
    connected: bool = False


# ---------------------------------------------------------------------------
# Wearable data
# ---------------------------------------------------------------------------

class SyncResponse(BaseModel):
    # provider -> data type -> result
    results: dict[str, dict[str, SyncResult]]


class SyncStatusResponse(BaseModel):
    statuses: list[SyncStatus]


class WearableDataResponse(BaseModel):
    user_id: str
    data_type: DataType
    source: Literal["live", "stored"]
    days: int
    records: list[dict[str, Any]]


class AggregatedDataResponse(BaseModel):
    user_id: str
    data_type: DataType
    days: int
    records: list[dict[str, Any]]


# ---------------------------------------------------------------------------
# Trainer access
# ---------------------------------------------------------------------------

class GrantTrainerAccessRequest(BaseModel):
    trainer_email: str = Field(..., min_length=3, max_length=320)


class LinkedUser(BaseModel):
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    granted_at: Optional[str] = None


class TrainerAccessResponse(BaseModel):
    trainer_id: str
    client_id: str
    is_active: bool
    granted_at: Optional[str] = None


class LinkedUsersResponse(BaseModel):
    users: list[LinkedUser]


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------

class WhoopWebhookEvent(BaseModel):
    user_id: int | str
    id: Optional[int | str] = None
    type: str
    trace_id: Optional[str] = None


class WebhookAck(BaseModel):
    received: bool = True
    scheduled: bool = False
