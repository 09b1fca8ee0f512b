"""
Wearables Router
================
POST /api/v1/wearables/sync                  sync every connected provider now
GET  /api/v1/wearables/sync/status           latest outcome per provider / data type
GET  /api/v1/wearables/{data_type}           unified records for the caller or a client
GET  /api/v1/wearables/aggregated/{data_type}  same, merged per date across providers

Reads resolve the effective user: no ``client_id`` (or the caller's own id)
reads live from the providers; another id reads stored data and needs an
active trainer relationship, checked on every request.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Query, status

from artemis.auth import get_authenticated_user
from artemis.db.wearable_data import WearableDataRepository
from artemis.models.api import (
    AggregatedDataResponse,
    SyncResponse,
    SyncStatusResponse,
    WearableDataResponse,
)
from artemis.models.wearable import DataType
from artemis.services.sync import get_sync_orchestrator
from artemis.services.trainer_access import TrainerAccessDenied
from artemis.services.wearable_read import LiveDataUnavailableError, get_read_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/wearables", tags=["wearables"])

_MAX_DAYS = 60


def _access_denied(exc: TrainerAccessDenied) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"message": str(exc), "code": "access_denied"},
    )


def _live_unavailable(exc: LiveDataUnavailableError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={"message": str(exc), "code": "live_data_unavailable"},
    )


@router.post(
    "/sync",
    response_model=SyncResponse,
    status_code=status.HTTP_200_OK,
    summary="Sync all connected wearables",
    description="Runs a full sync pass. Returns 200 even when some cells fail; check each result.",
)
async def sync_now(
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> SyncResponse:
    user = get_authenticated_user(authorization)
    report = await get_sync_orchestrator().sync_all(user["id"])
    return SyncResponse(results=report)


@router.get(
    "/sync/status",
    response_model=SyncStatusResponse,
    summary="Latest sync outcome per provider and data type",
)
async def sync_status(
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> SyncStatusResponse:
    user = get_authenticated_user(authorization)
    return SyncStatusResponse(statuses=WearableDataRepository().list_sync_status(user["id"]))


@router.get(
    "/aggregated/{data_type}",
    response_model=AggregatedDataResponse,
    summary="Unified data merged per date across providers",
    responses={403: {"description": "No trainer access to client"}},
)
async def get_aggregated(
    data_type: DataType,
    days: int = Query(7, ge=1, le=_MAX_DAYS),
    client_id: Optional[str] = Query(None),
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> AggregatedDataResponse:
    user = get_authenticated_user(authorization)
    try:
        rows = await get_read_service().get_aggregated(user["id"], data_type, days, client_id=client_id)
    except TrainerAccessDenied as exc:
        raise _access_denied(exc) from exc
    except LiveDataUnavailableError as exc:
        raise _live_unavailable(exc) from exc
    return AggregatedDataResponse(user_id=client_id or user["id"], data_type=data_type, days=days, records=rows)


@router.get(
    "/{data_type}",
    response_model=WearableDataResponse,
    summary="Unified recovery, sleep or activity records",
    responses={
        403: {"description": "No trainer access to client"},
        503: {"description": "Every connected provider failed"},
    },
)
async def get_wearable_data(
    data_type: DataType,
    days: int = Query(7, ge=1, le=_MAX_DAYS),
    client_id: Optional[str] = Query(None),
    background_sync: bool = Query(False),
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> WearableDataResponse:
    user = get_authenticated_user(authorization)
    requester_id: str = user["id"]
    effective_id = client_id or requester_id

    try:
        records = await get_read_service().get_for_viewer(
            requester_id,
            data_type,
            days,
            client_id=client_id,
            background_sync=background_sync,
        )
    except TrainerAccessDenied as exc:
        raise _access_denied(exc) from exc
    except LiveDataUnavailableError as exc:
        raise _live_unavailable(exc) from exc

    return WearableDataResponse(
        user_id=effective_id,
        data_type=data_type,
        source="live" if effective_id == requester_id else "stored",
        days=days,
        records=[record.model_dump(mode="json", by_alias=True) for record in records],
    )
