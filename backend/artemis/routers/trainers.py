"""
Trainer Access Router
=====================
POST   /api/v1/clients/trainer-access               client grants a trainer read access
GET    /api/v1/clients/trainer-access               trainers the client has granted
DELETE /api/v1/clients/trainer-access/{trainer_id}  client revokes a trainer
GET    /api/v1/trainers/clients                     clients a trainer may view

Only clients grant and revoke; only trainers list clients.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Header, HTTPException, status

from artemis.auth import get_authenticated_user
from artemis.models.api import (
    GrantTrainerAccessRequest,
    LinkedUser,
    LinkedUsersResponse,
    TrainerAccessResponse,
)
from artemis.services.trainer_access import (
    TrainerAccessConflict,
    TrainerNotFound,
    get_trainer_access_service,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["trainers"])


def _require_user_type(user: dict, user_type: str) -> None:
    if user.get("user_type") != user_type:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"message": f"Only {user_type}s can do this", "code": f"{user_type}s_only"},
        )


@router.post(
    "/clients/trainer-access",
    response_model=TrainerAccessResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Grant a trainer access to my wearable data",
    responses={
        404: {"description": "No trainer with that email"},
        409: {"description": "Trainer already has access"},
    },
)
async def grant_trainer_access(
    body: GrantTrainerAccessRequest,
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> TrainerAccessResponse:
    user = get_authenticated_user(authorization)
    _require_user_type(user, "client")

    try:
        relationship = get_trainer_access_service().grant_access(user["id"], body.trainer_email)
    except TrainerNotFound as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"message": "Trainer not found", "code": "trainer_not_found"},
        ) from exc
    except TrainerAccessConflict as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": str(exc), "code": "already_granted"},
        ) from exc

    return TrainerAccessResponse(
        trainer_id=relationship["trainer_id"],
        client_id=relationship["client_id"],
        is_active=relationship["is_active"],
        granted_at=relationship.get("granted_at"),
    )


@router.get(
    "/clients/trainer-access",
    response_model=LinkedUsersResponse,
    summary="Trainers with access to my data",
)
async def list_my_trainers(
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> LinkedUsersResponse:
    user = get_authenticated_user(authorization)
    trainers = get_trainer_access_service().list_trainers(user["id"])
    return LinkedUsersResponse(users=[LinkedUser(**t) for t in trainers])


@router.delete(
    "/clients/trainer-access/{trainer_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Revoke a trainer's access",
    responses={404: {"description": "No active relationship"}},
)
async def revoke_trainer_access(
    trainer_id: str,
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> None:
    user = get_authenticated_user(authorization)
    _require_user_type(user, "client")
    if not get_trainer_access_service().revoke_access(user["id"], trainer_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"message": "No active access for this trainer", "code": "relationship_not_found"},
        )


@router.get(
    "/trainers/clients",
    response_model=LinkedUsersResponse,
    summary="Clients who granted me access",
)
async def list_my_clients(
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> LinkedUsersResponse:
    user = get_authenticated_user(authorization)
    _require_user_type(user, "trainer")
    clients = get_trainer_access_service().list_clients(user["id"])
    return LinkedUsersResponse(users=[LinkedUser(**c) for c in clients])
