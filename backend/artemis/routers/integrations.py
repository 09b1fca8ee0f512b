"""
Integrations Router
===================
Connect, inspect and disconnect wearable providers.

GET    /api/v1/integrations                       connection state per provider
GET    /api/v1/integrations/{provider}/authorize  signed state + consent URL
POST   /api/v1/integrations/{provider}/callback   finish OAuth, store tokens
DELETE /api/v1/integrations/{provider}            revoke and deactivate

The callback only trusts ``state`` after checking its signature, age, and
that it was issued to this user for this provider.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Header, HTTPException, status

from artemis.auth import get_authenticated_user
from artemis.models.api import (
    AuthorizeResponse,
    DisconnectResponse,
    IntegrationListResponse,
    OAuthCallbackRequest,
)
from artemis.models.wearable import ConnectionInfo, Provider
from artemis.services.oauth_state import InvalidOAuthState, create_oauth_state, verify_oauth_state
from artemis.services.providers.base import ProviderAuthError, ProviderError
from artemis.services.providers.registry import get_provider_registry
from artemis.services.sync import get_sync_orchestrator
from artemis.services.token_store import get_token_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/integrations", tags=["integrations"])


@router.get(
    "",
    response_model=IntegrationListResponse,
    summary="List wearable connections",
)
async def list_integrations(
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> IntegrationListResponse:
    user = get_authenticated_user(authorization)
    store = get_token_store()
    return IntegrationListResponse(
        integrations=[store.connection_info(user["id"], provider) for provider in Provider]
    )


@router.get(
    "/{provider}/authorize",
    response_model=AuthorizeResponse,
    summary="Start OAuth with a provider",
    responses={503: {"description": "Provider credentials not configured"}},
)
async def authorize(
    provider: Provider,
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> AuthorizeResponse:
    user = get_authenticated_user(authorization)
    client = get_provider_registry()[provider]
    if not client.is_configured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"message": f"{provider.value} is not configured", "code": "provider_not_configured"},
        )
    state = create_oauth_state(user["id"], provider)
    return AuthorizeResponse(provider=provider, authorization_url=client.authorization_url(state), state=state)


@router.post(
    "/{provider}/callback",
    response_model=ConnectionInfo,
    summary="Complete OAuth with a provider",
    responses={
        400: {"description": "Invalid state or authorization code"},
        502: {"description": "Provider unreachable"},
    },
)
async def oauth_callback(
    provider: Provider,
    body: OAuthCallbackRequest,
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> ConnectionInfo:
    user = get_authenticated_user(authorization)
    user_id: str = user["id"]

    try:
        verify_oauth_state(body.state, user_id, provider)
    except InvalidOAuthState as exc:
        logger.warning("Rejected %s OAuth callback for user %s: %s", provider.value, user_id, exc)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": str(exc), "code": "invalid_state"},
        ) from exc

    client = get_provider_registry()[provider]
    try:
        tokens = await client.exchange_code(body.code)
    except ProviderAuthError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Authorization code was rejected", "code": "oauth_exchange_failed"},
        ) from exc
    except ProviderError as exc:
        logger.error("%s code exchange failed for user %s: %s", provider.value, user_id, exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"message": f"Could not reach {provider.value}", "code": "provider_unavailable"},
        ) from exc

    # Needed only to route webhooks; a failure here should not undo the connect
    provider_user_id = None
    try:
        provider_user_id = await client.fetch_user_id(tokens.access_token)
    except (ProviderError, KeyError) as exc:
        logger.warning("Could not resolve %s user id for user %s: %s", provider.value, user_id, exc)

    store = get_token_store()
    store.save_tokens(user_id, provider, tokens, provider_user_id=provider_user_id)
    logger.info("Connected %s for user %s", provider.value, user_id)

    get_sync_orchestrator().schedule_background_sync(user_id)
    return store.connection_info(user_id, provider)


@router.delete(
    "/{provider}",
    response_model=DisconnectResponse,
    summary="Disconnect a provider",
)
async def disconnect(
    provider: Provider,
    authorization: str = Header(..., description="Bearer token from Supabase Auth"),
) -> DisconnectResponse:
    user = get_authenticated_user(authorization)
    await get_token_store().disconnect(user["id"], provider)
    return DisconnectResponse(provider=provider, connected=False)
