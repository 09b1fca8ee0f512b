"""
Request Authentication
======================
Resolves the ``Authorization: Bearer <jwt>`` header to the caller's row in
``users``. Shared by every router.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, status

from artemis.db.supabase import get_supabase_client

logger = logging.getLogger(__name__)


def get_authenticated_user(authorization: str) -> dict:
    """Verify the Supabase JWT and return the user record.

    Raises HTTPException 401 if the token is missing or invalid, 404 if the
    auth user has no profile row.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Missing or invalid authorization header", "code": "auth_required"},
        )

    token = authorization.removeprefix("Bearer ").strip()
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Empty bearer token", "code": "auth_required"},
        )

    db = get_supabase_client()

    try:
        auth_response = db.auth.get_user(token)
    except Exception as exc:
        logger.warning("Auth token verification failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Invalid or expired token", "code": "auth_invalid"},
        ) from exc

    if not auth_response or not auth_response.user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "User not found for token", "code": "auth_invalid"},
        )

    result = (
        db.table("users")
        .select("*")
        .eq("id", auth_response.user.id)
        .limit(1)
        .execute()
    )

    if not result.data:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"message": "User profile not found", "code": "user_not_found"},
        )

    return result.data[0]
