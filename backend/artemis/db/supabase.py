"""
Supabase Client
===============
Thin wrapper that provides a configured Supabase client for
dependency injection into the repositories and FastAPI routes.

Uses the service_role key because the sync layer writes rows on behalf of
users (token rotation, background syncs) without a user session.
"""

from functools import lru_cache

from supabase import Client, create_client

from artemis.config import get_settings


@lru_cache
def get_supabase_client() -> Client:
    settings = get_settings()
    return create_client(settings.supabase_url, settings.supabase_service_key)
