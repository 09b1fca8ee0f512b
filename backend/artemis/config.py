"""
Artemis Configuration
=====================
All environment variables in one place. Pydantic Settings validates
types at startup so a missing client secret shows up at boot, not on the
first OAuth callback.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Loaded from environment variables or a .env file."""

    # --- Supabase ---
    supabase_url: str = "http://localhost:54321"
    supabase_service_key: str = ""  # service_role key for backend operations

    # --- Whoop ---
    whoop_client_id: str = ""
    whoop_client_secret: str = ""
    whoop_redirect_uri: str = "http://localhost:3000/api/auth/whoop/callback"
    whoop_webhook_secret: str = ""
    # Signed timestamps further than this from now are rejected as replays
    whoop_webhook_tolerance_seconds: int = 300

    # --- Oura ---
    oura_client_id: str = ""
    oura_client_secret: str = ""
    oura_redirect_uri: str = "http://localhost:3000/api/auth/oura/callback"

    # --- Fitbit ---
    fitbit_client_id: str = ""
    fitbit_client_secret: str = ""
    fitbit_redirect_uri: str = "http://localhost:3000/api/auth/fitbit/callback"
    # Pause between day-by-day Fitbit calls
    fitbit_request_delay_ms: int = 100

    # --- Garmin ---
    garmin_client_id: str = ""
    garmin_client_secret: str = ""
    garmin_redirect_uri: str = "http://localhost:3000/api/auth/garmin/callback"

    # --- OAuth state ---
    oauth_state_secret: str = "change-me"
    oauth_state_ttl_seconds: int = 600

    # --- Sync behaviour ---
    sync_window_days: int = 60
    # Days re-fetched behind the high-water mark so late-scored records land
    sync_overlap_days: int = 2
    token_expiry_buffer_minutes: int = 5
    token_refresh_attempts: int = 2
    provider_timeout_seconds: float = 15.0
    provider_page_limit: int = 25
    enable_background_sync: bool = True

    # --- App settings ---
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
