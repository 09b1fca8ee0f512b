"""
Unified Wearable Schemas
========================
Provider-independent shapes for recovery, sleep and activity data, plus the
bookkeeping models the sync layer stores alongside them.

Every unified record keeps the vendor payload verbatim in ``raw`` so a later
schema change can be re-derived without re-fetching history. ``raw`` is
excluded from serialisation: the dashboard only ever sees the normalised
fields, in camelCase, whichever provider produced them.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class Provider(str, Enum):
    WHOOP = "whoop"
    OURA = "oura"
    FITBIT = "fitbit"
    GARMIN = "garmin"


class DataType(str, Enum):
    RECOVERY = "recovery"
    SLEEP = "sleep"
    ACTIVITY = "activity"


class SyncState(str, Enum):
    STARTED = "started"
    SUCCESS = "success"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Unified records
# ---------------------------------------------------------------------------

class UnifiedRecord(BaseModel):
    """Fields shared by all three unified record types."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    provider: Provider
    date: date
    raw: dict[str, Any] = Field(default_factory=dict, exclude=True)
    synced_at: Optional[datetime] = None


class UnifiedRecoveryRecord(UnifiedRecord):
    """One day of recovery / readiness. Natural key: (user, provider, date)."""

    score: Optional[float] = Field(default=None, ge=0, le=100)
    hrv: Optional[float] = None  # ms (RMSSD)
    heart_rate: Optional[float] = None  # resting bpm
    temperature: Optional[float] = None  # absolute skin temperature, °C
    temperature_deviation: Optional[float] = None  # °C relative to baseline
    oxygen_saturation: Optional[float] = None  # %


class UnifiedSleepRecord(UnifiedRecord):
    """Main sleep of one night. Natural key: (user, provider, date).

    All durations are minutes.
    """

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    duration: Optional[int] = None
    deep: Optional[int] = None
    light: Optional[int] = None
    rem: Optional[int] = None
    awake: Optional[int] = None
    efficiency: Optional[float] = None
    score: Optional[float] = None
    onset_latency: Optional[int] = None
    respiratory_rate: Optional[float] = None
    average_heart_rate: Optional[float] = None
    lowest_heart_rate: Optional[float] = None
    average_hrv: Optional[float] = None


class UnifiedActivityRecord(UnifiedRecord):
    """A workout, or a synthetic ``daily_<date>`` aggregate.

    Natural key: (user, provider, activity_id).
    """

    activity_id: str
    activity_type: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: Optional[int] = None  # minutes
    distance: Optional[float] = None  # metres
    calories: Optional[float] = None  # kcal
    steps: Optional[int] = None
    average_heart_rate: Optional[float] = None
    max_heart_rate: Optional[float] = None
    strain: Optional[float] = None  # Whoop only
    score: Optional[float] = None
    heart_rate_zones: Optional[dict[str, float]] = None  # zone -> minutes


RECORD_MODELS: dict[DataType, type[UnifiedRecord]] = {
    DataType.RECOVERY: UnifiedRecoveryRecord,
    DataType.SLEEP: UnifiedSleepRecord,
    DataType.ACTIVITY: UnifiedActivityRecord,
}


def daily_activity_id(day: date) -> str:
    """Synthetic id for a provider's whole-day activity aggregate."""
    return f"daily_{day.isoformat()}"


# ---------------------------------------------------------------------------
# Integrations / tokens
# ---------------------------------------------------------------------------

class TokenSet(BaseModel):
    """Response from any provider's OAuth token endpoint."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None  # seconds until expiry
    token_type: Optional[str] = None
    scope: Optional[str] = None


class Integration(BaseModel):
    """One stored OAuth connection between a user and a provider."""

    id: Optional[str] = None
    user_id: str
    provider: Provider
    provider_user_id: Optional[str] = None
    access_token: str
    refresh_token: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    connected_at: Optional[datetime] = None
    last_sync_at: Optional[datetime] = None
    is_active: bool = True


class ConnectionInfo(BaseModel):
    provider: Provider
    connected: bool
    connected_at: Optional[datetime] = None
    last_sync_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Sync bookkeeping
# ---------------------------------------------------------------------------

class SyncStatus(BaseModel):
    """Outcome of the latest sync attempt for one (user, provider, data type)."""

    user_id: str
    provider: Provider
    data_type: DataType
    state: SyncState
    last_sync_at: Optional[datetime] = None
    last_successful_sync_at: Optional[datetime] = None
    last_sync_error: Optional[str] = None
    sync_count: int = 0
    high_water_mark: Optional[date] = None
    retry_after: Optional[datetime] = None


class SyncResult(BaseModel):
    """What one (provider, data type) cell of a sync pass produced."""

    success: bool
    synced: int = 0
    error: Optional[str] = None
    skipped: bool = False
    rate_limited: bool = False
    retry_after: Optional[datetime] = None


# provider -> data type -> result
SyncReport = dict[str, dict[str, SyncResult]]
