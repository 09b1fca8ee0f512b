"""
Vendor API Response Models
==========================
Pydantic shapes for parsing raw Whoop, Oura, Fitbit and Garmin JSON.
Used internally by the normaliser before mapping into the unified records,
never exposed as API responses.

Every field is optional: vendors omit sections for unscored or partially
recorded data, and a missing field has to come through as ``None`` rather
than fail the whole record.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Whoop (developer API v1)
# ---------------------------------------------------------------------------

class WhoopRecoveryScore(BaseModel):
    user_calibrating: Optional[bool] = None
    recovery_score: Optional[float] = None
    resting_heart_rate: Optional[float] = None
    hrv_rmssd_milli: Optional[float] = None
    spo2_percentage: Optional[float] = None
    skin_temp_celsius: Optional[float] = None


class WhoopRecovery(BaseModel):
    cycle_id: Optional[int] = None
    sleep_id: Optional[int] = None
    created_at: datetime
    score_state: Optional[str] = None
    score: Optional[WhoopRecoveryScore] = None


class WhoopStageSummary(BaseModel):
    total_in_bed_time_milli: Optional[int] = None
    total_awake_time_milli: Optional[int] = None
    total_light_sleep_time_milli: Optional[int] = None
    total_slow_wave_sleep_time_milli: Optional[int] = None
    total_rem_sleep_time_milli: Optional[int] = None


class WhoopSleepScore(BaseModel):
    stage_summary: Optional[WhoopStageSummary] = None
    respiratory_rate: Optional[float] = None
    sleep_performance_percentage: Optional[float] = None
    sleep_efficiency_percentage: Optional[float] = None


class WhoopSleep(BaseModel):
    id: Optional[int] = None
    start: datetime
    end: Optional[datetime] = None
    nap: bool = False
    score_state: Optional[str] = None
    score: Optional[WhoopSleepScore] = None


class WhoopZoneDuration(BaseModel):
    zone_zero_milli: Optional[int] = None
    zone_one_milli: Optional[int] = None
    zone_two_milli: Optional[int] = None
    zone_three_milli: Optional[int] = None
    zone_four_milli: Optional[int] = None
    zone_five_milli: Optional[int] = None


class WhoopWorkoutScore(BaseModel):
    strain: Optional[float] = None
    average_heart_rate: Optional[float] = None
    max_heart_rate: Optional[float] = None
    kilojoule: Optional[float] = None
    distance_meter: Optional[float] = None
    zone_duration: Optional[WhoopZoneDuration] = None


class WhoopWorkout(BaseModel):
    id: int | str
    start: datetime
    end: Optional[datetime] = None
    sport_id: Optional[int] = None
    sport_name: Optional[str] = None
    score_state: Optional[str] = None
    score: Optional[WhoopWorkoutScore] = None


# ---------------------------------------------------------------------------
# Oura (API v2)
# ---------------------------------------------------------------------------

class OuraDailyReadiness(BaseModel):
    """One day of Oura daily_readiness. Contributors are 1–100 scores, not raw values."""

    day: date
    score: Optional[int] = None
    temperature_deviation: Optional[float] = None
    contributors: Optional[dict] = None


class OuraSleepPeriod(BaseModel):
    """One sleep period from /usercollection/sleep. Durations are seconds."""

    id: Optional[str] = None
    day: date
    type: Optional[str] = None
    bedtime_start: Optional[datetime] = None
    bedtime_end: Optional[datetime] = None
    total_sleep_duration: Optional[int] = None
    deep_sleep_duration: Optional[int] = None
    light_sleep_duration: Optional[int] = None
    rem_sleep_duration: Optional[int] = None
    awake_time: Optional[int] = None
    efficiency: Optional[float] = None
    latency: Optional[int] = None
    average_breath: Optional[float] = None
    average_heart_rate: Optional[float] = None
    lowest_heart_rate: Optional[float] = None
    average_hrv: Optional[float] = None


class OuraDailyActivity(BaseModel):
    """One day of Oura daily_activity summary data."""

    day: date
    score: Optional[int] = None
    steps: Optional[int] = None
    active_calories: Optional[int] = None
    total_calories: Optional[int] = None
    equivalent_walking_distance: Optional[float] = None


# ---------------------------------------------------------------------------
# Fitbit (Web API v1)
# ---------------------------------------------------------------------------

class FitbitHeartValue(BaseModel):
    resting_heart_rate: Optional[float] = Field(default=None, alias="restingHeartRate")


class FitbitHeartDay(BaseModel):
    """One entry of ``activities-heart`` from /activities/heart/date/{d}/1d.json."""

    date_time: date = Field(alias="dateTime")
    value: FitbitHeartValue = Field(default_factory=FitbitHeartValue)


class FitbitSleepStage(BaseModel):
    count: Optional[int] = None
    minutes: Optional[int] = None


class FitbitSleepLevels(BaseModel):
    summary: dict[str, FitbitSleepStage] = Field(default_factory=dict)


class FitbitSleepLog(BaseModel):
    date_of_sleep: date = Field(alias="dateOfSleep")
    start_time: Optional[datetime] = Field(default=None, alias="startTime")
    end_time: Optional[datetime] = Field(default=None, alias="endTime")
    is_main_sleep: bool = Field(default=True, alias="isMainSleep")
    minutes_asleep: Optional[int] = Field(default=None, alias="minutesAsleep")
    time_in_bed: Optional[int] = Field(default=None, alias="timeInBed")
    minutes_to_fall_asleep: Optional[int] = Field(default=None, alias="minutesToFallAsleep")
    efficiency: Optional[float] = None
    levels: Optional[FitbitSleepLevels] = None


class FitbitHeartRateZone(BaseModel):
    name: str
    minutes: Optional[float] = None


class FitbitActivityLog(BaseModel):
    log_id: int = Field(alias="logId")
    name: Optional[str] = None
    activity_name: Optional[str] = Field(default=None, alias="activityName")
    start_date: Optional[date] = Field(default=None, alias="startDate")
    start_time: Optional[str] = Field(default=None, alias="startTime")
    has_start_time: bool = Field(default=False, alias="hasStartTime")
    duration: Optional[int] = None  # milliseconds
    distance: Optional[float] = None  # miles with en_US units
    calories: Optional[float] = None
    steps: Optional[int] = None
    average_heart_rate: Optional[float] = Field(default=None, alias="averageHeartRate")
    heart_rate_zones: Optional[list[FitbitHeartRateZone]] = Field(default=None, alias="heartRateZones")


class FitbitDistance(BaseModel):
    activity: Optional[str] = None
    distance: Optional[float] = None


class FitbitSummary(BaseModel):
    steps: Optional[int] = None
    calories_out: Optional[float] = Field(default=None, alias="caloriesOut")
    resting_heart_rate: Optional[float] = Field(default=None, alias="restingHeartRate")
    distances: list[FitbitDistance] = Field(default_factory=list)


class FitbitActivityDay(BaseModel):
    """Payload of /activities/date/{d}.json. The client tags it with ``date``
    because the response body itself does not carry the day."""

    day: date = Field(alias="date")
    activities: list[FitbitActivityLog] = Field(default_factory=list)
    summary: Optional[FitbitSummary] = None


# ---------------------------------------------------------------------------
# Garmin (Health API)
# ---------------------------------------------------------------------------

class GarminDaily(BaseModel):
    summary_id: Optional[str] = Field(default=None, alias="summaryId")
    calendar_date: date = Field(alias="calendarDate")
    resting_heart_rate: Optional[float] = Field(default=None, alias="restingHeartRateInBeatsPerMinute")
    steps: Optional[int] = None
    distance_in_meters: Optional[float] = Field(default=None, alias="distanceInMeters")
    active_kilocalories: Optional[float] = Field(default=None, alias="activeKilocalories")
    average_heart_rate: Optional[float] = Field(default=None, alias="averageHeartRateInBeatsPerMinute")
    max_heart_rate: Optional[float] = Field(default=None, alias="maxHeartRateInBeatsPerMinute")
    body_battery_charged: Optional[float] = Field(default=None, alias="bodyBatteryChargedValue")


class GarminSleep(BaseModel):
    summary_id: Optional[str] = Field(default=None, alias="summaryId")
    calendar_date: date = Field(alias="calendarDate")
    start_time_in_seconds: Optional[int] = Field(default=None, alias="startTimeInSeconds")
    duration_in_seconds: Optional[int] = Field(default=None, alias="durationInSeconds")
    deep_sleep_seconds: Optional[int] = Field(default=None, alias="deepSleepDurationInSeconds")
    light_sleep_seconds: Optional[int] = Field(default=None, alias="lightSleepDurationInSeconds")
    rem_sleep_seconds: Optional[int] = Field(default=None, alias="remSleepInSeconds")
    awake_seconds: Optional[int] = Field(default=None, alias="awakeDurationInSeconds")
    overall_sleep_score: Optional[dict] = Field(default=None, alias="overallSleepScore")


class GarminActivity(BaseModel):
    summary_id: str = Field(alias="summaryId")
    activity_type: Optional[str] = Field(default=None, alias="activityType")
    activity_name: Optional[str] = Field(default=None, alias="activityName")
    start_time_in_seconds: int = Field(alias="startTimeInSeconds")
    duration_in_seconds: Optional[int] = Field(default=None, alias="durationInSeconds")
    distance_in_meters: Optional[float] = Field(default=None, alias="distanceInMeters")
    active_kilocalories: Optional[float] = Field(default=None, alias="activeKilocalories")
    steps: Optional[int] = None
    average_heart_rate: Optional[float] = Field(default=None, alias="averageHeartRateInBeatsPerMinute")
    max_heart_rate: Optional[float] = Field(default=None, alias="maxHeartRateInBeatsPerMinute")
