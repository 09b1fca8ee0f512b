"""
Wearable Data Normaliser
========================
Pure mapping from raw vendor payloads to unified recovery / sleep / activity
records. No I/O: the orchestrator and the live reader both call in here with
whatever the provider clients returned.

Conversion rules:
- Whoop energy is kilojoules: kcal = kJ / 4.184.
- Whoop durations are milliseconds: minutes = ms / 60000, rounded.
- Oura and Garmin durations are seconds: minutes = s / 60, rounded.
- Fitbit activity duration is milliseconds; distance is miles (we request
  en_US units) and is stored in metres.

A field the vendor omits stays ``None``. Never substitute 0: a missing HRV
reading and an HRV of zero mean very different things on a dashboard.

Each per-vendor function returns a list because one payload can hold several
records (a Fitbit day with three logged workouts) or none at all (an unscored
Whoop recovery, an Oura nap).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Optional

import pandas as pd
from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from artemis.models.vendors import (
    FitbitActivityDay,
    FitbitActivityLog,
    FitbitHeartDay,
    FitbitSleepLog,
    GarminActivity,
    GarminDaily,
    GarminSleep,
    OuraDailyActivity,
    OuraDailyReadiness,
    OuraSleepPeriod,
    WhoopRecovery,
    WhoopSleep,
    WhoopWorkout,
)
from artemis.models.wearable import (
    DataType,
    Provider,
    UnifiedActivityRecord,
    UnifiedRecord,
    UnifiedRecoveryRecord,
    UnifiedSleepRecord,
    daily_activity_id,
)

logger = logging.getLogger(__name__)

KJ_PER_KCAL = 4.184
METRES_PER_MILE = 1609.344

# Whoop score states that carry no usable numbers
_WHOOP_UNSCORED = {"PENDING_SCORE", "UNSCORABLE"}

# Oura sleep period types that count as the night's sleep
_OURA_MAIN_SLEEP_TYPES = {"long_sleep", "sleep"}


class NormalizationError(Exception):
    """A vendor payload could not be parsed into a unified record."""

    def __init__(self, provider: Provider, data_type: DataType, reason: str) -> None:
        self.provider = provider
        self.data_type = data_type
        super().__init__(f"Cannot normalise {provider.value} {data_type.value}: {reason}")


# ---------------------------------------------------------------------------
# Unit helpers
# ---------------------------------------------------------------------------


def kj_to_kcal(kilojoules: Optional[float]) -> Optional[float]:
    if kilojoules is None:
        return None
    return round(kilojoules / KJ_PER_KCAL, 1)


def ms_to_minutes(milliseconds: Optional[float]) -> Optional[int]:
    if milliseconds is None:
        return None
    return round(milliseconds / 60000)


def seconds_to_minutes(seconds: Optional[float]) -> Optional[int]:
    if seconds is None:
        return None
    return round(seconds / 60)


def miles_to_metres(miles: Optional[float]) -> Optional[float]:
    if miles is None:
        return None
    return round(miles * METRES_PER_MILE, 1)


def _minutes_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[int]:
    if start is None or end is None:
        return None
    return round((end - start).total_seconds() / 60)


def _from_epoch(seconds: Optional[int]) -> Optional[datetime]:
    if seconds is None:
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


# ---------------------------------------------------------------------------
# Whoop
# ---------------------------------------------------------------------------


def normalise_whoop_recovery(payload: dict) -> list[UnifiedRecoveryRecord]:
    recovery = WhoopRecovery.model_validate(payload)
    if recovery.score is None or recovery.score_state in _WHOOP_UNSCORED:
        return []
    score = recovery.score
    return [
        UnifiedRecoveryRecord(
            provider=Provider.WHOOP,
            date=recovery.created_at.date(),
            score=score.recovery_score,
            hrv=score.hrv_rmssd_milli,
            heart_rate=score.resting_heart_rate,
            temperature=score.skin_temp_celsius,
            oxygen_saturation=score.spo2_percentage,
            raw=payload,
        )
    ]


def normalise_whoop_sleep(payload: dict) -> list[UnifiedSleepRecord]:
    sleep = WhoopSleep.model_validate(payload)
    if sleep.nap or sleep.score is None or sleep.score_state in _WHOOP_UNSCORED:
        return []
    score = sleep.score
    stages = score.stage_summary
    return [
        UnifiedSleepRecord(
            provider=Provider.WHOOP,
            date=sleep.start.date(),
            start=sleep.start,
            end=sleep.end,
            duration=ms_to_minutes(stages.total_in_bed_time_milli) if stages else None,
            deep=ms_to_minutes(stages.total_slow_wave_sleep_time_milli) if stages else None,
            light=ms_to_minutes(stages.total_light_sleep_time_milli) if stages else None,
            rem=ms_to_minutes(stages.total_rem_sleep_time_milli) if stages else None,
            awake=ms_to_minutes(stages.total_awake_time_milli) if stages else None,
            efficiency=score.sleep_efficiency_percentage,
            score=score.sleep_performance_percentage,
            respiratory_rate=score.respiratory_rate,
            raw=payload,
        )
    ]


_WHOOP_ZONES = ("zero", "one", "two", "three", "four", "five")


def normalise_whoop_workout(payload: dict) -> list[UnifiedActivityRecord]:
    workout = WhoopWorkout.model_validate(payload)
    score = workout.score if workout.score_state not in _WHOOP_UNSCORED else None

    zones = None
    if score and score.zone_duration:
        zones = {
            f"zone_{index}": ms_to_minutes(getattr(score.zone_duration, f"zone_{name}_milli"))
            for index, name in enumerate(_WHOOP_ZONES)
            if getattr(score.zone_duration, f"zone_{name}_milli") is not None
        }

    return [
        UnifiedActivityRecord(
            provider=Provider.WHOOP,
            activity_id=str(workout.id),
            date=workout.start.date(),
            activity_type=workout.sport_name or (f"sport_{workout.sport_id}" if workout.sport_id is not None else None),
            start_time=workout.start,
            end_time=workout.end,
            duration=_minutes_between(workout.start, workout.end),
            distance=score.distance_meter if score else None,
            calories=kj_to_kcal(score.kilojoule) if score else None,
            average_heart_rate=score.average_heart_rate if score else None,
            max_heart_rate=score.max_heart_rate if score else None,
            strain=score.strain if score else None,
            heart_rate_zones=zones or None,
            raw=payload,
        )
    ]


# ---------------------------------------------------------------------------
# Oura
# ---------------------------------------------------------------------------


def normalise_oura_readiness(payload: dict) -> list[UnifiedRecoveryRecord]:
    # HRV and resting HR stay None: readiness contributors are 1-100 scores,
    # not the underlying measurements.
    readiness = OuraDailyReadiness.model_validate(payload)
    return [
        UnifiedRecoveryRecord(
            provider=Provider.OURA,
            date=readiness.day,
            score=readiness.score,
            temperature_deviation=readiness.temperature_deviation,
            raw=payload,
        )
    ]


def normalise_oura_sleep(payload: dict) -> list[UnifiedSleepRecord]:
    period = OuraSleepPeriod.model_validate(payload)
    if period.type is not None and period.type not in _OURA_MAIN_SLEEP_TYPES:
        return []
    return [
        UnifiedSleepRecord(
            provider=Provider.OURA,
            date=period.day,
            start=period.bedtime_start,
            end=period.bedtime_end,
            duration=seconds_to_minutes(period.total_sleep_duration),
            deep=seconds_to_minutes(period.deep_sleep_duration),
            light=seconds_to_minutes(period.light_sleep_duration),
            rem=seconds_to_minutes(period.rem_sleep_duration),
            awake=seconds_to_minutes(period.awake_time),
            efficiency=period.efficiency,
            onset_latency=seconds_to_minutes(period.latency),
            respiratory_rate=period.average_breath,
            average_heart_rate=period.average_heart_rate,
            lowest_heart_rate=period.lowest_heart_rate,
            average_hrv=period.average_hrv,
            raw=payload,
        )
    ]


def normalise_oura_activity(payload: dict) -> list[UnifiedActivityRecord]:
    activity = OuraDailyActivity.model_validate(payload)
    return [
        UnifiedActivityRecord(
            provider=Provider.OURA,
            activity_id=daily_activity_id(activity.day),
            date=activity.day,
            activity_type="daily",
            distance=activity.equivalent_walking_distance,
            calories=activity.active_calories,
            steps=activity.steps,
            score=activity.score,
            raw=payload,
        )
    ]


# ---------------------------------------------------------------------------
# Fitbit
# ---------------------------------------------------------------------------


def normalise_fitbit_heart(payload: dict) -> list[UnifiedRecoveryRecord]:
    """Fitbit has no recovery score; resting heart rate is the only signal."""
    records = []
    for entry in payload.get("activities-heart") or []:
        day = FitbitHeartDay.model_validate(entry)
        if day.value.resting_heart_rate is None:
            continue
        records.append(
            UnifiedRecoveryRecord(
                provider=Provider.FITBIT,
                date=day.date_time,
                heart_rate=day.value.resting_heart_rate,
                raw=entry,
            )
        )
    return records


def normalise_fitbit_sleep(payload: dict) -> list[UnifiedSleepRecord]:
    logs = [FitbitSleepLog.model_validate(item) for item in payload.get("sleep") or []]
    records = []
    for log, item in zip(logs, payload.get("sleep") or []):
        if not log.is_main_sleep:
            continue
        stages = log.levels.summary if log.levels else {}
        records.append(
            UnifiedSleepRecord(
                provider=Provider.FITBIT,
                date=log.date_of_sleep,
                start=log.start_time,
                end=log.end_time,
                duration=log.minutes_asleep,
                deep=stages["deep"].minutes if "deep" in stages else None,
                light=stages["light"].minutes if "light" in stages else None,
                rem=stages["rem"].minutes if "rem" in stages else None,
                awake=stages["wake"].minutes if "wake" in stages else None,
                efficiency=log.efficiency,
                onset_latency=log.minutes_to_fall_asleep,
                raw=item,
            )
        )
    return records


def _fitbit_start(log: FitbitActivityLog, day: date) -> Optional[datetime]:
    if not log.has_start_time or not log.start_time:
        return None
    start_day = log.start_date or day
    return datetime.combine(start_day, time.fromisoformat(log.start_time))


def normalise_fitbit_activity(payload: dict) -> list[UnifiedActivityRecord]:
    body = FitbitActivityDay.model_validate(payload)
    records = []
    for log, item in zip(body.activities, payload.get("activities") or []):
        start = _fitbit_start(log, body.day)
        duration = ms_to_minutes(log.duration)
        records.append(
            UnifiedActivityRecord(
                provider=Provider.FITBIT,
                activity_id=str(log.log_id),
                date=log.start_date or body.day,
                activity_type=log.activity_name or log.name,
                start_time=start,
                end_time=start + timedelta(milliseconds=log.duration) if start and log.duration else None,
                duration=duration,
                distance=miles_to_metres(log.distance),
                calories=log.calories,
                steps=log.steps,
                average_heart_rate=log.average_heart_rate,
                heart_rate_zones={zone.name: zone.minutes for zone in log.heart_rate_zones if zone.minutes is not None}
                if log.heart_rate_zones
                else None,
                raw=item,
            )
        )

    # A day with steps but no logged workouts still gets one daily record
    summary = body.summary
    if not records and summary and summary.steps:
        total = next((d.distance for d in summary.distances if d.activity == "total"), None)
        records.append(
            UnifiedActivityRecord(
                provider=Provider.FITBIT,
                activity_id=daily_activity_id(body.day),
                date=body.day,
                activity_type="daily",
                distance=miles_to_metres(total),
                calories=summary.calories_out,
                steps=summary.steps,
                raw=payload,
            )
        )
    return records


# ---------------------------------------------------------------------------
# Garmin
# ---------------------------------------------------------------------------


def normalise_garmin_daily(payload: dict) -> list[UnifiedRecoveryRecord]:
    daily = GarminDaily.model_validate(payload)
    if daily.resting_heart_rate is None:
        return []
    return [
        UnifiedRecoveryRecord(
            provider=Provider.GARMIN,
            date=daily.calendar_date,
            heart_rate=daily.resting_heart_rate,
            raw=payload,
        )
    ]


def normalise_garmin_sleep(payload: dict) -> list[UnifiedSleepRecord]:
    sleep = GarminSleep.model_validate(payload)
    start = _from_epoch(sleep.start_time_in_seconds)
    end = start + timedelta(seconds=sleep.duration_in_seconds) if start and sleep.duration_in_seconds else None
    score = (sleep.overall_sleep_score or {}).get("value")
    return [
        UnifiedSleepRecord(
            provider=Provider.GARMIN,
            date=sleep.calendar_date,
            start=start,
            end=end,
            duration=seconds_to_minutes(sleep.duration_in_seconds),
            deep=seconds_to_minutes(sleep.deep_sleep_seconds),
            light=seconds_to_minutes(sleep.light_sleep_seconds),
            rem=seconds_to_minutes(sleep.rem_sleep_seconds),
            awake=seconds_to_minutes(sleep.awake_seconds),
            score=score,
            raw=payload,
        )
    ]


def normalise_garmin_activity(payload: dict) -> list[UnifiedActivityRecord]:
    activity = GarminActivity.model_validate(payload)
    start = _from_epoch(activity.start_time_in_seconds)
    end = start + timedelta(seconds=activity.duration_in_seconds) if activity.duration_in_seconds else None
    return [
        UnifiedActivityRecord(
            provider=Provider.GARMIN,
            activity_id=activity.summary_id,
            date=start.date(),
            activity_type=activity.activity_type or activity.activity_name,
            start_time=start,
            end_time=end,
            duration=seconds_to_minutes(activity.duration_in_seconds),
            distance=activity.distance_in_meters,
            calories=activity.active_kilocalories,
            steps=activity.steps,
            average_heart_rate=activity.average_heart_rate,
            max_heart_rate=activity.max_heart_rate,
            raw=payload,
        )
    ]


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

_NORMALISERS: dict[tuple[Provider, DataType], Callable[[dict], list[UnifiedRecord]]] = {
    (Provider.WHOOP, DataType.RECOVERY): normalise_whoop_recovery,
    (Provider.WHOOP, DataType.SLEEP): normalise_whoop_sleep,
    (Provider.WHOOP, DataType.ACTIVITY): normalise_whoop_workout,
    (Provider.OURA, DataType.RECOVERY): normalise_oura_readiness,
    (Provider.OURA, DataType.SLEEP): normalise_oura_sleep,
    (Provider.OURA, DataType.ACTIVITY): normalise_oura_activity,
    (Provider.FITBIT, DataType.RECOVERY): normalise_fitbit_heart,
    (Provider.FITBIT, DataType.SLEEP): normalise_fitbit_sleep,
    (Provider.FITBIT, DataType.ACTIVITY): normalise_fitbit_activity,
    (Provider.GARMIN, DataType.RECOVERY): normalise_garmin_daily,
    (Provider.GARMIN, DataType.SLEEP): normalise_garmin_sleep,
    (Provider.GARMIN, DataType.ACTIVITY): normalise_garmin_activity,
}


def normalise(provider: Provider, data_type: DataType, payload: dict) -> list[UnifiedRecord]:
    """Map one raw payload. Raises NormalizationError if it cannot be parsed."""
    if not isinstance(payload, dict):
        raise NormalizationError(provider, data_type, f"expected object, got {type(payload).__name__}")
    try:
        return _NORMALISERS[(provider, data_type)](payload)
    except (ValidationError, ValueError, TypeError) as exc:
        raise NormalizationError(provider, data_type, str(exc)) from exc


def natural_key(record: UnifiedRecord) -> tuple:
    if isinstance(record, UnifiedActivityRecord):
        return (record.provider, record.activity_id)
    return (record.provider, record.date)


def _prefer(current: UnifiedRecord, candidate: UnifiedRecord) -> UnifiedRecord:
    # Longest sleep of the day is the main sleep; otherwise the later payload wins
    if isinstance(current, UnifiedSleepRecord):
        return candidate if (candidate.duration or 0) > (current.duration or 0) else current
    return candidate


def normalise_batch(
    provider: Provider, data_type: DataType, payloads: Iterable[dict]
) -> list[UnifiedRecord]:
    """Normalise a page of payloads, skipping bad ones and collapsing duplicate keys.

    Returned newest first.
    """
    by_key: dict[tuple, UnifiedRecord] = {}
    for payload in payloads:
        try:
            records = normalise(provider, data_type, payload)
        except NormalizationError as exc:
            logger.warning("Skipping malformed payload: %s", exc)
            continue
        for record in records:
            key = natural_key(record)
            by_key[key] = _prefer(by_key[key], record) if key in by_key else record
    return sorted(by_key.values(), key=lambda r: r.date, reverse=True)


# ---------------------------------------------------------------------------
# Multi-provider aggregation
# ---------------------------------------------------------------------------

_MEAN_FIELDS = {
    DataType.RECOVERY: ["score", "hrv", "heart_rate", "temperature", "temperature_deviation", "oxygen_saturation"],
    DataType.SLEEP: ["score", "efficiency"],
    DataType.ACTIVITY: ["score", "average_heart_rate"],
}
_SUM_FIELDS = {
    DataType.RECOVERY: [],
    DataType.SLEEP: ["duration", "deep", "light", "rem", "awake"],
    DataType.ACTIVITY: ["calories", "duration", "strain"],
}
_MAX_FIELDS = {
    DataType.RECOVERY: [],
    DataType.SLEEP: [],
    DataType.ACTIVITY: ["steps", "distance", "max_heart_rate"],
}
_FIRST_FIELDS = {
    DataType.RECOVERY: [],
    DataType.SLEEP: ["onset_latency", "respiratory_rate", "average_heart_rate", "lowest_heart_rate", "average_hrv"],
    DataType.ACTIVITY: [],
}


def aggregate_by_date(data_type: DataType, records: Iterable[UnifiedRecord]) -> list[dict[str, Any]]:
    """Merge one data type across providers into a single row per date.

    Scores and physiological averages are averaged, durations and energy are
    summed, daily totals that overlap between devices take the maximum.
    Output keys are camelCase like the per-record API, newest date first.
    """
    rows = [record.model_dump(mode="json") for record in records]
    if not rows:
        return []

    frame = pd.DataFrame(rows)
    numeric = _MEAN_FIELDS[data_type] + _SUM_FIELDS[data_type] + _MAX_FIELDS[data_type] + _FIRST_FIELDS[data_type]
    for column in numeric:
        frame[column] = pd.to_numeric(frame[column], errors="coerce")

    aggregations: dict[str, Any] = {"provider": lambda s: ",".join(sorted(set(s)))}
    for column in _MEAN_FIELDS[data_type]:
        aggregations[column] = "mean"
    for column in _SUM_FIELDS[data_type]:
        aggregations[column] = lambda s: s.sum(min_count=1)
    for column in _MAX_FIELDS[data_type]:
        aggregations[column] = "max"
    for column in _FIRST_FIELDS[data_type]:
        aggregations[column] = "first"

    # ISO date strings sort chronologically
    merged = frame.groupby("date").agg(aggregations).sort_index(ascending=False).reset_index()
    merged = merged.astype(object).where(merged.notna(), None)

    result = []
    for row in merged.to_dict(orient="records"):
        out = {to_camel(key): value for key, value in row.items() if key != "provider"}
        out["providers"] = row["provider"].split(",")
        if out.get("score") is not None:
            out["score"] = round(out["score"], 1)
        if out.get("steps") is not None:
            out["steps"] = int(out["steps"])
        result.append(out)
    return result
