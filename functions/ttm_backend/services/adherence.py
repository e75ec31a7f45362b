"""
Medication adherence: treatment schedules, daily check-ins, reminder
preferences and the scans that queue reminders and record missed doses.

Dates are clinic-local ``YYYY-MM-DD`` strings and times are ``HH:MM`` wall
clock in ``Settings.clinic_timezone``.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from ttm_backend.config import Settings
from ttm_backend.db import DbClient, Row
from ttm_backend.errors import ConflictError, NotFoundError, ValidationFailed
from ttm_backend.jobs import JobKind, enqueue_job
from ttm_backend.queue import JobQueue
from ttm_backend.services import patients

logger = logging.getLogger(__name__)

FREQUENCIES = ("once_daily", "twice_daily", "three_times_daily", "as_needed")
CHECK_IN_STATUSES = ("taken", "missed", "skipped", "delayed")
REMINDER_METHODS = ("in_app", "email", "line", "sms")
# The worker can only deliver these; the others are handled by the client apps.
DELIVERABLE_METHODS = ("email", "line")
ADHERENT_STATUSES = ("taken", "delayed")

MISSED_NOTE = "Automatically marked as missed"

DEFAULT_REMINDER_SETTINGS = {
    "enabled": True,
    "reminder_methods": ["in_app"],
    "advance_notice_minutes": 15,
    "quiet_hours_start": "22:00",
    "quiet_hours_end": "07:00",
    "missed_dose_alerts": True,
}

_CLOCK = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
MINUTES_PER_DAY = 24 * 60


def parse_clock(value: str) -> int:
    """Minutes since midnight for an ``HH:MM`` string."""
    match = _CLOCK.match(value or "")
    if not match:
        raise ValidationFailed(f"Invalid time of day: {value!r}")
    return int(match.group(1)) * 60 + int(match.group(2))


def parse_day(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f"Invalid date: {value!r}") from None


def clinic_now(settings: Settings, now: Optional[datetime] = None) -> datetime:
    tz = ZoneInfo(settings.clinic_timezone)
    return now.astimezone(tz) if now else datetime.now(tz)


def is_in_quiet_hours(minute_of_day: int, start: str, end: str) -> bool:
    """True inside [start, end); a window whose start is after its end wraps midnight."""
    start_minute, end_minute = parse_clock(start), parse_clock(end)
    if start_minute > end_minute:
        return minute_of_day >= start_minute or minute_of_day < end_minute
    return start_minute <= minute_of_day < end_minute


def should_send_reminder(
    minute_of_day: int, scheduled_time: str, advance_minutes: int, window_minutes: int = 5
) -> bool:
    """True when now is within `window_minutes` of the dose time less the advance notice."""
    target = (parse_clock(scheduled_time) - advance_minutes) % MINUTES_PER_DAY
    distance = abs(minute_of_day - target)
    return min(distance, MINUTES_PER_DAY - distance) <= window_minutes


# Schedules


def _normalized_times(times: list[str]) -> list[str]:
    if not times:
        raise ValidationFailed("At least one time of day is required")
    for value in times:
        parse_clock(value)
    return sorted(set(times), key=parse_clock)


def _validate_schedule(values: dict) -> dict:
    if values["frequency"] not in FREQUENCIES:
        raise ValidationFailed(f"Invalid frequency: {values['frequency']}")
    values["times_of_day"] = _normalized_times(values.get("times_of_day") or [])
    start = parse_day(values["start_date"])
    if values.get("end_date") and parse_day(values["end_date"]) < start:
        raise ValidationFailed("End date must not be before start date")
    return values


def create_schedule(
    db: DbClient, patient_id: str, values: dict, created_by: Optional[str] = None
) -> Row:
    patients.get_patient(db, patient_id)
    recommendation_id = values.get("recommendation_id")
    if recommendation_id:
        recommendation = db.get("recommendations", recommendation_id)
        if not recommendation or recommendation["patient_id"] != patient_id:
            raise ValidationFailed("Recommendation does not belong to this patient")
    row = _validate_schedule({**values, "patient_id": patient_id, "created_by": created_by})
    schedule = db.insert("treatment_schedules", row)
    logger.info("Created treatment schedule %s for patient %s", schedule["id"], patient_id)
    return schedule


def get_schedule(db: DbClient, schedule_id: str) -> Row:
    schedule = db.get("treatment_schedules", schedule_id)
    if not schedule:
        raise NotFoundError("Treatment schedule not found")
    return schedule


def update_schedule(db: DbClient, schedule_id: str, changes: dict) -> Row:
    schedule = get_schedule(db, schedule_id)
    merged = _validate_schedule({**schedule, **changes})
    return db.update(
        "treatment_schedules",
        schedule_id,
        {key: merged[key] for key in changes},
    )


def list_schedules(db: DbClient, patient_id: str, active_only: bool = False) -> list[Row]:
    where = {"patient_id": patient_id}
    if active_only:
        where["is_active"] = True
    return db.select("treatment_schedules", where=where, order_by="created_at")


def is_due_on(schedule: Row, day: date) -> bool:
    if not schedule["is_active"]:
        return False
    if parse_day(schedule["start_date"]) > day:
        return False
    return not schedule.get("end_date") or parse_day(schedule["end_date"]) >= day


# Reminder settings


def get_reminder_settings(db: DbClient, patient_id: str) -> Row:
    """Stored preferences, or the defaults when the patient never saved any."""
    rows = db.select("reminder_settings", where={"patient_id": patient_id}, limit=1)
    if rows:
        return rows[0]
    return {**DEFAULT_REMINDER_SETTINGS, "patient_id": patient_id}


def save_reminder_settings(db: DbClient, patient_id: str, values: dict) -> Row:
    patients.get_patient(db, patient_id)
    unknown = set(values.get("reminder_methods") or []) - set(REMINDER_METHODS)
    if unknown:
        raise ValidationFailed(f"Unknown reminder methods: {', '.join(sorted(unknown))}")
    for field in ("quiet_hours_start", "quiet_hours_end"):
        if values.get(field) is not None:
            parse_clock(values[field])

    rows = db.select("reminder_settings", where={"patient_id": patient_id}, limit=1)
    if rows:
        return db.update("reminder_settings", rows[0]["id"], values)
    return db.insert(
        "reminder_settings", {**DEFAULT_REMINDER_SETTINGS, **values, "patient_id": patient_id}
    )


# Check-ins


def _existing_check_in(db: DbClient, schedule_id: str, day: str) -> Optional[Row]:
    rows = db.select(
        "patient_check_ins",
        where={"treatment_schedule_id": schedule_id, "check_in_date": day},
        limit=1,
    )
    return rows[0] if rows else None


def record_check_in(db: DbClient, patient_id: str, values: dict, today: date) -> Row:
    """
    Record how a day's doses went. A second check-in for the same schedule
    and day replaces the first, so a patient can correct an automatic miss.
    """
    schedule = get_schedule(db, values["treatment_schedule_id"])
    if schedule["patient_id"] != patient_id:
        raise ValidationFailed("Treatment schedule does not belong to this patient")
    if values["status"] not in CHECK_IN_STATUSES:
        raise ValidationFailed(f"Invalid check-in status: {values['status']}")
    day = values.get("check_in_date") or today.isoformat()
    if parse_day(day) > today:
        raise ValidationFailed("Cannot check in for a future date")
    if values.get("taken_at_time"):
        parse_clock(values["taken_at_time"])

    row = {
        **dict.fromkeys(("taken_at_time", "side_effects", "effectiveness_rating", "notes")),
        **values,
        "patient_id": patient_id,
        "check_in_date": day,
    }
    existing = _existing_check_in(db, schedule["id"], day)
    if existing:
        return db.update("patient_check_ins", existing["id"], row)
    return db.insert("patient_check_ins", row)


def list_check_ins(
    db: DbClient, patient_id: str, start: Optional[str] = None, end: Optional[str] = None
) -> list[Row]:
    rows = db.select("patient_check_ins", where={"patient_id": patient_id})
    selected = [
        row
        for row in rows
        if (start is None or row["check_in_date"] >= start)
        and (end is None or row["check_in_date"] <= end)
    ]
    return sorted(selected, key=lambda row: (row["check_in_date"], row["created_at"]))


def adherence_rate(adherent: int, missed: int) -> int:
    total = adherent + missed
    if not total:
        return 0
    return math.floor(adherent / total * 100 + 0.5)


def adherence_summary(check_ins: list[Row], today: date) -> dict:
    """
    Rate and streaks over a set of check-ins.

    A day counts toward a streak when every check-in on it was taken or
    delayed. The current streak ends today, or yesterday while today has no
    check-ins yet.
    """
    adherent = sum(1 for row in check_ins if row["status"] in ADHERENT_STATUSES)
    missed = sum(1 for row in check_ins if row["status"] not in ADHERENT_STATUSES)

    by_day: dict[date, bool] = {}
    for row in check_ins:
        day = parse_day(row["check_in_date"])
        by_day[day] = by_day.get(day, True) and row["status"] in ADHERENT_STATUSES

    longest = run = 0
    previous: Optional[date] = None
    for day in sorted(by_day):
        if not by_day[day]:
            run = 0
        elif previous is not None and day - previous == timedelta(days=1) and run:
            run += 1
        else:
            run = 1
        longest = max(longest, run)
        previous = day

    current = 0
    cursor = today if today in by_day else today - timedelta(days=1)
    while by_day.get(cursor):
        current += 1
        cursor -= timedelta(days=1)

    return {
        "total_check_ins": len(check_ins),
        "adherent_count": adherent,
        "missed_count": missed,
        "adherence_rate": adherence_rate(adherent, missed),
        "current_streak": current,
        "longest_streak": longest,
    }


# Scans


def _deliverable(preferences: Row) -> list[str]:
    return [m for m in preferences.get("reminder_methods") or [] if m in DELIVERABLE_METHODS]


def queue_due_reminders(
    db: DbClient, queue: Optional[JobQueue], settings: Settings, now: Optional[datetime] = None
) -> int:
    """
    Queue a reminder job for every dose whose reminder time is now.

    Only patients who saved reminder settings with email or LINE enabled are
    reminded. Each schedule, day and dose time is reminded at most once.
    """
    local = clinic_now(settings, now)
    minute = local.hour * 60 + local.minute
    today = local.date()
    queued = 0
    preferences_by_patient: dict[str, Optional[Row]] = {}

    for schedule in db.select("treatment_schedules", where={"is_active": True}):
        patient_id = schedule["patient_id"]
        if patient_id not in preferences_by_patient:
            rows = db.select("reminder_settings", where={"patient_id": patient_id}, limit=1)
            preferences_by_patient[patient_id] = rows[0] if rows else None
        preferences = preferences_by_patient[patient_id]
        if not preferences or not preferences["enabled"]:
            continue
        methods = _deliverable(preferences)
        if not methods:
            continue
        if is_in_quiet_hours(
            minute, preferences["quiet_hours_start"], preferences["quiet_hours_end"]
        ):
            continue

        for scheduled_time in schedule["times_of_day"]:
            if not should_send_reminder(
                minute,
                scheduled_time,
                preferences["advance_notice_minutes"],
                settings.reminder_window_minutes,
            ):
                continue
            # Advance notice can reach back across midnight.
            dose_day = today
            if parse_clock(scheduled_time) + settings.reminder_window_minutes < minute:
                dose_day = today + timedelta(days=1)
            if not is_due_on(schedule, dose_day):
                continue
            if _existing_check_in(db, schedule["id"], dose_day.isoformat()):
                continue
            try:
                db.insert(
                    "reminder_deliveries",
                    {
                        "treatment_schedule_id": schedule["id"],
                        "reminder_date": dose_day.isoformat(),
                        "scheduled_time": scheduled_time,
                    },
                )
            except ConflictError:
                continue
            enqueue_job(
                db,
                queue,
                JobKind.MEDICATION_REMINDER,
                {
                    "schedule_id": schedule["id"],
                    "dose_date": dose_day.isoformat(),
                    "scheduled_time": scheduled_time,
                    "methods": methods,
                },
            )
            queued += 1

    if queued:
        logger.info("Queued %d medication reminders", queued)
    return queued


def mark_missed_doses(db: DbClient, queue: Optional[JobQueue], day: date) -> int:
    """
    Record a missed check-in for every scheduled dose on `day` that has none,
    and queue a missed-dose alert for patients who want them.
    """
    day_str = day.isoformat()
    missed = 0
    for schedule in db.select("treatment_schedules", where={"is_active": True}):
        if schedule["frequency"] == "as_needed" or not is_due_on(schedule, day):
            continue
        if _existing_check_in(db, schedule["id"], day_str):
            continue
        try:
            db.insert(
                "patient_check_ins",
                {
                    "patient_id": schedule["patient_id"],
                    "treatment_schedule_id": schedule["id"],
                    "check_in_date": day_str,
                    "status": "missed",
                    "notes": MISSED_NOTE,
                },
            )
        except ConflictError:
            continue
        missed += 1

        preferences = get_reminder_settings(db, schedule["patient_id"])
        methods = _deliverable(preferences)
        if preferences["enabled"] and preferences["missed_dose_alerts"] and methods:
            enqueue_job(
                db,
                queue,
                JobKind.MISSED_DOSE,
                {"schedule_id": schedule["id"], "check_in_date": day_str, "methods": methods},
            )

    logger.info("Marked %d missed doses for %s", missed, day_str)
    return missed
