"""
Scheduled live sessions and their attendee lists.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from ttm_backend.db import DbClient, Row
from ttm_backend.errors import ConflictError, NotFoundError, ValidationFailed

logger = logging.getLogger(__name__)

DEFAULT_DURATION_SECONDS = 3600
STREAM_PLATFORMS = ("google_meet", "zoom", "youtube", "custom")


def effective_end(meeting: Row) -> float:
    return meeting.get("scheduled_end_time") or (
        meeting["scheduled_start_time"] + DEFAULT_DURATION_SECONDS
    )


def meeting_status(meeting: Row, now: Optional[float] = None) -> str:
    now = time.time() if now is None else now
    if now < meeting["scheduled_start_time"]:
        return "upcoming"
    if now <= effective_end(meeting):
        return "live"
    return "ended"


def _with_status(meeting: Row, now: Optional[float] = None) -> Row:
    status = meeting_status(meeting, now)
    return {**meeting, "status": status, "is_live_now": status == "live"}


def create_meeting(db: DbClient, host_id: Optional[str], values: dict) -> Row:
    end = values.get("scheduled_end_time")
    if end is not None and end <= values["scheduled_start_time"]:
        raise ValidationFailed("End time must be after start time")
    if values.get("stream_platform") and values["stream_platform"] not in STREAM_PLATFORMS:
        raise ValidationFailed("Unknown stream platform")
    meeting = db.insert("live_meetings", {**values, "host_id": host_id})
    return _with_status(meeting)


def get_meeting(db: DbClient, meeting_id: str) -> Row:
    meeting = db.get("live_meetings", meeting_id)
    if not meeting:
        raise NotFoundError("Meeting not found")
    return _with_status(meeting)


def update_meeting(db: DbClient, meeting_id: str, changes: dict) -> Row:
    meeting = get_meeting(db, meeting_id)
    start = changes.get("scheduled_start_time", meeting["scheduled_start_time"])
    end = changes.get("scheduled_end_time", meeting["scheduled_end_time"])
    if end is not None and end <= start:
        raise ValidationFailed("End time must be after start time")
    return _with_status(db.update("live_meetings", meeting_id, changes))


def delete_meeting(db: DbClient, meeting_id: str) -> None:
    get_meeting(db, meeting_id)
    db.delete_where("live_meeting_attendees", {"meeting_id": meeting_id})
    db.delete("live_meetings", meeting_id)


def list_meetings(
    db: DbClient,
    *,
    published_only: bool = True,
    role: Optional[str] = None,
    status: Optional[str] = None,
) -> list[Row]:
    where = {"is_published": True} if published_only else None
    now = time.time()
    meetings = [
        _with_status(m, now)
        for m in db.select("live_meetings", where=where, order_by="scheduled_start_time")
    ]
    if role and role != "admin":
        meetings = [m for m in meetings if _role_allowed(m, role)]
    if status:
        meetings = [m for m in meetings if m["status"] == status]
    return meetings


def _role_allowed(meeting: Row, role: Optional[str]) -> bool:
    if meeting["meeting_type"] != "restricted":
        return True
    return role in (meeting.get("allowed_roles") or [])


def register_attendee(db: DbClient, meeting_id: str, user_id: str, role: Optional[str]) -> Row:
    meeting = get_meeting(db, meeting_id)
    if meeting["status"] == "ended":
        raise ConflictError("This meeting has ended")
    if role != "admin" and not _role_allowed(meeting, role):
        raise ValidationFailed("Your role is not allowed to join this meeting")

    existing = db.select(
        "live_meeting_attendees", where={"meeting_id": meeting_id, "user_id": user_id}, limit=1
    )
    if existing:
        return existing[0]
    if meeting.get("max_attendees"):
        count = db.count("live_meeting_attendees", where={"meeting_id": meeting_id})
        if count >= meeting["max_attendees"]:
            raise ConflictError("This meeting is full")
    attendee = db.insert(
        "live_meeting_attendees", {"meeting_id": meeting_id, "user_id": user_id, "role": role}
    )
    logger.info("User %s joined meeting %s", user_id, meeting_id)
    return attendee


def list_attendees(db: DbClient, meeting_id: str) -> list[Row]:
    get_meeting(db, meeting_id)
    return db.select("live_meeting_attendees", where={"meeting_id": meeting_id}, order_by="created_at")


def meeting_stats(db: DbClient, meeting_id: str) -> dict:
    meeting = get_meeting(db, meeting_id)
    attendees = list_attendees(db, meeting_id)
    by_role: dict[str, int] = {}
    for attendee in attendees:
        key = attendee.get("role") or "unknown"
        by_role[key] = by_role.get(key, 0) + 1
    capacity = meeting.get("max_attendees")
    return {
        "meeting_id": meeting_id,
        "status": meeting["status"],
        "total_attendees": len(attendees),
        "by_role": by_role,
        "capacity": capacity,
        "spots_left": max(0, capacity - len(attendees)) if capacity else None,
        "duration_minutes": int((effective_end(meeting) - meeting["scheduled_start_time"]) // 60),
    }
