"""
Live meeting routes: scheduling, listing by status and attendee registration.
"""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends

from ttm_backend.db import DbClient
from ttm_backend.dependencies import Actor, get_actor, get_db_client
from ttm_backend.routes.common import require_role, require_user
from ttm_backend.schemas import MeetingCreate, MeetingUpdate
from ttm_backend.services import live_meetings

router = APIRouter(prefix="/meetings", tags=["meetings"])


@router.get("")
def list_meetings(
    status: Optional[Literal["upcoming", "live", "ended"]] = None,
    actor: Actor = Depends(get_actor),
    db: DbClient = Depends(get_db_client),
):
    return live_meetings.list_meetings(
        db, published_only=not actor.is_admin, role=actor.role, status=status
    )


@router.post("", status_code=201)
def create_meeting(
    payload: MeetingCreate,
    actor: Actor = Depends(require_role("admin")),
    db: DbClient = Depends(get_db_client),
):
    return live_meetings.create_meeting(db, actor.user_id, payload.model_dump())


@router.get("/{meeting_id}")
def get_meeting(meeting_id: str, db: DbClient = Depends(get_db_client)):
    return live_meetings.get_meeting(db, meeting_id)


@router.patch("/{meeting_id}", dependencies=[Depends(require_role("admin"))])
def update_meeting(meeting_id: str, payload: MeetingUpdate, db: DbClient = Depends(get_db_client)):
    return live_meetings.update_meeting(db, meeting_id, payload.model_dump(exclude_unset=True))


@router.delete("/{meeting_id}", status_code=204, dependencies=[Depends(require_role("admin"))])
def delete_meeting(meeting_id: str, db: DbClient = Depends(get_db_client)):
    live_meetings.delete_meeting(db, meeting_id)


@router.post("/{meeting_id}/register", status_code=201)
def register(meeting_id: str, actor: Actor = Depends(require_user), db: DbClient = Depends(get_db_client)):
    attendee = live_meetings.register_attendee(db, meeting_id, actor.user_id, actor.role)
    meeting = live_meetings.get_meeting(db, meeting_id)
    return {"attendee": attendee, "stream_url": meeting["stream_url"]}


@router.get("/{meeting_id}/attendees", dependencies=[Depends(require_role("admin"))])
def list_attendees(meeting_id: str, db: DbClient = Depends(get_db_client)):
    return live_meetings.list_attendees(db, meeting_id)


@router.get("/{meeting_id}/stats", dependencies=[Depends(require_role("admin"))])
def meeting_stats(meeting_id: str, db: DbClient = Depends(get_db_client)):
    return live_meetings.meeting_stats(db, meeting_id)
