"""
Medication adherence routes: treatment schedules, check-ins, reminder
preferences and the admin triggers for the reminder and missed-dose scans.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends

from ttm_backend.config import get_settings
from ttm_backend.db import DbClient
from ttm_backend.dependencies import Actor, get_db_client, get_queue_client
from ttm_backend.queue import JobQueue
from ttm_backend.routes.common import require_role
from ttm_backend.schemas import (
    CheckInCreate,
    MissedDoseScanRequest,
    ReminderSettingsUpdate,
    TreatmentScheduleCreate,
    TreatmentScheduleUpdate,
)
from ttm_backend.services import adherence

router = APIRouter(prefix="/adherence", tags=["adherence"])

patient_access = [Depends(require_role("patient", "practitioner"))]


def _today():
    return adherence.clinic_now(get_settings()).date()


@router.post("/schedules", status_code=201)
def create_schedule(
    payload: TreatmentScheduleCreate,
    actor: Actor = Depends(require_role("practitioner")),
    db: DbClient = Depends(get_db_client),
):
    values = payload.model_dump(exclude={"patient_id"})
    return adherence.create_schedule(db, payload.patient_id, values, created_by=actor.user_id)


@router.patch("/schedules/{schedule_id}", dependencies=[Depends(require_role("practitioner"))])
def update_schedule(
    schedule_id: str, payload: TreatmentScheduleUpdate, db: DbClient = Depends(get_db_client)
):
    return adherence.update_schedule(db, schedule_id, payload.model_dump(exclude_unset=True))


@router.get("/patients/{patient_id}/schedules", dependencies=patient_access)
def list_schedules(
    patient_id: str, active_only: bool = False, db: DbClient = Depends(get_db_client)
):
    return adherence.list_schedules(db, patient_id, active_only)


@router.post("/check-ins", status_code=201, dependencies=patient_access)
def check_in(payload: CheckInCreate, db: DbClient = Depends(get_db_client)):
    values = payload.model_dump(exclude={"patient_id"}, exclude_none=True)
    return adherence.record_check_in(db, payload.patient_id, values, _today())


@router.get("/patients/{patient_id}/check-ins", dependencies=patient_access)
def list_check_ins(
    patient_id: str,
    start: Optional[str] = None,
    end: Optional[str] = None,
    db: DbClient = Depends(get_db_client),
):
    return adherence.list_check_ins(db, patient_id, start, end)


@router.get("/patients/{patient_id}/summary", dependencies=patient_access)
def summary(patient_id: str, days: Optional[int] = None, db: DbClient = Depends(get_db_client)):
    today = _today()
    start = (today - timedelta(days=days - 1)).isoformat() if days else None
    check_ins = adherence.list_check_ins(db, patient_id, start=start)
    return adherence.adherence_summary(check_ins, today)


@router.get("/patients/{patient_id}/reminder-settings", dependencies=patient_access)
def get_reminder_settings(patient_id: str, db: DbClient = Depends(get_db_client)):
    return adherence.get_reminder_settings(db, patient_id)


@router.put("/patients/{patient_id}/reminder-settings", dependencies=patient_access)
def save_reminder_settings(
    patient_id: str, payload: ReminderSettingsUpdate, db: DbClient = Depends(get_db_client)
):
    return adherence.save_reminder_settings(
        db, patient_id, payload.model_dump(exclude_none=True)
    )


@router.post("/reminders/run", dependencies=[Depends(require_role("admin"))])
def run_reminders(
    db: DbClient = Depends(get_db_client),
    queue: JobQueue = Depends(get_queue_client),
):
    return {"queued": adherence.queue_due_reminders(db, queue, get_settings())}


@router.post("/missed-doses/run", dependencies=[Depends(require_role("admin"))])
def run_missed_doses(
    payload: Optional[MissedDoseScanRequest] = None,
    db: DbClient = Depends(get_db_client),
    queue: JobQueue = Depends(get_queue_client),
):
    day = _today() - timedelta(days=1)
    if payload and payload.day:
        day = adherence.parse_day(payload.day)
    return {"date": day.isoformat(), "missed_count": adherence.mark_missed_doses(db, queue, day)}
