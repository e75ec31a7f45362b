"""
Patient record routes (practitioner-facing), including connection links.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ttm_backend.config import get_settings
from ttm_backend.db import DbClient
from ttm_backend.dependencies import Actor, get_db_client
from ttm_backend.routes.common import require_role
from ttm_backend.schemas import (
    ConnectionLinkRequest,
    LineConnectRequest,
    PatientCreate,
    PatientUpdate,
)
from ttm_backend.services import patients

router = APIRouter(prefix="/patients", tags=["patients"])


@router.get("")
def list_patients(
    actor: Actor = Depends(require_role("practitioner")),
    db: DbClient = Depends(get_db_client),
):
    return patients.list_patients(db, None if actor.is_admin else actor.user_id)


@router.post("", status_code=201)
def create_patient(
    payload: PatientCreate,
    actor: Actor = Depends(require_role("practitioner")),
    db: DbClient = Depends(get_db_client),
):
    return patients.create_patient(db, actor.user_id, payload.model_dump())


@router.get("/{patient_id}", dependencies=[Depends(require_role("practitioner", "patient"))])
def get_patient(patient_id: str, db: DbClient = Depends(get_db_client)):
    return patients.get_patient(db, patient_id)


@router.patch("/{patient_id}", dependencies=[Depends(require_role("practitioner"))])
def update_patient(patient_id: str, payload: PatientUpdate, db: DbClient = Depends(get_db_client)):
    return patients.update_patient(db, patient_id, payload.model_dump(exclude_unset=True))


@router.post("/{patient_id}/line", dependencies=[Depends(require_role("practitioner", "patient"))])
def connect_line(patient_id: str, payload: LineConnectRequest, db: DbClient = Depends(get_db_client)):
    return patients.connect_line_account(db, patient_id, payload.line_user_id)


@router.post("/{patient_id}/connection-links", status_code=201)
def generate_connection_link(
    patient_id: str,
    payload: ConnectionLinkRequest,
    actor: Actor = Depends(require_role("practitioner")),
    db: DbClient = Depends(get_db_client),
):
    link = patients.generate_connection_link(
        db,
        get_settings(),
        patient_id,
        payload.connection_type,
        created_by=actor.user_id,
        practitioner_id=None if actor.is_admin else actor.user_id,
    )
    return {
        "token": link["token"],
        "connection_type": link["connection_type"],
        "connection_url": link["connection_url"],
        "expires_at": link["expires_at"],
    }
