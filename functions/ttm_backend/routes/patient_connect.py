"""
Public side of patient connection links: preview a token, then link it to the
signed-in account or a LINE profile.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ttm_backend.db import DbClient
from ttm_backend.dependencies import Actor, get_db_client
from ttm_backend.routes.common import require_user
from ttm_backend.schemas import LineConnectRequest
from ttm_backend.services import patients

router = APIRouter(prefix="/patient-connect", tags=["patients"])


@router.get("/{token}")
def verify_token(token: str, db: DbClient = Depends(get_db_client)):
    return patients.verify_connection_token(db, token)


@router.post("/{token}/account")
def connect_account(
    token: str,
    actor: Actor = Depends(require_user),
    db: DbClient = Depends(get_db_client),
):
    patient = patients.connect_patient_account(db, token, actor.user_id)
    return {"success": True, "patient_id": patient["id"]}


@router.post("/{token}/line")
def connect_line(token: str, payload: LineConnectRequest, db: DbClient = Depends(get_db_client)):
    patient = patients.connect_line_with_token(db, token, payload.line_user_id)
    return {"success": True, "patient_id": patient["id"]}
