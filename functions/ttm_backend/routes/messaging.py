"""
Patient messaging and guest support inbox routes.
"""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends

from ttm_backend.db import DbClient
from ttm_backend.dependencies import Actor, get_db_client
from ttm_backend.routes.common import require_role, require_user
from ttm_backend.schemas import GuestMessageUpdate, MessageCreate
from ttm_backend.services import messaging

router = APIRouter(tags=["messaging"])


@router.post("/messages", status_code=201)
def send_message(
    payload: MessageCreate,
    actor: Actor = Depends(require_user),
    db: DbClient = Depends(get_db_client),
):
    return messaging.send_message(db, actor.user_id, payload.model_dump())


@router.get("/messages/unread-count")
def unread_count(actor: Actor = Depends(require_user), db: DbClient = Depends(get_db_client)):
    return {"unread": messaging.unread_count(db, actor.user_id)}


@router.get("/patients/{patient_id}/messages", dependencies=[Depends(require_user)])
def list_conversation(
    patient_id: str,
    recipient_type: Optional[Literal["practitioner", "support"]] = None,
    db: DbClient = Depends(get_db_client),
):
    return messaging.list_conversation(db, patient_id, recipient_type)


@router.post("/messages/{message_id}/read", dependencies=[Depends(require_user)])
def mark_read(message_id: str, db: DbClient = Depends(get_db_client)):
    return messaging.mark_read(db, message_id)


@router.get("/support/guest-messages", dependencies=[Depends(require_role("admin"))])
def list_guest_messages(
    status: Optional[Literal["open", "resolved"]] = None,
    db: DbClient = Depends(get_db_client),
):
    return messaging.list_guest_messages(db, status)


@router.patch("/support/guest-messages/{message_id}", dependencies=[Depends(require_role("admin"))])
def update_guest_message(
    message_id: str, payload: GuestMessageUpdate, db: DbClient = Depends(get_db_client)
):
    return messaging.update_guest_message(
        db, message_id, status=payload.status, is_read=payload.is_read
    )
