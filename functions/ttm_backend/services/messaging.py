"""
Patient threads and guest support tickets.
"""

from __future__ import annotations

import logging
from typing import Optional

from ttm_backend.db import DbClient, Row
from ttm_backend.errors import NotFoundError, ValidationFailed

logger = logging.getLogger(__name__)

RECIPIENT_TYPES = ("practitioner", "support")
GUEST_STATUSES = ("open", "resolved")


def send_message(db: DbClient, sender_id: str, values: dict) -> Row:
    if values["recipient_type"] not in RECIPIENT_TYPES:
        raise ValidationFailed("Unknown recipient type")
    if not db.get("patients", values["patient_id"]):
        raise NotFoundError("Patient not found")
    parent_id = values.get("parent_id")
    if parent_id:
        parent = db.get("patient_messages", parent_id)
        if not parent or parent["patient_id"] != values["patient_id"]:
            raise NotFoundError("Parent message not found")
    return db.insert(
        "patient_messages", {**values, "sender_id": sender_id, "is_read": False}
    )


def list_conversation(db: DbClient, patient_id: str, recipient_type: Optional[str] = None) -> list[Row]:
    where = {"patient_id": patient_id}
    if recipient_type:
        where["recipient_type"] = recipient_type
    return db.select("patient_messages", where=where, order_by="created_at")


def mark_read(db: DbClient, message_id: str) -> Row:
    message = db.update("patient_messages", message_id, {"is_read": True})
    if not message:
        raise NotFoundError("Message not found")
    return message


def unread_count(db: DbClient, user_id: str) -> int:
    """Unread messages addressed to `user_id`, ignoring ones they sent themselves."""
    return db.count(
        "patient_messages",
        where={"recipient_id": user_id, "is_read": False},
        exclude={"sender_id": user_id},
    )


def create_guest_message(db: DbClient, values: dict) -> Row:
    return db.insert(
        "guest_support_messages", {**values, "status": "open", "is_read": False}
    )


def list_guest_messages(db: DbClient, status: Optional[str] = None) -> list[Row]:
    where = {"status": status} if status else None
    return db.select("guest_support_messages", where=where, order_by="created_at", descending=True)


def update_guest_message(
    db: DbClient, message_id: str, *, status: Optional[str] = None, is_read: Optional[bool] = None
) -> Row:
    changes: dict = {}
    if status is not None:
        if status not in GUEST_STATUSES:
            raise ValidationFailed("Unknown status")
        changes["status"] = status
    if is_read is not None:
        changes["is_read"] = is_read
    message = db.update("guest_support_messages", message_id, changes)
    if not message:
        raise NotFoundError("Support message not found")
    return message
