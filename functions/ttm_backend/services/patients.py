"""
Patient records kept by practitioners, and the single-use links that connect
a record to the patient's own account or LINE profile.
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import Optional

from ttm_backend.config import Settings
from ttm_backend.db import DbClient, Row
from ttm_backend.errors import ConflictError, NotFoundError, PermissionDenied, ValidationFailed
from ttm_backend.sanitize import validate_url

logger = logging.getLogger(__name__)

CONNECTION_PATHS = {"account_signup": "signup", "line_connect": "line"}


def create_patient(db: DbClient, practitioner_id: Optional[str], values: dict) -> Row:
    return db.insert("patients", {**values, "practitioner_id": practitioner_id})


def get_patient(db: DbClient, patient_id: str) -> Row:
    patient = db.get("patients", patient_id)
    if not patient:
        raise NotFoundError("Patient not found")
    return patient


def find_patient_for_user(db: DbClient, user_id: Optional[str]) -> Optional[Row]:
    if not user_id:
        return None
    rows = db.select("patients", where={"user_id": user_id}, limit=1)
    return rows[0] if rows else None


def list_patients(db: DbClient, practitioner_id: Optional[str] = None) -> list[Row]:
    where = {"practitioner_id": practitioner_id} if practitioner_id else None
    return db.select("patients", where=where, order_by="full_name")


def update_patient(db: DbClient, patient_id: str, changes: dict) -> Row:
    get_patient(db, patient_id)
    return db.update("patients", patient_id, changes)


def connect_line_account(db: DbClient, patient_id: str, line_user_id: str) -> Row:
    patient = update_patient(db, patient_id, {"line_user_id": line_user_id.strip()})
    logger.info("Connected LINE account for patient %s", patient_id)
    return patient


def save_shipping_defaults(db: DbClient, patient_id: str, shipping: dict) -> None:
    db.update(
        "patients",
        patient_id,
        {
            "default_shipping_address": shipping.get("shipping_address"),
            "default_shipping_city": shipping.get("shipping_city"),
            "default_shipping_postal_code": shipping.get("shipping_postal_code"),
            "default_shipping_phone": shipping.get("shipping_phone"),
        },
    )


def generate_connection_link(
    db: DbClient,
    settings: Settings,
    patient_id: str,
    connection_type: str,
    created_by: Optional[str] = None,
    practitioner_id: Optional[str] = None,
) -> Row:
    """
    Issue a single-use token inviting a patient to sign up or to link LINE.

    When `practitioner_id` is given the patient must belong to that
    practitioner; pass None for admins. Signup links last a week, LINE links a
    day (both configurable).
    """
    if connection_type not in CONNECTION_PATHS:
        raise ValidationFailed("Invalid connection type")
    patient = get_patient(db, patient_id)
    if practitioner_id is not None and patient["practitioner_id"] != practitioner_id:
        raise PermissionDenied("Not authorized to create links for this patient")

    ttl_hours = (
        settings.account_signup_link_ttl_hours
        if connection_type == "account_signup"
        else settings.line_connect_link_ttl_hours
    )
    token = secrets.token_urlsafe(32)
    base = settings.app_base_url.rstrip("/")
    connection_url = validate_url(
        f"{base}/patient-connect/{CONNECTION_PATHS[connection_type]}/{token}",
        settings.trusted_link_domains,
    )
    link = db.insert(
        "patient_connection_links",
        {
            "patient_id": patient_id,
            "token": token,
            "connection_type": connection_type,
            "expires_at": time.time() + ttl_hours * 3600,
            "created_by": created_by,
        },
    )
    logger.info("Created %s link for patient %s", connection_type, patient_id)
    return {**link, "connection_url": connection_url}


def _usable_connection_link(
    db: DbClient, token: str, now: Optional[float] = None
) -> tuple[Row, Row]:
    now = now or time.time()
    rows = db.select("patient_connection_links", where={"token": token}, limit=1)
    if not rows:
        raise NotFoundError("Invalid connection link")
    link = rows[0]
    if link["expires_at"] <= now:
        raise ValidationFailed("Token has expired")
    if link["used_at"] is not None:
        raise ValidationFailed("Token has already been used")
    patient = get_patient(db, link["patient_id"])
    if link["connection_type"] == "account_signup" and patient.get("user_id"):
        raise ValidationFailed("Patient account already connected")
    if link["connection_type"] == "line_connect" and patient.get("line_user_id"):
        raise ValidationFailed("LINE account already connected")
    return link, patient


def verify_connection_token(db: DbClient, token: str, now: Optional[float] = None) -> dict:
    """Public preview of a connection link: who it is for and what it connects."""
    link, patient = _usable_connection_link(db, token, now)
    return {
        "valid": True,
        "connection_type": link["connection_type"],
        "patient": {
            "id": patient["id"],
            "full_name": patient["full_name"],
            "email": patient.get("email"),
            "phone": patient.get("phone"),
        },
    }


def _consume(db: DbClient, link: Row) -> None:
    consumed = db.update_where(
        "patient_connection_links",
        {"id": link["id"], "used_at": None},
        {"used_at": time.time()},
    )
    if not consumed:
        raise ConflictError("Token has already been used")


def connect_patient_account(db: DbClient, token: str, user_id: str) -> Row:
    link, patient = _usable_connection_link(db, token)
    if link["connection_type"] != "account_signup":
        raise ValidationFailed("Invalid token type for account connection")
    if find_patient_for_user(db, user_id):
        raise ConflictError("This account is already linked to a patient record")
    _consume(db, link)
    connected = db.update("patients", patient["id"], {"user_id": user_id})
    logger.info("Connected user %s to patient %s", user_id, patient["id"])
    return connected


def connect_line_with_token(db: DbClient, token: str, line_user_id: str) -> Row:
    link, patient = _usable_connection_link(db, token)
    if link["connection_type"] != "line_connect":
        raise ValidationFailed("Invalid token type for LINE connection")
    _consume(db, link)
    return connect_line_account(db, patient["id"], line_user_id)
