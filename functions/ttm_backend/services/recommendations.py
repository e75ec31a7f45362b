"""
Practitioner recommendations, their line items and single-use checkout links.
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import Iterable, Optional

from ttm_backend.config import Settings
from ttm_backend.db import DbClient, Row, rows_by_id
from ttm_backend.errors import ConflictError, NotFoundError, ValidationFailed
from ttm_backend.jobs import JobKind, enqueue_job
from ttm_backend.queue import JobQueue
from ttm_backend.sanitize import validate_input, validate_url

logger = logging.getLogger(__name__)

STATUS_TRANSITIONS = {
    "draft": {"sent", "cancelled"},
    "sent": {"sent", "completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}

MAX_OPTIONAL_MESSAGE_LENGTH = 1000


def line_total(item: Row) -> float:
    return item["unit_price"] * item["quantity"]


def create_recommendation(
    db: DbClient, practitioner_id: str, values: dict, items: list[dict]
) -> Row:
    if not items:
        raise ValidationFailed("A recommendation needs at least one item")
    herbs = rows_by_id(db.select("herbs", where={"id": [i["herb_id"] for i in items]}))
    missing = [i["herb_id"] for i in items if i["herb_id"] not in herbs]
    if missing:
        raise NotFoundError(f"Herb not found: {missing[0]}")
    if not db.get("patients", values["patient_id"]):
        raise NotFoundError("Patient not found")

    total = round(sum(line_total(item) for item in items), 2)
    recommendation = db.insert(
        "recommendations",
        {
            **values,
            "practitioner_id": practitioner_id,
            "status": "draft",
            "total_cost": total,
        },
    )
    for item in items:
        db.insert("recommendation_items", {**item, "recommendation_id": recommendation["id"]})
    logger.info(
        "Created recommendation %s with %d items (total %.2f)",
        recommendation["id"],
        len(items),
        total,
    )
    return recommendation


def get_recommendation(db: DbClient, recommendation_id: str) -> Row:
    recommendation = db.get("recommendations", recommendation_id)
    if not recommendation:
        raise NotFoundError("Recommendation not found")
    return recommendation


def list_items(db: DbClient, recommendation_id: str) -> list[Row]:
    """Line items joined with the herb fields needed for display and checkout."""
    items = db.select(
        "recommendation_items",
        where={"recommendation_id": recommendation_id},
        order_by="created_at",
    )
    herbs = rows_by_id(db.select("herbs", where={"id": [i["herb_id"] for i in items]}))
    for item in items:
        herb = herbs.get(item["herb_id"]) or {}
        item["herb_name"] = herb.get("name")
        item["thai_name"] = herb.get("thai_name")
        item["stock_quantity"] = herb.get("stock_quantity")
        item["commission_rate"] = herb.get("commission_rate")
    return items


def list_recommendations(
    db: DbClient,
    *,
    practitioner_id: Optional[str] = None,
    patient_id: Optional[str] = None,
) -> list[Row]:
    where = {}
    if practitioner_id:
        where["practitioner_id"] = practitioner_id
    if patient_id:
        where["patient_id"] = patient_id
    return db.select("recommendations", where=where, order_by="created_at", descending=True)


def set_status(db: DbClient, recommendation_id: str, status: str) -> Row:
    recommendation = get_recommendation(db, recommendation_id)
    allowed = STATUS_TRANSITIONS.get(recommendation["status"], set())
    if status not in allowed:
        raise ConflictError(
            f"Cannot change recommendation from {recommendation['status']} to {status}"
        )
    return db.update("recommendations", recommendation_id, {"status": status})


def generate_checkout_link(db: DbClient, settings: Settings, recommendation_id: str) -> Row:
    recommendation = get_recommendation(db, recommendation_id)
    if recommendation["status"] in ("completed", "cancelled"):
        raise ConflictError(f"Recommendation is {recommendation['status']}")
    expires_at = time.time() + settings.checkout_link_ttl_hours * 3600
    return db.insert(
        "recommendation_links",
        {
            "recommendation_id": recommendation_id,
            "token": secrets.token_urlsafe(32),
            "expires_at": expires_at,
        },
    )


def resolve_link(db: DbClient, token: str, now: Optional[float] = None) -> Row:
    """Return the link row for a usable token, raising a distinct error otherwise."""
    now = now or time.time()
    rows = db.select("recommendation_links", where={"token": token}, limit=1)
    if not rows:
        raise NotFoundError("Invalid checkout link")
    link = rows[0]
    if link["used_at"] is not None:
        raise ConflictError("This checkout link has already been used")
    if link["expires_at"] <= now:
        raise ValidationFailed("This checkout link has expired")
    return link


def send_recommendation(
    db: DbClient,
    queue: JobQueue,
    settings: Settings,
    recommendation_id: str,
    *,
    checkout_url: str,
    channels: Iterable[str] = ("email",),
    optional_message: Optional[str] = None,
    practitioner_name: Optional[str] = None,
) -> Row:
    recommendation = get_recommendation(db, recommendation_id)
    if recommendation["status"] not in ("draft", "sent"):
        raise ConflictError(f"Recommendation is {recommendation['status']}")
    checkout_url = validate_url(checkout_url, settings.trusted_link_domains)
    patient = db.get("patients", recommendation["patient_id"]) or {}

    channels = set(channels)
    if not channels or not channels <= {"email", "line"}:
        raise ValidationFailed("Channels must be email and/or line")
    if "email" in channels and not patient.get("email"):
        raise ValidationFailed("Patient email not found")
    if "line" in channels and not patient.get("line_user_id"):
        raise ValidationFailed("Patient LINE user ID not found")

    payload = {
        "recommendation_id": recommendation_id,
        "checkout_url": checkout_url,
        "optional_message": validate_input(optional_message, MAX_OPTIONAL_MESSAGE_LENGTH),
        "practitioner_name": practitioner_name or "Your practitioner",
    }
    if "email" in channels:
        enqueue_job(db, queue, JobKind.RECOMMENDATION_EMAIL, payload)
    if "line" in channels:
        enqueue_job(db, queue, JobKind.RECOMMENDATION_LINE, payload)
    return db.update("recommendations", recommendation_id, {"status": "sent"})
