"""
Public contact form with per-email and per-IP rate limiting.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from ttm_backend.config import Settings
from ttm_backend.db import DbClient, Row
from ttm_backend.errors import NotFoundError, RateLimitedError, ValidationFailed
from ttm_backend.jobs import JobKind, enqueue_job
from ttm_backend.queue import JobQueue
from ttm_backend.sanitize import is_valid_email, validate_input

logger = logging.getLogger(__name__)

FIELD_LIMITS = {"name": 200, "email": 255, "subject": 200, "message": 5000}
RATE_LIMIT_MESSAGE = "Too many submissions. Please try again later."


def submit(
    db: DbClient,
    queue: Optional[JobQueue],
    settings: Settings,
    form: dict,
    *,
    ip_address: str = "unknown",
    user_agent: str = "unknown",
    now: Optional[float] = None,
) -> Row:
    """
    Stores a contact submission and queues the admin notification.

    Raises:
        ValidationFailed: A field is missing after trimming, or the email is malformed.
        RateLimitedError: The email or IP already submitted the maximum number
            of times within the window.
    """
    values = {key: validate_input(form.get(key), limit) for key, limit in FIELD_LIMITS.items()}
    if not all(values.values()):
        raise ValidationFailed("All fields are required")
    values["email"] = values["email"].lower()
    if not is_valid_email(values["email"]):
        raise ValidationFailed("Invalid email address")

    now = time.time() if now is None else now
    since = now - settings.contact_rate_limit_window_seconds
    recent = db.count_recent_contact_submissions(values["email"], ip_address, since)
    if recent >= settings.contact_rate_limit_max:
        logger.warning("Contact rate limit hit for %s / %s", values["email"], ip_address)
        raise RateLimitedError(RATE_LIMIT_MESSAGE)

    submission = db.insert(
        "contact_submissions",
        {
            **values,
            "ip_address": ip_address,
            "user_agent": user_agent,
            "status": "new",
            "is_read": False,
            "created_at": now,
            "updated_at": now,
        },
    )
    try:
        enqueue_job(db, queue, JobKind.CONTACT_NOTIFICATION, {"submission_id": submission["id"]})
    except Exception:
        logger.exception("Failed to queue notification for submission %s", submission["id"])
    return submission


def list_submissions(db: DbClient, unread_only: bool = False) -> list[Row]:
    where = {"is_read": False} if unread_only else None
    return db.select("contact_submissions", where=where, order_by="created_at", descending=True)


def mark_read(db: DbClient, submission_id: str) -> Row:
    submission = db.update("contact_submissions", submission_id, {"is_read": True, "status": "read"})
    if not submission:
        raise NotFoundError("Submission not found")
    return submission
