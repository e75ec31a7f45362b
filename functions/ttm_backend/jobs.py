"""
Notification job kinds, lifecycle states and the enqueue helper.
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ttm_backend.db import DbClient, Row
    from ttm_backend.queue import JobQueue

logger = logging.getLogger(__name__)


class JobStatus(StrEnum):
    WAITING = "WAITING"
    SENDING = "SENDING"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


class JobKind(StrEnum):
    CONTACT_NOTIFICATION = "contact_notification"
    ORDER_STATUS_UPDATE = "order_status_update"
    RECOMMENDATION_EMAIL = "recommendation_email"
    RECOMMENDATION_LINE = "recommendation_line"
    MEDICATION_REMINDER = "medication_reminder"
    MISSED_DOSE = "missed_dose"


def enqueue_job(
    db: DbClient, queue: Optional[JobQueue], kind: JobKind, payload: dict
) -> Row:
    """
    Persist a WAITING job row and push its id onto the queue.

    A queue failure leaves the row WAITING; the worker's database fallback
    picks it up on a later poll.
    """
    job = db.insert(
        "notification_jobs",
        {
            "kind": kind.value,
            "payload": payload,
            "status": JobStatus.WAITING.value,
            "attempts": 0,
        },
    )
    if queue is not None:
        try:
            queue.enqueue(job["id"])
        except Exception:
            logger.exception("Failed to enqueue job %s (%s)", job["id"], kind)
    return job
