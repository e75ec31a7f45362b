"""
Worker loop that delivers queued notification jobs (email and LINE) and runs
the periodic medication adherence scans.

Jobs are rows in ``notification_jobs``; the queue only carries job ids, so a
job whose id was lost from the queue is still picked up by the database
fallback.
"""

from __future__ import annotations

import logging
import time
from datetime import date, datetime, timedelta
from typing import Optional

from ttm_backend import templates
from ttm_backend.config import Settings, get_settings
from ttm_backend.db import DbClient, Row
from ttm_backend.dependencies import (
    get_db_client,
    get_email_sender,
    get_line_messenger,
    get_queue_client,
)
from ttm_backend.errors import NotFoundError, ValidationFailed
from ttm_backend.jobs import JobKind, JobStatus
from ttm_backend.logs import configure_logging
from ttm_backend.notifications import EmailSender, LineMessenger
from ttm_backend.queue import JobQueue
from ttm_backend.services import adherence, orders, recommendations

logger = logging.getLogger(__name__)

STALE_LOCK_SECONDS = 900
ADHERENCE_SCAN_SECONDS = 60


def _require(db: DbClient, table: str, row_id: Optional[str], label: str) -> Row:
    row = db.get(table, row_id) if row_id else None
    if not row:
        raise NotFoundError(f"{label} not found")
    return row


def _send_contact_notification(job: Row, db: DbClient, email: EmailSender) -> None:
    settings = get_settings()
    if not settings.admin_email:
        raise ValidationFailed("ADMIN_EMAIL is not configured")
    submission = _require(db, "contact_submissions", job["payload"].get("submission_id"), "Submission")
    subject, html = templates.contact_notification_email(submission)
    email.send(
        to=[settings.admin_email],
        subject=subject,
        html=html,
        reply_to=submission["email"],
    )


def _send_order_status_update(
    job: Row, db: DbClient, email: EmailSender, line: LineMessenger
) -> None:
    order = _require(db, "orders", job["payload"].get("order_id"), "Order")
    patient = _require(db, "patients", order["patient_id"], "Patient")
    status_text = orders.status_display_name(order["status"])

    delivered = False
    if patient.get("email"):
        subject, html = templates.order_status_email(order, patient, status_text)
        email.send(to=[patient["email"]], subject=subject, html=html)
        delivered = True
    if patient.get("line_user_id"):
        text = templates.order_status_line_text(order, status_text)
        line.push(patient["line_user_id"], [{"type": "text", "text": text}])
        delivered = True
    if not delivered:
        logger.info("Order %s: patient has no email or LINE account", order["id"])


def _recommendation_context(job: Row, db: DbClient) -> tuple[dict, Row, Row, list[Row]]:
    payload = job["payload"]
    recommendation = _require(db, "recommendations", payload.get("recommendation_id"), "Recommendation")
    patient = _require(db, "patients", recommendation["patient_id"], "Patient")
    items = recommendations.list_items(db, recommendation["id"])
    return payload, recommendation, patient, items


def _send_recommendation_email(job: Row, db: DbClient, email: EmailSender) -> None:
    payload, recommendation, patient, items = _recommendation_context(job, db)
    if not patient.get("email"):
        raise ValidationFailed("Patient email not found")
    subject, html = templates.recommendation_email(
        recommendation,
        patient,
        payload["practitioner_name"],
        items,
        payload["checkout_url"],
        payload.get("optional_message") or "",
    )
    email.send(to=[patient["email"]], subject=subject, html=html)


def _send_recommendation_line(job: Row, db: DbClient, line: LineMessenger) -> None:
    payload, recommendation, patient, items = _recommendation_context(job, db)
    if not patient.get("line_user_id"):
        raise ValidationFailed("Patient LINE user ID not found")
    text = templates.recommendation_line_text(
        recommendation,
        payload["practitioner_name"],
        items,
        payload["checkout_url"],
        payload.get("optional_message") or "",
    )
    line.push(patient["line_user_id"], [{"type": "text", "text": text}])


def _deliver_to_patient(
    patient: Row,
    methods: list[str],
    email: EmailSender,
    line: LineMessenger,
    message: tuple[str, str],
    text: str,
) -> None:
    delivered = False
    if "email" in methods and patient.get("email"):
        subject, html = message
        email.send(to=[patient["email"]], subject=subject, html=html)
        delivered = True
    if "line" in methods and patient.get("line_user_id"):
        line.push(patient["line_user_id"], [{"type": "text", "text": text}])
        delivered = True
    if not delivered:
        raise ValidationFailed("Patient has no email or LINE account for the chosen reminder methods")


def _send_medication_reminder(
    job: Row, db: DbClient, email: EmailSender, line: LineMessenger
) -> None:
    payload = job["payload"]
    schedule = _require(db, "treatment_schedules", payload.get("schedule_id"), "Treatment schedule")
    checked_in = db.count(
        "patient_check_ins",
        where={"treatment_schedule_id": schedule["id"], "check_in_date": payload["dose_date"]},
    )
    if checked_in or not schedule["is_active"]:
        logger.info("[%s] Reminder no longer needed for schedule %s", job["id"], schedule["id"])
        return
    patient = _require(db, "patients", schedule["patient_id"], "Patient")
    time_of_dose = payload["scheduled_time"]
    _deliver_to_patient(
        patient,
        payload.get("methods") or [],
        email,
        line,
        templates.medication_reminder_email(schedule, patient, time_of_dose),
        templates.medication_reminder_line_text(schedule, time_of_dose),
    )


def _send_missed_dose(job: Row, db: DbClient, email: EmailSender, line: LineMessenger) -> None:
    payload = job["payload"]
    schedule = _require(db, "treatment_schedules", payload.get("schedule_id"), "Treatment schedule")
    patient = _require(db, "patients", schedule["patient_id"], "Patient")
    day = payload["check_in_date"]
    _deliver_to_patient(
        patient,
        payload.get("methods") or [],
        email,
        line,
        templates.missed_dose_email(schedule, patient, day),
        templates.missed_dose_line_text(schedule, day),
    )


def process_job(
    job: Row,
    db: DbClient,
    email: Optional[EmailSender] = None,
    line: Optional[LineMessenger] = None,
) -> None:
    """
    Deliver a single claimed job and record the outcome on its row.

    Failures are logged and stored in ``last_error``; they never propagate to
    the loop.
    """
    email = email or get_email_sender()
    line = line or get_line_messenger()
    try:
        kind = JobKind(job["kind"])
        if kind is JobKind.CONTACT_NOTIFICATION:
            _send_contact_notification(job, db, email)
        elif kind is JobKind.ORDER_STATUS_UPDATE:
            _send_order_status_update(job, db, email, line)
        elif kind is JobKind.RECOMMENDATION_EMAIL:
            _send_recommendation_email(job, db, email)
        elif kind is JobKind.RECOMMENDATION_LINE:
            _send_recommendation_line(job, db, line)
        elif kind is JobKind.MEDICATION_REMINDER:
            _send_medication_reminder(job, db, email, line)
        elif kind is JobKind.MISSED_DOSE:
            _send_missed_dose(job, db, email, line)
    except Exception as exc:
        logger.exception("[%s] %s job failed", job["id"], job["kind"])
        db.update(
            "notification_jobs",
            job["id"],
            {"status": JobStatus.ERROR.value, "last_error": str(exc), "locked_at": None},
        )
        return

    db.update(
        "notification_jobs",
        job["id"],
        {"status": JobStatus.SUCCESS.value, "last_error": None, "locked_at": None},
    )
    logger.info("[%s] %s job delivered", job["id"], job["kind"])


def _claim(db: DbClient, job: Row) -> Optional[Row]:
    """Flip one WAITING job to SENDING; None when another worker got there first."""
    claimed = db.update_where(
        "notification_jobs",
        {"id": job["id"], "status": JobStatus.WAITING.value},
        {
            "status": JobStatus.SENDING.value,
            "locked_at": time.time(),
            "attempts": (job["attempts"] or 0) + 1,
        },
    )
    return db.get("notification_jobs", job["id"]) if claimed else None


def process_next(
    *,
    db: Optional[DbClient] = None,
    queue: Optional[JobQueue] = None,
    email: Optional[EmailSender] = None,
    line: Optional[LineMessenger] = None,
    block: bool = True,
    timeout: Optional[int] = None,
) -> bool:
    """
    Fetch and process one job from the queue (or DB fallback). Returns True if processed.
    """
    db = db or get_db_client()
    queue = queue or get_queue_client()

    job_id = queue.dequeue(block=block, timeout=timeout) if queue else None
    job: Optional[Row] = None

    if job_id:
        record = db.get("notification_jobs", job_id)
        if not record:
            logger.warning("Received job_id %s from queue but no DB record found", job_id)
            return False
        job = _claim(db, record)
        if not job:
            logger.debug("Job %s already claimed", job_id)
            return False
    else:
        # Fallback for WAITING jobs that never reached the queue.
        job = db.claim_next_waiting_job()
        if not job:
            return False

    process_job(job, db, email, line)
    return True


def run_adherence_scans(
    db: DbClient,
    queue: Optional[JobQueue],
    settings: Settings,
    now: Optional[datetime] = None,
    last_missed_day: Optional[date] = None,
) -> date:
    """
    Queue due medication reminders and, once per clinic day, record
    yesterday's missed doses. Returns the day whose misses are recorded.
    """
    local = adherence.clinic_now(settings, now)
    adherence.queue_due_reminders(db, queue, settings, local)
    yesterday = local.date() - timedelta(days=1)
    if last_missed_day != yesterday:
        adherence.mark_missed_doses(db, queue, yesterday)
    return yesterday


def run_loop(poll_interval_seconds: float = 2.0) -> None:
    """
    Simple polling loop that blocks on the queue. Intended to be run under systemd/supervisor.
    """
    settings = get_settings()
    configure_logging(settings)
    db = get_db_client()
    queue = get_queue_client()
    last_scan = 0.0
    missed_day: Optional[date] = None
    while True:
        if time.time() - last_scan >= ADHERENCE_SCAN_SECONDS:
            try:
                missed_day = run_adherence_scans(db, queue, settings, last_missed_day=missed_day)
            except Exception:
                logger.exception("Adherence scan failed")
            last_scan = time.time()
        try:
            requeued = db.requeue_stale_jobs(lock_timeout_seconds=STALE_LOCK_SECONDS)
            if requeued:
                logger.info("Requeued %d stale jobs (queue depth %d)", requeued, queue.depth())
        except Exception:
            logger.exception("Failed to requeue stale jobs")
        processed = process_next(db=db, queue=queue, block=True, timeout=int(poll_interval_seconds))
        if not processed:
            time.sleep(poll_interval_seconds)


if __name__ == "__main__":
    run_loop()
