"""
Public contact form and the admin inbox behind it.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ttm_backend.config import get_settings
from ttm_backend.db import DbClient
from ttm_backend.dependencies import get_db_client, get_queue_client
from ttm_backend.queue import JobQueue
from ttm_backend.routes.common import client_ip, require_role
from ttm_backend.schemas import ContactRequest, ContactResponse
from ttm_backend.services import contact

router = APIRouter(tags=["contact"])


@router.post("/contact", response_model=ContactResponse)
def submit_contact(
    payload: ContactRequest,
    request: Request,
    db: DbClient = Depends(get_db_client),
    queue: JobQueue = Depends(get_queue_client),
):
    submission = contact.submit(
        db,
        queue,
        get_settings(),
        payload.model_dump(),
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent", "unknown"),
    )
    return ContactResponse(
        message="Your message has been sent successfully. We'll get back to you soon!",
        id=submission["id"],
    )


@router.get("/contact/submissions", dependencies=[Depends(require_role("admin"))])
def list_submissions(unread_only: bool = False, db: DbClient = Depends(get_db_client)):
    return contact.list_submissions(db, unread_only)


@router.post("/contact/submissions/{submission_id}/read", dependencies=[Depends(require_role("admin"))])
def mark_read(submission_id: str, db: DbClient = Depends(get_db_client)):
    return contact.mark_read(db, submission_id)
