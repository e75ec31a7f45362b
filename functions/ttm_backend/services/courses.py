"""
Course builder and learner progress.

Sections within a course, and lessons within a section, carry a
``display_order`` that is always persisted as a compact 0..n-1 sequence after
any builder operation.
"""

from __future__ import annotations

import logging
import math
import secrets
import time
from typing import Optional

from ttm_backend.db import DbClient, Row
from ttm_backend.errors import ConflictError, NotFoundError, ValidationFailed
from ttm_backend.services import exports
from ttm_backend.storage import StorageClient

logger = logging.getLogger(__name__)

CERTIFICATE_URL_TTL_SECONDS = 3600


def format_duration(seconds: Optional[int]) -> str:
    if not seconds:
        return "—"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}:{secs:02d}"


def array_move(items: list, old_index: int, new_index: int) -> list:
    moved = list(items)
    new_index = max(0, min(new_index, len(moved) - 1))
    moved.insert(new_index, moved.pop(old_index))
    return moved


# Courses


def create_course(db: DbClient, values: dict, instructor_id: Optional[str] = None) -> Row:
    return db.insert("courses", {**values, "instructor_id": instructor_id})


def get_course(db: DbClient, course_id: str) -> Row:
    course = db.get("courses", course_id)
    if not course:
        raise NotFoundError("Course not found")
    return course


def list_courses(
    db: DbClient, *, published_only: bool = False, audience: Optional[str] = None
) -> list[Row]:
    where: dict = {}
    if published_only:
        where["is_published"] = True
    if audience:
        where["target_audience"] = [audience, "both"]
    return db.select("courses", where=where, order_by="display_order")


def update_course(db: DbClient, course_id: str, changes: dict) -> Row:
    get_course(db, course_id)
    return db.update("courses", course_id, changes)


def delete_course(db: DbClient, course_id: str) -> None:
    get_course(db, course_id)
    db.delete_where("course_lessons", {"course_id": course_id})
    db.delete_where("course_sections", {"course_id": course_id})
    db.delete("courses", course_id)


# Structure


def _sections(db: DbClient, course_id: str) -> list[Row]:
    return db.select("course_sections", where={"course_id": course_id}, order_by="display_order")


def _section_lessons(db: DbClient, section_id: str) -> list[Row]:
    return db.select("course_lessons", where={"section_id": section_id}, order_by="display_order")


def fetch_course_structure(db: DbClient, course_id: str) -> dict:
    get_course(db, course_id)
    return {
        "sections": _sections(db, course_id),
        "lessons": db.select(
            "course_lessons", where={"course_id": course_id}, order_by="display_order"
        ),
    }


def _persist_order(db: DbClient, table: str, rows: list[Row]) -> None:
    for index, row in enumerate(rows):
        if row["display_order"] != index:
            db.update(table, row["id"], {"display_order": index})


def get_section(db: DbClient, section_id: str) -> Row:
    section = db.get("course_sections", section_id)
    if not section:
        raise NotFoundError("Section not found")
    return section


def add_section(db: DbClient, course_id: str, values: dict) -> Row:
    get_course(db, course_id)
    order = db.count("course_sections", where={"course_id": course_id})
    return db.insert(
        "course_sections", {**values, "course_id": course_id, "display_order": order}
    )


def update_section(db: DbClient, section_id: str, changes: dict) -> Row:
    get_section(db, section_id)
    changes = {k: v for k, v in changes.items() if k not in ("course_id", "display_order")}
    return db.update("course_sections", section_id, changes)


def delete_section(db: DbClient, section_id: str) -> None:
    section = get_section(db, section_id)
    db.delete_where("course_lessons", {"section_id": section_id})
    db.delete("course_sections", section_id)
    _persist_order(db, "course_sections", _sections(db, section["course_id"]))


def move_section(db: DbClient, section_id: str, new_index: int) -> list[Row]:
    section = get_section(db, section_id)
    sections = _sections(db, section["course_id"])
    old_index = next(i for i, s in enumerate(sections) if s["id"] == section_id)
    reordered = array_move(sections, old_index, new_index)
    _persist_order(db, "course_sections", reordered)
    return _sections(db, section["course_id"])


def get_lesson(db: DbClient, lesson_id: str) -> Row:
    lesson = db.get("course_lessons", lesson_id)
    if not lesson:
        raise NotFoundError("Lesson not found")
    return lesson


def add_lesson(db: DbClient, section_id: str, values: dict) -> Row:
    section = get_section(db, section_id)
    order = db.count("course_lessons", where={"section_id": section_id})
    return db.insert(
        "course_lessons",
        {
            **values,
            "course_id": section["course_id"],
            "section_id": section_id,
            "display_order": order,
        },
    )


def update_lesson(db: DbClient, lesson_id: str, changes: dict) -> Row:
    get_lesson(db, lesson_id)
    changes = {
        k: v
        for k, v in changes.items()
        if k not in ("course_id", "section_id", "display_order")
    }
    return db.update("course_lessons", lesson_id, changes)


def delete_lesson(db: DbClient, lesson_id: str) -> None:
    lesson = get_lesson(db, lesson_id)
    db.delete("course_lessons", lesson_id)
    if lesson["section_id"]:
        _persist_order(db, "course_lessons", _section_lessons(db, lesson["section_id"]))


def move_lesson(
    db: DbClient,
    lesson_id: str,
    target_section_id: str,
    new_index: Optional[int] = None,
) -> dict:
    """
    Reorders a lesson within its section or moves it to another section.

    Args:
        lesson_id (str): Lesson to move.
        target_section_id (str): Destination section (may be the current one).
        new_index (int | None): Position in the destination; None appends.

    Returns:
        dict: "source" and "target" lesson lists in their persisted order.
    """
    lesson = get_lesson(db, lesson_id)
    target = get_section(db, target_section_id)
    if target["course_id"] != lesson["course_id"]:
        raise ValidationFailed("Lessons can only move between sections of the same course")

    source_section_id = lesson["section_id"]
    if source_section_id == target_section_id:
        lessons = _section_lessons(db, target_section_id)
        old_index = next(i for i, row in enumerate(lessons) if row["id"] == lesson_id)
        index = len(lessons) - 1 if new_index is None else new_index
        _persist_order(db, "course_lessons", array_move(lessons, old_index, index))
        ordered = _section_lessons(db, target_section_id)
        return {"source": ordered, "target": ordered}

    source = (
        [row for row in _section_lessons(db, source_section_id) if row["id"] != lesson_id]
        if source_section_id
        else []
    )
    destination = _section_lessons(db, target_section_id)
    index = len(destination) if new_index is None else max(0, min(new_index, len(destination)))
    destination.insert(index, lesson)

    db.update("course_lessons", lesson_id, {"section_id": target_section_id, "display_order": index})
    lesson["section_id"] = target_section_id
    lesson["display_order"] = index
    _persist_order(db, "course_lessons", source)
    _persist_order(db, "course_lessons", destination)
    logger.debug("Moved lesson %s to section %s at %d", lesson_id, target_section_id, index)
    return {
        "source": _section_lessons(db, source_section_id) if source_section_id else [],
        "target": _section_lessons(db, target_section_id),
    }


# Learning


def _published_lessons(db: DbClient, course_id: str) -> list[Row]:
    sections = {s["id"]: s["display_order"] for s in _sections(db, course_id)}
    lessons = db.select(
        "course_lessons", where={"course_id": course_id, "is_published": True}
    )
    return sorted(
        lessons,
        key=lambda row: (sections.get(row["section_id"], len(sections)), row["display_order"]),
    )


def enroll(db: DbClient, course_id: str, user_id: str) -> Row:
    get_course(db, course_id)
    existing = db.select(
        "course_enrollments", where={"course_id": course_id, "user_id": user_id}, limit=1
    )
    if existing:
        return existing[0]
    return db.insert(
        "course_enrollments",
        {"course_id": course_id, "user_id": user_id, "progress_percentage": 0.0},
    )


def get_enrollment(db: DbClient, enrollment_id: str) -> Row:
    enrollment = db.get("course_enrollments", enrollment_id)
    if not enrollment:
        raise NotFoundError("Enrollment not found")
    return enrollment


def progress_percentage(completed: int, total: int) -> float:
    if total <= 0:
        return 0.0
    # Half-up rounding, so 12.5 reads as 13.
    return float(max(0, min(100, math.floor(completed / total * 100 + 0.5))))


def _completed_lesson_ids(db: DbClient, enrollment_id: str) -> set[str]:
    rows = db.select("lesson_progress", where={"enrollment_id": enrollment_id})
    return {r["lesson_id"] for r in rows if r["completed_at"] is not None}


def _enrolled_lesson(db: DbClient, enrollment_id: str, lesson_id: str) -> tuple[Row, Row]:
    enrollment = get_enrollment(db, enrollment_id)
    lesson = get_lesson(db, lesson_id)
    if lesson["course_id"] != enrollment["course_id"]:
        raise ValidationFailed("Lesson does not belong to this course")
    return enrollment, lesson


def record_position(db: DbClient, enrollment_id: str, lesson_id: str, position_seconds: int) -> Row:
    _enrolled_lesson(db, enrollment_id, lesson_id)
    existing = db.select(
        "lesson_progress", where={"enrollment_id": enrollment_id, "lesson_id": lesson_id}, limit=1
    )
    if existing:
        return db.update(
            "lesson_progress", existing[0]["id"], {"last_position_seconds": max(0, position_seconds)}
        )
    return db.insert(
        "lesson_progress",
        {
            "enrollment_id": enrollment_id,
            "lesson_id": lesson_id,
            "last_position_seconds": max(0, position_seconds),
        },
    )


def complete_lesson(db: DbClient, enrollment_id: str, lesson_id: str) -> Row:
    enrollment, _ = _enrolled_lesson(db, enrollment_id, lesson_id)

    now = time.time()
    existing = db.select(
        "lesson_progress", where={"enrollment_id": enrollment_id, "lesson_id": lesson_id}, limit=1
    )
    if existing:
        if existing[0]["completed_at"] is None:
            db.update("lesson_progress", existing[0]["id"], {"completed_at": now})
    else:
        db.insert(
            "lesson_progress",
            {"enrollment_id": enrollment_id, "lesson_id": lesson_id, "completed_at": now},
        )

    lessons = _published_lessons(db, enrollment["course_id"])
    completed = _completed_lesson_ids(db, enrollment_id) & {row["id"] for row in lessons}
    progress = progress_percentage(len(completed), len(lessons))
    changes: dict = {"progress_percentage": progress}
    if progress >= 100 and enrollment["completed_at"] is None:
        changes["completed_at"] = now
        logger.info("Enrollment %s completed course %s", enrollment_id, enrollment["course_id"])
    return db.update("course_enrollments", enrollment_id, changes)


def learning_state(db: DbClient, enrollment_id: str) -> dict:
    enrollment = get_enrollment(db, enrollment_id)
    lessons = _published_lessons(db, enrollment["course_id"])
    progress_rows = db.select("lesson_progress", where={"enrollment_id": enrollment_id})
    completed = {r["lesson_id"] for r in progress_rows if r["completed_at"] is not None}
    next_lesson = next((row for row in lessons if row["id"] not in completed), None)
    time_spent = sum(r["last_position_seconds"] or 0 for r in progress_rows)
    return {
        "enrollment": enrollment,
        "completed_lesson_ids": sorted(completed),
        "total_lessons": len(lessons),
        "next_lesson": next_lesson or (lessons[0] if lessons else None),
        "time_spent_seconds": time_spent,
    }


# Certificates


def issue_certificate(
    db: DbClient,
    storage: StorageClient,
    enrollment_id: str,
    recipient_name: Optional[str] = None,
) -> dict:
    enrollment = get_enrollment(db, enrollment_id)
    if enrollment["completed_at"] is None:
        raise ConflictError("Course not completed")
    course = get_course(db, enrollment["course_id"])

    existing = db.select("course_certificates", where={"enrollment_id": enrollment_id}, limit=1)
    certificate = existing[0] if existing else None
    code = certificate["verification_code"] if certificate else secrets.token_hex(16)
    name = recipient_name or (certificate or {}).get("recipient_name") or "Student"

    pdf = exports.certificate_pdf(name, course["title"], enrollment["completed_at"], code)
    path = f"certificates/{enrollment_id}-{code}.pdf"
    storage.put(path, pdf, "application/pdf")

    values = {"recipient_name": name, "course_title": course["title"], "storage_path": path}
    if certificate:
        certificate = db.update("course_certificates", certificate["id"], values)
    else:
        certificate = db.insert(
            "course_certificates",
            {**values, "enrollment_id": enrollment_id, "verification_code": code},
        )
    return {
        **certificate,
        "download_url": storage.url_for(path, CERTIFICATE_URL_TTL_SECONDS),
    }


def verify_certificate(db: DbClient, verification_code: str) -> Row:
    rows = db.select(
        "course_certificates", where={"verification_code": verification_code.strip().lower()}, limit=1
    )
    if not rows:
        raise NotFoundError("Certificate not found")
    certificate = rows[0]
    enrollment = db.get("course_enrollments", certificate["enrollment_id"]) or {}
    return {
        "verification_code": certificate["verification_code"],
        "recipient_name": certificate["recipient_name"],
        "course_title": certificate["course_title"],
        "completed_at": enrollment.get("completed_at"),
        "issued_at": certificate["created_at"],
    }
