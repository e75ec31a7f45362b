"""
Course catalogue, course builder and learner progress routes.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ttm_backend.db import DbClient
from ttm_backend.dependencies import Actor, get_actor, get_db_client, get_storage_client
from ttm_backend.routes.common import require_role, require_user
from ttm_backend.schemas import (
    CertificateRequest,
    CourseCreate,
    CourseUpdate,
    LessonCreate,
    LessonPositionRequest,
    LessonUpdate,
    MoveLessonRequest,
    MoveSectionRequest,
    SectionCreate,
    SectionUpdate,
)
from ttm_backend.services import courses
from ttm_backend.storage import StorageClient

router = APIRouter(tags=["courses"])

builder = require_role("practitioner")


def _own_enrollment(db: DbClient, enrollment_id: str, actor: Actor):
    enrollment = courses.get_enrollment(db, enrollment_id)
    if not actor.is_admin and enrollment["user_id"] != actor.user_id:
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    return enrollment


# Courses


@router.get("/courses")
def list_courses(actor: Actor = Depends(get_actor), db: DbClient = Depends(get_db_client)):
    if actor.is_admin:
        return courses.list_courses(db)
    audience = actor.role if actor.role in ("practitioner", "patient") else None
    return courses.list_courses(db, published_only=True, audience=audience)


@router.post("/courses", status_code=201)
def create_course(
    payload: CourseCreate,
    actor: Actor = Depends(builder),
    db: DbClient = Depends(get_db_client),
):
    return courses.create_course(db, payload.model_dump(), actor.user_id)


@router.get("/courses/{course_id}")
def get_course(course_id: str, db: DbClient = Depends(get_db_client)):
    return {**courses.get_course(db, course_id), **courses.fetch_course_structure(db, course_id)}


@router.patch("/courses/{course_id}", dependencies=[Depends(builder)])
def update_course(course_id: str, payload: CourseUpdate, db: DbClient = Depends(get_db_client)):
    return courses.update_course(db, course_id, payload.model_dump(exclude_unset=True))


@router.delete("/courses/{course_id}", status_code=204, dependencies=[Depends(require_role("admin"))])
def delete_course(course_id: str, db: DbClient = Depends(get_db_client)):
    courses.delete_course(db, course_id)


# Builder: sections


@router.post("/courses/{course_id}/sections", status_code=201, dependencies=[Depends(builder)])
def add_section(course_id: str, payload: SectionCreate, db: DbClient = Depends(get_db_client)):
    return courses.add_section(db, course_id, payload.model_dump())


@router.patch("/sections/{section_id}", dependencies=[Depends(builder)])
def update_section(section_id: str, payload: SectionUpdate, db: DbClient = Depends(get_db_client)):
    return courses.update_section(db, section_id, payload.model_dump(exclude_unset=True))


@router.delete("/sections/{section_id}", status_code=204, dependencies=[Depends(builder)])
def delete_section(section_id: str, db: DbClient = Depends(get_db_client)):
    courses.delete_section(db, section_id)


@router.post("/sections/{section_id}/move", dependencies=[Depends(builder)])
def move_section(section_id: str, payload: MoveSectionRequest, db: DbClient = Depends(get_db_client)):
    return courses.move_section(db, section_id, payload.new_index)


# Builder: lessons


@router.post("/sections/{section_id}/lessons", status_code=201, dependencies=[Depends(builder)])
def add_lesson(section_id: str, payload: LessonCreate, db: DbClient = Depends(get_db_client)):
    lesson = courses.add_lesson(db, section_id, payload.model_dump())
    return {**lesson, "duration_display": courses.format_duration(lesson["video_duration_seconds"])}


@router.get("/lessons/{lesson_id}")
def get_lesson(lesson_id: str, db: DbClient = Depends(get_db_client)):
    lesson = courses.get_lesson(db, lesson_id)
    return {**lesson, "duration_display": courses.format_duration(lesson["video_duration_seconds"])}


@router.patch("/lessons/{lesson_id}", dependencies=[Depends(builder)])
def update_lesson(lesson_id: str, payload: LessonUpdate, db: DbClient = Depends(get_db_client)):
    return courses.update_lesson(db, lesson_id, payload.model_dump(exclude_unset=True))


@router.delete("/lessons/{lesson_id}", status_code=204, dependencies=[Depends(builder)])
def delete_lesson(lesson_id: str, db: DbClient = Depends(get_db_client)):
    courses.delete_lesson(db, lesson_id)


@router.post("/lessons/{lesson_id}/move", dependencies=[Depends(builder)])
def move_lesson(lesson_id: str, payload: MoveLessonRequest, db: DbClient = Depends(get_db_client)):
    return courses.move_lesson(db, lesson_id, payload.target_section_id, payload.new_index)


# Learning


@router.post("/courses/{course_id}/enroll", status_code=201)
def enroll(course_id: str, actor: Actor = Depends(require_user), db: DbClient = Depends(get_db_client)):
    return courses.enroll(db, course_id, actor.user_id)


@router.get("/enrollments/{enrollment_id}")
def learning_state(
    enrollment_id: str, actor: Actor = Depends(require_user), db: DbClient = Depends(get_db_client)
):
    _own_enrollment(db, enrollment_id, actor)
    return courses.learning_state(db, enrollment_id)


@router.post("/enrollments/{enrollment_id}/lessons/{lesson_id}/position")
def record_position(
    enrollment_id: str,
    lesson_id: str,
    payload: LessonPositionRequest,
    actor: Actor = Depends(require_user),
    db: DbClient = Depends(get_db_client),
):
    _own_enrollment(db, enrollment_id, actor)
    return courses.record_position(db, enrollment_id, lesson_id, payload.position_seconds)


@router.post("/enrollments/{enrollment_id}/lessons/{lesson_id}/complete")
def complete_lesson(
    enrollment_id: str,
    lesson_id: str,
    actor: Actor = Depends(require_user),
    db: DbClient = Depends(get_db_client),
):
    _own_enrollment(db, enrollment_id, actor)
    return courses.complete_lesson(db, enrollment_id, lesson_id)


@router.post("/enrollments/{enrollment_id}/certificate", status_code=201)
def issue_certificate(
    enrollment_id: str,
    payload: CertificateRequest,
    actor: Actor = Depends(require_user),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    _own_enrollment(db, enrollment_id, actor)
    return courses.issue_certificate(db, storage, enrollment_id, payload.recipient_name)


@router.get("/certificates/{verification_code}")
def verify_certificate(verification_code: str, db: DbClient = Depends(get_db_client)):
    return courses.verify_certificate(db, verification_code)
