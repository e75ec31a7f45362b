"""
Wellness survey routes: submission, averages, trend data, chart and PDF report.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Response

from ttm_backend.db import DbClient
from ttm_backend.dependencies import get_db_client
from ttm_backend.routes.common import require_role
from ttm_backend.schemas import SurveyCreate
from ttm_backend.services import wellness

router = APIRouter(
    prefix="/wellness",
    tags=["wellness"],
    dependencies=[Depends(require_role("patient", "practitioner"))],
)


@router.post("/surveys", status_code=201)
def submit_survey(payload: SurveyCreate, db: DbClient = Depends(get_db_client)):
    values = payload.model_dump(exclude={"patient_id"})
    survey = wellness.submit_survey(db, payload.patient_id, values)
    return {**survey, "average": wellness.survey_average(survey)}


@router.get("/patients/{patient_id}/surveys")
def list_surveys(patient_id: str, db: DbClient = Depends(get_db_client)):
    return wellness.list_surveys(db, patient_id)


@router.get("/patients/{patient_id}/summary")
def summary(patient_id: str, db: DbClient = Depends(get_db_client)):
    surveys = wellness.list_surveys(db, patient_id)
    averages = wellness.dimension_averages(surveys)
    latest = surveys[-1] if surveys else None
    return {
        "count": len(surveys),
        "averages": averages,
        "latest": latest,
        "latest_average": wellness.survey_average(latest) if latest else None,
    }


@router.get("/patients/{patient_id}/trend")
def trend(
    patient_id: str,
    start: Optional[float] = None,
    end: Optional[float] = None,
    db: DbClient = Depends(get_db_client),
):
    return wellness.trend_series(wellness.list_surveys(db, patient_id), start, end)


@router.get("/patients/{patient_id}/trend.png")
def trend_chart(
    patient_id: str,
    start: Optional[float] = None,
    end: Optional[float] = None,
    db: DbClient = Depends(get_db_client),
):
    points = wellness.trend_series(wellness.list_surveys(db, patient_id), start, end)
    return Response(content=wellness.render_trend_chart(points), media_type="image/png")


@router.get("/patients/{patient_id}/report.pdf")
def report(
    patient_id: str,
    start: Optional[float] = None,
    end: Optional[float] = None,
    db: DbClient = Depends(get_db_client),
):
    pdf = wellness.wellness_report(db, patient_id, start, end)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="wellness-{patient_id}.pdf"'},
    )
