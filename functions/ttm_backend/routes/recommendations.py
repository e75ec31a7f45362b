"""
Recommendation routes: authoring, status, checkout links and delivery.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from ttm_backend.config import get_settings
from ttm_backend.db import DbClient
from ttm_backend.dependencies import Actor, get_db_client, get_queue_client
from ttm_backend.queue import JobQueue
from ttm_backend.routes.common import require_role
from ttm_backend.schemas import (
    RecommendationCreate,
    RecommendationStatusUpdate,
    SendRecommendationRequest,
)
from ttm_backend.services import recommendations

router = APIRouter(prefix="/recommendations", tags=["recommendations"])


@router.get("")
def list_recommendations(
    patient_id: Optional[str] = None,
    actor: Actor = Depends(require_role("practitioner")),
    db: DbClient = Depends(get_db_client),
):
    practitioner_id = None if actor.is_admin else actor.user_id
    return recommendations.list_recommendations(
        db, practitioner_id=practitioner_id, patient_id=patient_id
    )


@router.post("", status_code=201)
def create_recommendation(
    payload: RecommendationCreate,
    actor: Actor = Depends(require_role("practitioner")),
    db: DbClient = Depends(get_db_client),
):
    items = [item.model_dump() for item in payload.items]
    values = payload.model_dump(exclude={"items"})
    recommendation = recommendations.create_recommendation(db, actor.user_id, values, items)
    return {**recommendation, "items": recommendations.list_items(db, recommendation["id"])}


@router.get("/{recommendation_id}", dependencies=[Depends(require_role("practitioner", "patient"))])
def get_recommendation(recommendation_id: str, db: DbClient = Depends(get_db_client)):
    recommendation = recommendations.get_recommendation(db, recommendation_id)
    return {**recommendation, "items": recommendations.list_items(db, recommendation_id)}


@router.post("/{recommendation_id}/status", dependencies=[Depends(require_role("practitioner"))])
def set_status(
    recommendation_id: str,
    payload: RecommendationStatusUpdate,
    db: DbClient = Depends(get_db_client),
):
    return recommendations.set_status(db, recommendation_id, payload.status)


@router.post(
    "/{recommendation_id}/checkout-link",
    status_code=201,
    dependencies=[Depends(require_role("practitioner"))],
)
def generate_checkout_link(recommendation_id: str, db: DbClient = Depends(get_db_client)):
    link = recommendations.generate_checkout_link(db, get_settings(), recommendation_id)
    return {"token": link["token"], "expires_at": link["expires_at"]}


@router.post("/{recommendation_id}/send", dependencies=[Depends(require_role("practitioner"))])
def send_recommendation(
    recommendation_id: str,
    payload: SendRecommendationRequest,
    db: DbClient = Depends(get_db_client),
    queue: JobQueue = Depends(get_queue_client),
):
    return recommendations.send_recommendation(
        db,
        queue,
        get_settings(),
        recommendation_id,
        checkout_url=payload.checkout_url,
        channels=payload.channels,
        optional_message=payload.optional_message,
        practitioner_name=payload.practitioner_name,
    )
