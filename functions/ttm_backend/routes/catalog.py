"""
Catalog routes: categories, herbs, stock, reviews and media uploads.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from ttm_backend.db import DbClient
from ttm_backend.dependencies import Actor, get_actor, get_db_client, get_storage_client
from ttm_backend.routes.common import require_role
from ttm_backend.schemas import (
    CategoryCreate,
    HerbCreate,
    HerbUpdate,
    MediaUploadRequest,
    ReviewCreate,
    StockAdjustment,
)
from ttm_backend.services import catalog, patients
from ttm_backend.storage import StorageClient

router = APIRouter(tags=["catalog"])


def _with_pricing(herb: dict) -> dict:
    return {**herb, "subscription_price": catalog.subscription_price(herb)}


@router.get("/categories")
def list_categories(db: DbClient = Depends(get_db_client)):
    return catalog.list_categories(db)


@router.post("/categories", status_code=201, dependencies=[Depends(require_role("admin"))])
def create_category(payload: CategoryCreate, db: DbClient = Depends(get_db_client)):
    return catalog.create_category(db, payload.name, payload.description)


@router.get("/herbs")
def list_herbs(
    q: Optional[str] = Query(None, max_length=100),
    category_id: Optional[str] = None,
    in_stock_only: bool = False,
    limit: int = Query(100, ge=1, le=500),
    db: DbClient = Depends(get_db_client),
):
    herbs = catalog.list_herbs(
        db, query=q, category_id=category_id, in_stock_only=in_stock_only, limit=limit
    )
    return [_with_pricing(h) for h in herbs]


@router.post("/herbs", status_code=201, dependencies=[Depends(require_role("admin"))])
def create_herb(payload: HerbCreate, db: DbClient = Depends(get_db_client)):
    return _with_pricing(catalog.create_herb(db, payload.model_dump()))


@router.get("/herbs/{herb_id}")
def get_herb(herb_id: str, db: DbClient = Depends(get_db_client)):
    herb = catalog.get_herb(db, herb_id)
    summary = catalog.review_summary(catalog.list_reviews(db, herb_id))
    return {**_with_pricing(herb), "reviews": summary}


@router.patch("/herbs/{herb_id}", dependencies=[Depends(require_role("admin"))])
def update_herb(herb_id: str, payload: HerbUpdate, db: DbClient = Depends(get_db_client)):
    return _with_pricing(catalog.update_herb(db, herb_id, payload.model_dump(exclude_unset=True)))


@router.delete("/herbs/{herb_id}", status_code=204, dependencies=[Depends(require_role("admin"))])
def delete_herb(
    herb_id: str,
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    catalog.delete_herb(db, storage, herb_id)


@router.post("/herbs/{herb_id}/stock", dependencies=[Depends(require_role("admin"))])
def adjust_stock(herb_id: str, payload: StockAdjustment, db: DbClient = Depends(get_db_client)):
    return catalog.adjust_stock(db, herb_id, payload.delta)


@router.post("/herbs/{herb_id}/images", status_code=201, dependencies=[Depends(require_role("admin"))])
async def upload_herb_image(
    herb_id: str,
    file: UploadFile = File(...),
    is_primary: bool = Form(False),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    data = await file.read()
    return catalog.upload_herb_image(
        db,
        storage,
        herb_id,
        file.filename or "image",
        data,
        file.content_type or "application/octet-stream",
        is_primary=is_primary,
    )


@router.get("/herbs/{herb_id}/reviews")
def list_reviews(herb_id: str, db: DbClient = Depends(get_db_client)):
    reviews = catalog.list_reviews(db, herb_id)
    return {"reviews": reviews, "summary": catalog.review_summary(reviews)}


@router.post("/herbs/{herb_id}/reviews", status_code=201)
def create_review(
    herb_id: str,
    payload: ReviewCreate,
    actor: Actor = Depends(require_role("patient")),
    db: DbClient = Depends(get_db_client),
):
    patient = patients.find_patient_for_user(db, actor.user_id)
    return catalog.create_review(
        db, herb_id, patient["id"] if patient else actor.user_id, payload.model_dump()
    )


@router.post("/reviews/{review_id}/media", status_code=201)
async def upload_review_media(
    review_id: str,
    file: UploadFile = File(...),
    actor: Actor = Depends(get_actor),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    data = await file.read()
    return catalog.upload_review_media(
        db,
        storage,
        review_id,
        file.filename or "media",
        data,
        file.content_type or "application/octet-stream",
    )


@router.post("/media/upload-url", dependencies=[Depends(require_role("patient", "practitioner"))])
def media_upload_url(payload: MediaUploadRequest, storage: StorageClient = Depends(get_storage_client)):
    return catalog.media_upload_url(
        storage, payload.prefix, payload.owner_id, payload.filename, payload.content_type
    )
