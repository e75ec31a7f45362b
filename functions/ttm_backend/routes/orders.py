"""
Checkout, order fulfilment and commission routes.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response

from ttm_backend.config import get_settings
from ttm_backend.db import DbClient
from ttm_backend.dependencies import Actor, get_db_client, get_queue_client
from ttm_backend.queue import JobQueue
from ttm_backend.routes.common import require_role
from ttm_backend.schemas import (
    CheckoutRequest,
    CommissionOverrideRequest,
    OrderStatsResponse,
    OrderStatusUpdate,
    PaymentStatusUpdate,
    PromptPayRequest,
    PromptPayResponse,
)
from ttm_backend.services import orders, patients, promptpay, recommendations

router = APIRouter(tags=["orders"])


def _scope(actor: Actor) -> Optional[str]:
    return None if actor.is_admin else actor.user_id


# Checkout (public, token-gated)


@router.get("/checkout/{token}")
def view_checkout(token: str, db: DbClient = Depends(get_db_client)):
    link = recommendations.resolve_link(db, token)
    recommendation = recommendations.get_recommendation(db, link["recommendation_id"])
    patient = patients.get_patient(db, recommendation["patient_id"])
    return {
        "recommendation": recommendation,
        "items": recommendations.list_items(db, recommendation["id"]),
        "expires_at": link["expires_at"],
        "shipping_defaults": {
            "shipping_address": patient.get("default_shipping_address"),
            "shipping_city": patient.get("default_shipping_city"),
            "shipping_postal_code": patient.get("default_shipping_postal_code"),
            "shipping_phone": patient.get("default_shipping_phone"),
        },
    }


@router.post("/checkout", status_code=201)
def checkout(payload: CheckoutRequest, db: DbClient = Depends(get_db_client)):
    shipping = payload.model_dump(exclude={"token", "payment_method"})
    return orders.checkout(
        db, get_settings(), payload.token, shipping, payment_method=payload.payment_method
    )


@router.post("/checkout/promptpay", response_model=PromptPayResponse)
def promptpay_qr(payload: PromptPayRequest, db: DbClient = Depends(get_db_client)):
    return promptpay.generate_checkout_qr(db, get_settings().promptpay_id, payload.token)


# Orders


@router.get("/orders")
def list_orders(
    status: Optional[str] = None,
    patient_id: Optional[str] = None,
    actor: Actor = Depends(require_role("practitioner", "patient")),
    db: DbClient = Depends(get_db_client),
):
    if actor.role == "patient":
        patient = patients.find_patient_for_user(db, actor.user_id)
        if not patient:
            return []
        return orders.list_orders(db, patient_id=patient["id"], status=status)
    return orders.list_orders(
        db, practitioner_id=_scope(actor), patient_id=patient_id, status=status
    )


@router.get("/orders/stats", response_model=OrderStatsResponse)
def order_stats(
    actor: Actor = Depends(require_role("practitioner")),
    db: DbClient = Depends(get_db_client),
):
    return orders.order_stats(db, _scope(actor))


@router.get("/orders/export")
def export_orders(
    status: Optional[str] = None,
    actor: Actor = Depends(require_role("practitioner")),
    db: DbClient = Depends(get_db_client),
):
    rows = orders.list_orders(db, practitioner_id=_scope(actor), status=status)
    return Response(
        content=orders.export_orders_csv(rows),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="orders.csv"'},
    )


@router.get("/orders/{order_id}", dependencies=[Depends(require_role("practitioner", "patient"))])
def get_order(order_id: str, db: DbClient = Depends(get_db_client)):
    order = orders.get_order(db, order_id)
    return {**order, "status_display": orders.status_display_name(order["status"])}


@router.post("/orders/{order_id}/status", dependencies=[Depends(require_role("practitioner"))])
def update_status(
    order_id: str,
    payload: OrderStatusUpdate,
    db: DbClient = Depends(get_db_client),
    queue: JobQueue = Depends(get_queue_client),
):
    return orders.update_status(
        db,
        queue,
        order_id,
        payload.status,
        courier_name=payload.courier_name,
        tracking_number=payload.tracking_number,
        notes=payload.notes,
    )


@router.post("/orders/{order_id}/payment", dependencies=[Depends(require_role("admin"))])
def set_payment_status(
    order_id: str, payload: PaymentStatusUpdate, db: DbClient = Depends(get_db_client)
):
    return orders.set_payment_status(db, order_id, payload.payment_status)


# Commissions


@router.get("/commissions")
def list_commissions(
    actor: Actor = Depends(require_role("practitioner")),
    db: DbClient = Depends(get_db_client),
):
    return orders.list_commissions(db, _scope(actor))


@router.get("/commissions/summary/{practitioner_id}")
def commission_summary(
    practitioner_id: str,
    actor: Actor = Depends(require_role("practitioner")),
    db: DbClient = Depends(get_db_client),
):
    if not actor.is_admin and actor.user_id != practitioner_id:
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    return orders.commission_summary(db, practitioner_id)


@router.post("/commissions/{commission_id}/paid", dependencies=[Depends(require_role("admin"))])
def mark_commission_paid(commission_id: str, db: DbClient = Depends(get_db_client)):
    return orders.mark_commission_paid(db, commission_id)


@router.put(
    "/commissions/overrides/{practitioner_id}", dependencies=[Depends(require_role("admin"))]
)
def set_commission_override(
    practitioner_id: str,
    payload: CommissionOverrideRequest,
    db: DbClient = Depends(get_db_client),
):
    return orders.set_commission_override(db, practitioner_id, payload.commission_rate)
