"""
Checkout, order fulfilment and practitioner commissions.
"""

from __future__ import annotations

import csv
import io
import logging
import time
from typing import Optional

from ttm_backend.config import Settings
from ttm_backend.db import DbClient, Row
from ttm_backend.errors import ConflictError, NotFoundError, ValidationFailed
from ttm_backend.jobs import JobKind, enqueue_job
from ttm_backend.queue import JobQueue
from ttm_backend.services import patients, recommendations
from ttm_backend.templates import format_date

logger = logging.getLogger(__name__)

THAI_COURIERS = (
    "Kerry Express",
    "Flash Express",
    "Thailand Post",
    "J&T Express",
    "Ninja Van",
    "Best Express",
    "DHL eCommerce",
    "SCG Express",
    "Lalamove",
    "Custom/Other",
)

TRACKING_URL_TEMPLATES = {
    "Kerry Express": "https://th.kerryexpress.com/en/track/?track={tracking}",
    "Flash Express": "https://flashexpress.com/tracking/?se={tracking}",
    "Thailand Post": "https://track.thailandpost.co.th/?trackNumber={tracking}",
    "J&T Express": "https://www.jtexpress.co.th/service/track?billcode={tracking}",
    "Ninja Van": "https://www.ninjavan.co/th-th/tracking?id={tracking}",
    "Best Express": "https://www.best-inc.co.th/track?waybill_no={tracking}",
    "DHL eCommerce": "https://www.dhl.com/th-en/home/tracking/tracking-ecommerce.html?tracking-id={tracking}",
    "SCG Express": "https://www.scgexpress.co.th/tracking/{tracking}",
    "Lalamove": "https://www.lalamove.com/th/track/{tracking}",
}

DELIVERY_DAYS = {
    "Kerry Express": 2,
    "Flash Express": 3,
    "Thailand Post": 5,
    "J&T Express": 3,
    "Ninja Van": 3,
    "Best Express": 4,
    "DHL eCommerce": 2,
    "SCG Express": 3,
    "Lalamove": 1,
    "Custom/Other": 3,
}
DEFAULT_DELIVERY_DAYS = 3

STATUS_DISPLAY_NAMES = {
    "pending": "Order Received",
    "processing": "Processing",
    "shipped": "Shipped",
    "delivered": "Delivered",
    "cancelled": "Cancelled",
}

ORDER_TRANSITIONS = {
    "pending": {"processing", "cancelled"},
    "processing": {"shipped", "cancelled"},
    "shipped": {"delivered", "cancelled"},
    "delivered": set(),
    "cancelled": set(),
}

PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")

CSV_COLUMNS = (
    "id",
    "created_at",
    "patient_id",
    "practitioner_id",
    "status",
    "payment_status",
    "total_amount",
    "currency",
    "courier_name",
    "tracking_number",
    "shipping_city",
    "items",
)


def status_display_name(status: str) -> str:
    return STATUS_DISPLAY_NAMES.get(status, status)


def tracking_url(courier_name: Optional[str], tracking_number: Optional[str]) -> str:
    template = TRACKING_URL_TEMPLATES.get(courier_name or "")
    if not template or not tracking_number:
        return ""
    return template.replace("{tracking}", tracking_number)


def estimate_delivery(courier_name: Optional[str], shipped_at: Optional[float] = None) -> float:
    days = DELIVERY_DAYS.get(courier_name or "", DEFAULT_DELIVERY_DAYS)
    return (shipped_at or time.time()) + days * 86400


# Commissions


def commission_for(
    db: DbClient, settings: Settings, practitioner_id: Optional[str], items: list[Row]
) -> tuple[float, float]:
    """
    Commission on an order's lines as (amount, effective rate).

    A practitioner override applies to every line; otherwise each line earns
    its herb's own rate, falling back to the platform default. The effective
    rate is the blend over the order total.
    """
    override = None
    if practitioner_id:
        overrides = db.select(
            "practitioner_commission_overrides",
            where={"practitioner_id": practitioner_id},
            limit=1,
        )
        if overrides:
            override = overrides[0]["commission_rate"]

    amount = 0.0
    for item in items:
        rate = override
        if rate is None:
            rate = item.get("commission_rate")
        if rate is None:
            rate = settings.default_commission_rate
        amount += recommendations.line_total(item) * rate

    total = sum(recommendations.line_total(item) for item in items)
    if not total:
        return 0.0, override if override is not None else settings.default_commission_rate
    return round(amount, 2), round(amount / total, 4)


def set_commission_override(db: DbClient, practitioner_id: str, rate: float) -> Row:
    if not 0 <= rate <= 1:
        raise ValidationFailed("Commission rate must be between 0 and 1")
    existing = db.select(
        "practitioner_commission_overrides", where={"practitioner_id": practitioner_id}, limit=1
    )
    if existing:
        return db.update(
            "practitioner_commission_overrides", existing[0]["id"], {"commission_rate": rate}
        )
    return db.insert(
        "practitioner_commission_overrides",
        {"practitioner_id": practitioner_id, "commission_rate": rate},
    )


def mark_commission_paid(db: DbClient, commission_id: str) -> Row:
    commission = db.get("sales_analytics", commission_id)
    if not commission:
        raise NotFoundError("Commission not found")
    if commission["commission_status"] != "pending":
        raise ConflictError(f"Commission is {commission['commission_status']}")
    return db.update(
        "sales_analytics",
        commission_id,
        {"commission_status": "paid", "paid_at": time.time()},
    )


def list_commissions(db: DbClient, practitioner_id: Optional[str] = None) -> list[Row]:
    where = {"practitioner_id": practitioner_id} if practitioner_id else None
    return db.select("sales_analytics", where=where, order_by="created_at", descending=True)


def commission_summary(db: DbClient, practitioner_id: str) -> dict:
    rows = db.select("sales_analytics", where={"practitioner_id": practitioner_id})
    totals = {"pending": 0.0, "paid": 0.0, "cancelled": 0.0}
    for row in rows:
        totals[row["commission_status"]] = (
            totals.get(row["commission_status"], 0.0) + row["commission_amount"]
        )
    return {
        "practitioner_id": practitioner_id,
        "pending_total": round(totals["pending"], 2),
        "paid_total": round(totals["paid"], 2),
        "sales_total": round(
            sum(r["sale_amount"] for r in rows if r["commission_status"] != "cancelled"), 2
        ),
        "count": len(rows),
    }


# Checkout


def _requested_quantities(items: list[Row]) -> dict[str, int]:
    quantities: dict[str, int] = {}
    for item in items:
        quantities[item["herb_id"]] = quantities.get(item["herb_id"], 0) + item["quantity"]
    return quantities


def _check_stock(items: list[Row], quantities: dict[str, int]) -> None:
    """Raises when any herb cannot cover the combined quantity of its lines."""
    herbs = {item["herb_id"]: item for item in items}
    for herb_id, requested in quantities.items():
        herb = herbs[herb_id]
        if herb["stock_quantity"] is None:
            raise NotFoundError(f"Herb not found: {herb_id}")
        if herb["stock_quantity"] < requested:
            raise ConflictError(
                f"Insufficient stock for {herb['herb_name']}. "
                f"Available: {herb['stock_quantity']}, Requested: {requested}"
            )


def checkout(
    db: DbClient,
    settings: Settings,
    token: str,
    shipping: dict,
    payment_method: Optional[str] = None,
) -> Row:
    """
    Turns a recommendation checkout link into an order.

    Lines for the same herb are combined before the stock check. The order,
    its commission, the stock decrements and the link consumption are
    written in one transaction, so a failed checkout leaves nothing behind
    and the link can be retried.
    """
    link = recommendations.resolve_link(db, token)
    recommendation = recommendations.get_recommendation(db, link["recommendation_id"])
    items = recommendations.list_items(db, recommendation["id"])
    if not items:
        raise NotFoundError("No items found in recommendation")

    quantities = _requested_quantities(items)
    _check_stock(items, quantities)

    total = round(sum(recommendations.line_total(item) for item in items), 2)
    amount, rate = commission_for(db, settings, recommendation["practitioner_id"], items)
    order = db.place_order(
        {
            "patient_id": recommendation["patient_id"],
            "practitioner_id": recommendation["practitioner_id"],
            "recommendation_id": recommendation["id"],
            "total_amount": total,
            "currency": "THB",
            "status": "pending",
            "payment_status": "pending",
            "payment_method": payment_method,
            "items": [
                {
                    "herb_id": item["herb_id"],
                    "herb_name": item["herb_name"],
                    "quantity": item["quantity"],
                    "unit_price": item["unit_price"],
                    "dosage_instructions": item.get("dosage_instructions"),
                }
                for item in items
            ],
            **{key: shipping.get(key) for key in (
                "shipping_address",
                "shipping_city",
                "shipping_postal_code",
                "shipping_phone",
            )},
            "notes": shipping.get("notes"),
        },
        quantities,
        link["id"],
        {
            "practitioner_id": recommendation["practitioner_id"],
            "sale_amount": total,
            "commission_rate": rate,
            "commission_amount": amount,
            "commission_status": "pending",
        },
    )
    if order is None:
        # Lost a race since the checks above; report what changed.
        recommendations.resolve_link(db, token)
        _check_stock(recommendations.list_items(db, recommendation["id"]), quantities)
        raise ConflictError("Stock changed during checkout. Please try again.")

    db.update("recommendations", recommendation["id"], {"status": "completed"})
    patients.save_shipping_defaults(db, recommendation["patient_id"], shipping)
    logger.info("Created order %s from recommendation %s", order["id"], recommendation["id"])
    return order


# Fulfilment


def get_order(db: DbClient, order_id: str) -> Row:
    order = db.get("orders", order_id)
    if not order:
        raise NotFoundError("Order not found")
    return order


def list_orders(
    db: DbClient,
    *,
    practitioner_id: Optional[str] = None,
    patient_id: Optional[str] = None,
    status: Optional[str] = None,
) -> list[Row]:
    where = {}
    if practitioner_id:
        where["practitioner_id"] = practitioner_id
    if patient_id:
        where["patient_id"] = patient_id
    if status:
        where["status"] = status
    return db.select("orders", where=where, order_by="created_at", descending=True)


def update_status(
    db: DbClient,
    queue: Optional[JobQueue],
    order_id: str,
    status: str,
    *,
    courier_name: Optional[str] = None,
    tracking_number: Optional[str] = None,
    notes: Optional[str] = None,
) -> Row:
    order = get_order(db, order_id)
    if status not in ORDER_TRANSITIONS:
        raise ValidationFailed(f"Unknown order status: {status}")
    if status not in ORDER_TRANSITIONS[order["status"]]:
        raise ConflictError(f"Cannot change order from {order['status']} to {status}")
    if courier_name and courier_name not in THAI_COURIERS:
        raise ValidationFailed(f"Unknown courier: {courier_name}")

    changes: dict = {"status": status}
    if notes is not None:
        changes["notes"] = notes
    if status == "shipped":
        courier_name = courier_name or order.get("courier_name")
        tracking_number = tracking_number or order.get("tracking_number")
        if not courier_name or not tracking_number:
            raise ValidationFailed("Courier and tracking number are required to ship")
        changes.update(
            courier_name=courier_name,
            tracking_number=tracking_number,
            courier_tracking_url=tracking_url(courier_name, tracking_number) or None,
            estimated_delivery_date=estimate_delivery(courier_name),
        )

    updated = db.update("orders", order_id, changes)
    if status == "cancelled":
        db.update_where(
            "sales_analytics",
            {"order_id": order_id, "commission_status": "pending"},
            {"commission_status": "cancelled"},
        )
    enqueue_job(db, queue, JobKind.ORDER_STATUS_UPDATE, {"order_id": order_id})
    logger.info("Order %s: %s -> %s", order_id, order["status"], status)
    return updated


def set_payment_status(db: DbClient, order_id: str, payment_status: str) -> Row:
    if payment_status not in PAYMENT_STATUSES:
        raise ValidationFailed(f"Unknown payment status: {payment_status}")
    get_order(db, order_id)
    return db.update("orders", order_id, {"payment_status": payment_status})


def order_stats(db: DbClient, practitioner_id: Optional[str] = None) -> dict:
    orders = list_orders(db, practitioner_id=practitioner_id)
    total = len(orders)
    revenue = sum(o["total_amount"] for o in orders if o["payment_status"] == "paid")
    commission = 0.0
    if practitioner_id:
        commission = sum(
            row["commission_amount"]
            for row in list_commissions(db, practitioner_id)
            if row["commission_status"] != "cancelled"
        )
    return {
        "total_orders": total,
        "pending_orders": sum(1 for o in orders if o["status"] in ("pending", "processing")),
        "total_revenue": round(revenue, 2),
        "average_order_value": round(revenue / total, 2) if total else 0.0,
        "commission_earned": round(commission, 2),
    }


def export_orders_csv(orders: list[Row]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\r\n")
    writer.writerow(CSV_COLUMNS)
    for order in orders:
        row = []
        for column in CSV_COLUMNS:
            value = order.get(column)
            if column == "created_at":
                value = format_date(value)
            elif column == "items":
                value = "; ".join(
                    f"{item.get('herb_name') or item.get('herb_id')} x{item['quantity']}"
                    for item in value or []
                )
            elif column == "total_amount":
                value = f"{value:.2f}"
            row.append("" if value is None else value)
        writer.writerow(row)
    return buffer.getvalue()
