"""
PromptPay QR payloads (EMVCo merchant-presented mode) and their PNG rendering.
"""

from __future__ import annotations

import base64
import io
import logging
import re
import time
from typing import Optional

import qrcode

from ttm_backend.db import DbClient
from ttm_backend.errors import NotFoundError, ValidationFailed
from ttm_backend.services import recommendations

logger = logging.getLogger(__name__)

PROMPTPAY_AID = "A000000677010111"
THB_CURRENCY_CODE = "764"
COUNTRY_CODE = "TH"
QR_TTL_SECONDS = 24 * 3600

ID_PAYLOAD_FORMAT = "00"
ID_POI_METHOD = "01"
ID_MERCHANT_INFO = "29"
ID_CURRENCY = "53"
ID_AMOUNT = "54"
ID_COUNTRY = "58"
ID_CRC = "63"

MERCHANT_AID = "00"
MERCHANT_PHONE = "01"
MERCHANT_TAX_ID = "02"

POI_STATIC = "11"
POI_DYNAMIC = "12"


def _field(tag: str, value: str) -> str:
    return f"{tag}{len(value):02d}{value}"


def crc16_ccitt(data: str) -> str:
    """CRC-16/CCITT-FALSE (poly 0x1021, init 0xFFFF) as four upper-case hex digits."""
    crc = 0xFFFF
    for byte in data.encode("ascii"):
        crc ^= byte << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ 0x1021) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
    return f"{crc:04X}"


def normalize_target(target: str) -> tuple[str, str]:
    """Returns (merchant sub-tag, normalised id) for a mobile number or 13-digit id."""
    digits = re.sub(r"\D", "", target or "")
    if len(digits) == 13:
        return MERCHANT_TAX_ID, digits
    if len(digits) == 10 and digits.startswith("0"):
        return MERCHANT_PHONE, ("0000000000000" + "66" + digits[1:])[-13:]
    if len(digits) == 11 and digits.startswith("66"):
        return MERCHANT_PHONE, ("0000000000000" + digits)[-13:]
    raise ValidationFailed("PromptPay id must be a Thai mobile number or 13-digit id")


def build_payload(target: str, amount: Optional[float] = None) -> str:
    sub_tag, account = normalize_target(target)
    merchant_info = _field(MERCHANT_AID, PROMPTPAY_AID) + _field(sub_tag, account)
    parts = [
        _field(ID_PAYLOAD_FORMAT, "01"),
        _field(ID_POI_METHOD, POI_DYNAMIC if amount else POI_STATIC),
        _field(ID_MERCHANT_INFO, merchant_info),
        _field(ID_COUNTRY, COUNTRY_CODE),
        _field(ID_CURRENCY, THB_CURRENCY_CODE),
    ]
    if amount:
        if amount < 0:
            raise ValidationFailed("Amount must not be negative")
        parts.append(_field(ID_AMOUNT, f"{amount:.2f}"))
    data = "".join(parts) + ID_CRC + "04"
    return data + crc16_ccitt(data)


def render_qr_png(payload: str, box_size: int = 10) -> bytes:
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M, box_size=box_size, border=4
    )
    qr.add_data(payload)
    qr.make(fit=True)
    image = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def generate_checkout_qr(db: DbClient, promptpay_id: Optional[str], token: str) -> dict:
    if not promptpay_id:
        raise ValidationFailed("PromptPay is not configured")
    link = recommendations.resolve_link(db, token)
    items = recommendations.list_items(db, link["recommendation_id"])
    if not items:
        raise NotFoundError("No items found for recommendation")

    amount = round(sum(recommendations.line_total(item) for item in items), 2)
    payload = build_payload(promptpay_id, amount)
    png = render_qr_png(payload)
    logger.info(
        "Generated PromptPay QR for recommendation %s (amount %.2f)",
        link["recommendation_id"],
        amount,
    )
    return {
        "recommendation_id": link["recommendation_id"],
        "payload": payload,
        "qr_code_png_base64": base64.b64encode(png).decode("ascii"),
        "amount": amount,
        "currency": "THB",
        "expires_at": time.time() + QR_TTL_SECONDS,
    }
