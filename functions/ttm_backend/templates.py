"""
Email and LINE message bodies for the notification worker.

Every interpolated value passes through escape_html (email) or
sanitize_for_line (LINE). Practitioner-written diagnosis and instructions
keep their basic formatting and go through sanitize_html instead.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from ttm_backend.sanitize import escape_html as e
from ttm_backend.sanitize import sanitize_for_line, sanitize_html

_HEADER_STYLE = (
    "background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); padding: 30px; "
    "text-align: center; border-radius: 10px 10px 0 0;"
)
_BODY_STYLE = "background: white; padding: 30px; border: 1px solid #eee; border-top: none;"
_PANEL_STYLE = "background: #f8f9fa; padding: 15px; border-radius: 8px; margin-bottom: 20px;"


def _layout(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html>
  <head><meta charset="utf-8"></head>
  <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="{_HEADER_STYLE}"><h1 style="color: white; margin: 0;">{e(title)}</h1></div>
    <div style="{_BODY_STYLE}">{body}</div>
  </body>
</html>"""


def format_date(timestamp: Optional[float]) -> str:
    if timestamp is None:
        return ""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%d %b %Y")


def short_id(row_id: str) -> str:
    return row_id[:8]


def contact_notification_email(submission: dict) -> tuple[str, str]:
    submitted = datetime.fromtimestamp(submission["created_at"], tz=timezone.utc)
    body = f"""
      <p style="font-size: 16px;">You have received a new message from the contact form.</p>
      <div style="{_PANEL_STYLE}">
        <p style="margin: 5px 0;"><strong>Name:</strong> {e(submission["name"])}</p>
        <p style="margin: 5px 0;"><strong>Email:</strong> {e(submission["email"])}</p>
        <p style="margin: 5px 0;"><strong>Subject:</strong> {e(submission["subject"])}</p>
      </div>
      <div style="{_PANEL_STYLE}">
        <h3 style="margin-top: 0; color: #667eea;">Message</h3>
        <p style="white-space: pre-wrap;">{e(submission["message"])}</p>
      </div>
      <p style="color: #666; font-size: 14px;">
        Submission ID: {e(submission["id"])}<br>
        Submitted at: {submitted.strftime("%Y-%m-%d %H:%M UTC")}
      </p>"""
    subject = f"New Contact Form: {submission['subject']}"
    return subject, _layout("New Contact Form Submission", body)


def order_status_email(order: dict, patient: dict, status_text: str) -> tuple[str, str]:
    rows = [
        f'<p style="margin: 0;"><strong>Order ID:</strong> #{e(short_id(order["id"]))}</p>',
        f'<p style="margin: 10px 0 0 0;"><strong>Status:</strong> '
        f'<span style="color: #667eea; font-weight: bold;">{e(status_text)}</span></p>',
    ]
    if order.get("courier_name"):
        rows.append(f'<p style="margin: 10px 0 0 0;"><strong>Courier:</strong> {e(order["courier_name"])}</p>')
    if order.get("tracking_number"):
        rows.append(
            f'<p style="margin: 10px 0 0 0;"><strong>Tracking Number:</strong> {e(order["tracking_number"])}</p>'
        )
    if order.get("courier_tracking_url"):
        rows.append(
            f'<p style="margin: 10px 0 0 0;"><a href="{e(order["courier_tracking_url"])}" '
            f'style="color: #667eea;">Track Your Package</a></p>'
        )
    if order.get("estimated_delivery_date"):
        rows.append(
            f'<p style="margin: 10px 0 0 0;"><strong>Est. Delivery:</strong> '
            f'{format_date(order["estimated_delivery_date"])}</p>'
        )
    shipped_note = ""
    if order.get("status") == "shipped" and order.get("tracking_number"):
        via = f" via {e(order['courier_name'])}" if order.get("courier_name") else ""
        shipped_note = f"<p>Your order has been shipped{via}!</p>"
    body = f"""
      <p>Hello {e(patient.get("full_name"))},</p>
      <p>Your order status has been updated:</p>
      <div style="{_PANEL_STYLE}">{"".join(rows)}</div>
      {shipped_note}
      <p style="color: #666; font-size: 14px;">Thank you for your order!</p>"""
    return f"Order Update - {status_text}", _layout("Order Status Update", body)


def order_status_line_text(order: dict, status_text: str) -> str:
    lines = [f"Order Update #{short_id(order['id'])}", "", f"Status: {status_text}"]
    if order.get("courier_name"):
        lines.append(f"Courier: {order['courier_name']}")
    if order.get("tracking_number"):
        lines.append(f"Tracking: {order['tracking_number']}")
    if order.get("courier_tracking_url"):
        lines.append(f"Track: {order['courier_tracking_url']}")
    if order.get("estimated_delivery_date"):
        lines.append(f"Est. Delivery: {format_date(order['estimated_delivery_date'])}")
    return sanitize_for_line("\n".join(lines))


def _item_name(item: dict) -> str:
    name = item.get("herb_name") or "Unknown Herb"
    if item.get("thai_name"):
        return f"{name} ({item['thai_name']})"
    return name


def recommendation_email(
    recommendation: dict,
    patient: dict,
    practitioner_name: str,
    items: list[dict],
    checkout_url: str,
    optional_message: str = "",
) -> tuple[str, str]:
    item_rows = "".join(
        f"<tr><td>{e(_item_name(item))}</td><td>x{item['quantity']}</td>"
        f"<td style=\"text-align: right;\">฿{item['quantity'] * item['unit_price']:.2f}</td></tr>"
        for item in items
    )
    notes = "".join(
        f'<div style="{_PANEL_STYLE}"><h3 style="margin-top: 0; color: #667eea;">{heading}</h3>'
        f"<p style=\"margin-bottom: 0;\">{sanitize_html(recommendation[field])}</p></div>"
        for field, heading in (("diagnosis", "Diagnosis"), ("instructions", "Instructions"))
        if recommendation.get(field)
    )
    message_block = (
        f'<div style="{_PANEL_STYLE}"><p style="white-space: pre-wrap;">{e(optional_message)}</p></div>'
        if optional_message
        else ""
    )
    body = f"""
      <p>Hello {e(patient.get("full_name"))},</p>
      <p>{e(practitioner_name)} has prepared a herbal recommendation for you:
         <strong>{e(recommendation["title"])}</strong></p>
      {notes}
      {message_block}
      <table style="width: 100%; border-collapse: collapse;">{item_rows}</table>
      <p><strong>Total:</strong> ฿{recommendation["total_cost"]:.2f}</p>
      <p><a href="{e(checkout_url)}" style="background: #667eea; color: white; padding: 12px 24px;
         border-radius: 6px; text-decoration: none;">Review and checkout</a></p>"""
    subject = f"Your herbal recommendation: {recommendation['title']}"
    return subject, _layout("Your Personalized Recommendation", body)


def recommendation_line_text(
    recommendation: dict,
    practitioner_name: str,
    items: list[dict],
    checkout_url: str,
    optional_message: str = "",
) -> str:
    lines = [
        f"Recommendation from {practitioner_name}",
        recommendation["title"],
        "",
    ]
    for item in items:
        lines.append(
            f"- {_item_name(item)} x{item['quantity']}  ฿{item['quantity'] * item['unit_price']:.2f}"
        )
    lines.append("")
    lines.append(f"Total: ฿{recommendation['total_cost']:.2f}")
    if optional_message:
        lines.extend(["", optional_message])
    lines.extend(["", f"Checkout: {checkout_url}"])
    return sanitize_for_line("\n".join(lines))


def _dose_panel(schedule: dict, when: str) -> str:
    rows = [
        ("Medication", schedule["medication_name"]),
        ("Dosage", schedule["dosage"]),
        ("Time", when),
    ]
    if schedule.get("take_with_food"):
        rows.append(("Note", "Take with food"))
    if schedule.get("instructions"):
        rows.append(("Instructions", schedule["instructions"]))
    lines = "".join(
        f'<p style="margin: 5px 0;"><strong>{label}:</strong> {e(value)}</p>' for label, value in rows
    )
    return f'<div style="{_PANEL_STYLE}">{lines}</div>'


def medication_reminder_email(
    schedule: dict, patient: dict, scheduled_time: str
) -> tuple[str, str]:
    body = f"""
      <p>Hello {e(patient.get("full_name"))},</p>
      <p>It's almost time for your next dose.</p>
      {_dose_panel(schedule, scheduled_time)}
      <p style="color: #666; font-size: 14px;">Remember to check in once you've taken it.</p>"""
    subject = f"Medication Reminder: {schedule['medication_name']}"
    return subject, _layout("Medication Reminder", body)


def medication_reminder_line_text(schedule: dict, scheduled_time: str) -> str:
    lines = [
        "Medication Reminder",
        "",
        schedule["medication_name"],
        f"Dosage: {schedule['dosage']}",
        f"Time: {scheduled_time}",
    ]
    if schedule.get("take_with_food"):
        lines.append("Take with food")
    lines.extend(["", "Don't forget to check in!"])
    return sanitize_for_line("\n".join(lines))


def missed_dose_email(schedule: dict, patient: dict, day: str) -> tuple[str, str]:
    body = f"""
      <p>Hello {e(patient.get("full_name"))},</p>
      <p>We didn't receive a check-in for your medication on {e(day)}.</p>
      {_dose_panel(schedule, ", ".join(schedule.get("times_of_day") or []))}
      <p>If you did take it, you can still update your check-in. If you are having
         trouble with this treatment, please contact your practitioner.</p>"""
    subject = f"Missed dose: {schedule['medication_name']}"
    return subject, _layout("Missed Dose", body)


def missed_dose_line_text(schedule: dict, day: str) -> str:
    lines = [
        "Missed Dose",
        "",
        f"No check-in was recorded for {schedule['medication_name']} on {day}.",
        "If you took it, please update your check-in.",
    ]
    return sanitize_for_line("\n".join(lines))
