"""
PDF documents: course completion certificates and wellness reports.
"""

from __future__ import annotations

import io
import logging
from datetime import datetime, timezone
from typing import Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from reportlab.platypus import (
    Image as RLImage,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

logger = logging.getLogger(__name__)

PLATFORM_NAME = "Traditional Thai Medicine Academy"
ACCENT = colors.HexColor("#667eea")
GOLD = colors.HexColor("#b8860b")


def _long_date(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%B %d, %Y")


def certificate_pdf(
    recipient_name: str,
    course_title: str,
    completed_at: float,
    verification_code: str,
) -> bytes:
    buf = io.BytesIO()
    page = landscape(A4)
    width, height = page
    c = canvas.Canvas(buf, pagesize=page)
    c.setTitle(f"Certificate - {course_title}")

    c.setStrokeColor(GOLD)
    c.setLineWidth(4)
    c.rect(12 * mm, 12 * mm, width - 24 * mm, height - 24 * mm)
    c.setLineWidth(1)
    c.rect(16 * mm, 16 * mm, width - 32 * mm, height - 32 * mm)

    c.setFillColor(ACCENT)
    c.setFont("Helvetica-Bold", 32)
    c.drawCentredString(width / 2, height - 55 * mm, "Certificate of Completion")

    c.setFillColor(colors.black)
    c.setFont("Helvetica", 14)
    c.drawCentredString(width / 2, height - 75 * mm, "This is to certify that")
    c.setFont("Helvetica-Bold", 26)
    c.drawCentredString(width / 2, height - 92 * mm, recipient_name)
    c.setFont("Helvetica", 14)
    c.drawCentredString(width / 2, height - 108 * mm, "has successfully completed")
    c.setFont("Helvetica-Bold", 20)
    c.drawCentredString(width / 2, height - 124 * mm, course_title)
    c.setFont("Helvetica", 12)
    c.drawCentredString(
        width / 2, height - 140 * mm, f"Completed on {_long_date(completed_at)}"
    )

    c.setFont("Helvetica", 9)
    c.setFillColor(colors.grey)
    c.drawCentredString(width / 2, 28 * mm, PLATFORM_NAME)
    c.drawCentredString(width / 2, 22 * mm, f"Verification Code: {verification_code}")
    c.showPage()
    c.save()
    return buf.getvalue()


def wellness_report_pdf(
    patient_name: str,
    averages: dict,
    surveys: list[dict],
    chart_png: Optional[bytes] = None,
) -> bytes:
    """
    Builds a one-document wellness summary.

    Args:
        patient_name (str): Shown in the heading.
        averages (dict): Dimension -> mean rating, as returned by dimension_averages.
        surveys (list[dict]): Survey rows, oldest first.
        chart_png (bytes | None): Trend chart to embed, if one could be rendered.

    Returns:
        bytes: The PDF document.
    """
    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=18 * mm,
        rightMargin=18 * mm,
        topMargin=18 * mm,
        bottomMargin=18 * mm,
        title=f"Wellness report - {patient_name}",
    )
    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(name="WR_Title", fontName="Helvetica-Bold", fontSize=18, leading=22, spaceAfter=6))
    styles.add(ParagraphStyle(name="WR_Heading", fontName="Helvetica-Bold", fontSize=12, leading=14, spaceBefore=8, spaceAfter=4, textColor=ACCENT))
    styles.add(ParagraphStyle(name="WR_Body", fontName="Helvetica", fontSize=10, leading=13))

    flow = [
        Paragraph(f"Wellness Report: {escape(patient_name)}", styles["WR_Title"]),
        Paragraph(
            f"{len(surveys)} survey(s), generated {_long_date(datetime.now(tz=timezone.utc).timestamp())}",
            styles["WR_Body"],
        ),
        Spacer(1, 8),
        Paragraph("Average ratings (1-5)", styles["WR_Heading"]),
    ]

    rows = [["Dimension", "Average"]]
    for dimension, value in averages.items():
        rows.append([dimension.replace("_", " ").title(), f"{value:.1f}"])
    table = Table(rows, colWidths=[110 * mm, 40 * mm])
    table.setStyle(
        TableStyle(
            [
                ("GRID", (0, 0), (-1, -1), 0.25, colors.lightgrey),
                ("BACKGROUND", (0, 0), (-1, 0), ACCENT),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("LEFTPADDING", (0, 0), (-1, -1), 6),
            ]
        )
    )
    flow.append(table)

    if chart_png:
        flow.append(Spacer(1, 8))
        flow.append(Paragraph("Trend", styles["WR_Heading"]))
        flow.append(RLImage(io.BytesIO(chart_png), width=170 * mm, height=85 * mm))

    notes = [s for s in surveys if s.get("notes")]
    if notes:
        flow.append(Paragraph("Notes", styles["WR_Heading"]))
        for survey in notes:
            day = datetime.fromtimestamp(survey["created_at"], tz=timezone.utc).strftime("%d %b %Y")
            flow.append(Paragraph(f"<b>{day}</b>: {escape(survey['notes'])}", styles["WR_Body"]))

    doc.build(flow)
    return buf.getvalue()
