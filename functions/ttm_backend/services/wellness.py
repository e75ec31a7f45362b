"""
Wellness surveys: averages, trend series and chart rendering.
"""

from __future__ import annotations

import io
import logging
import math
from datetime import datetime, timezone
from typing import Optional

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402

from ttm_backend.db import DbClient, Row  # noqa: E402
from ttm_backend.errors import NotFoundError, ValidationFailed  # noqa: E402
from ttm_backend.services import exports  # noqa: E402

logger = logging.getLogger(__name__)

DIMENSIONS = (
    "overall_feeling",
    "symptom_improvement",
    "treatment_satisfaction",
    "energy_levels",
    "sleep_quality",
)

DIMENSION_LABELS = {
    "overall_feeling": "Overall",
    "symptom_improvement": "Symptoms",
    "treatment_satisfaction": "Satisfaction",
    "energy_levels": "Energy",
    "sleep_quality": "Sleep",
}

CHART_COLORS = ("#667eea", "#6fbf73", "#f5a623", "#6fb0d9", "#d96f9b")

SCORE_LABELS = ("Much Worse", "Worse", "Same", "Better", "Much Better")


def _round1(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10


def score_label(score: int) -> str:
    return SCORE_LABELS[score - 1]


def survey_average(survey: dict) -> float:
    """Mean of the five ratings, to one decimal place."""
    return _round1(sum(survey[d] for d in DIMENSIONS) / len(DIMENSIONS))


def dimension_averages(surveys: list[dict]) -> dict[str, float]:
    if not surveys:
        return {d: 0.0 for d in DIMENSIONS}
    return {
        d: _round1(sum(s[d] for s in surveys) / len(surveys)) for d in DIMENSIONS
    }


def _day_label(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%b %d")


def trend_series(
    surveys: list[dict], start: Optional[float] = None, end: Optional[float] = None
) -> list[dict]:
    """Surveys within [start, end], oldest first, each labelled like "Mar 05"."""
    selected = [
        s
        for s in surveys
        if (start is None or s["created_at"] >= start)
        and (end is None or s["created_at"] <= end)
    ]
    selected.sort(key=lambda s: s["created_at"])
    return [
        {
            "date": _day_label(s["created_at"]),
            "created_at": s["created_at"],
            **{d: s[d] for d in DIMENSIONS},
            "average": survey_average(s),
        }
        for s in selected
    ]


def render_trend_chart(points: list[dict], title: str = "Wellness trend") -> bytes:
    if not points:
        raise ValidationFailed("No survey data in the selected range")
    plt.close("all")
    labels = [p["date"] for p in points]
    fig, ax = plt.subplots(figsize=(8, 4))
    for dimension, color in zip(DIMENSIONS, CHART_COLORS):
        ax.plot(
            range(len(points)),
            [p[dimension] for p in points],
            marker="o",
            linewidth=2,
            color=color,
            label=DIMENSION_LABELS[dimension],
        )
    ax.set_xticks(range(len(points)))
    ax.set_xticklabels(labels, rotation=45, ha="right", fontsize=8)
    ax.set_ylim(0, 5)
    ax.set_ylabel("Rating")
    ax.set_title(title, fontsize=10)
    ax.grid(axis="y", linestyle="--", alpha=0.4)
    ax.legend(loc="lower left", fontsize=8, ncol=len(DIMENSIONS))
    fig.tight_layout()
    buf = io.BytesIO()
    fig.savefig(buf, format="png", dpi=150)
    plt.close(fig)
    return buf.getvalue()


def submit_survey(db: DbClient, patient_id: str, values: dict) -> Row:
    if not db.get("patients", patient_id):
        raise NotFoundError("Patient not found")
    for dimension in DIMENSIONS:
        rating = values.get(dimension)
        if not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationFailed(f"{dimension} must be a whole number from 1 to 5")
    survey = db.insert("wellness_surveys", {**values, "patient_id": patient_id})
    logger.info("Wellness survey %s recorded for patient %s", survey["id"], patient_id)
    return survey


def list_surveys(db: DbClient, patient_id: str) -> list[Row]:
    return db.select(
        "wellness_surveys", where={"patient_id": patient_id}, order_by="created_at"
    )


def wellness_report(
    db: DbClient,
    patient_id: str,
    start: Optional[float] = None,
    end: Optional[float] = None,
) -> bytes:
    patient = db.get("patients", patient_id)
    if not patient:
        raise NotFoundError("Patient not found")
    surveys = [
        s
        for s in list_surveys(db, patient_id)
        if (start is None or s["created_at"] >= start) and (end is None or s["created_at"] <= end)
    ]
    points = trend_series(surveys)
    chart = render_trend_chart(points) if points else None
    return exports.wellness_report_pdf(
        patient["full_name"], dimension_averages(surveys), surveys, chart
    )
