"""
API routers, aggregated into a single ``router`` mounted under the API prefix.
"""

from fastapi import APIRouter

from ttm_backend.routes import (
    adherence,
    catalog,
    chat,
    contact,
    courses,
    live_meetings,
    messaging,
    orders,
    patient_connect,
    patients,
    recommendations,
    wellness,
)

router = APIRouter()
for module in (
    catalog,
    patients,
    patient_connect,
    recommendations,
    orders,
    courses,
    live_meetings,
    wellness,
    adherence,
    messaging,
    chat,
    contact,
):
    router.include_router(module.router)
