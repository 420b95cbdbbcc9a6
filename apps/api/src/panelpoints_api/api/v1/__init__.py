from fastapi import APIRouter

from .endpoints import (
    admin_contests,
    admin_points,
    contests,
    health,
    observability,
    points,
    reconciliation,
    redemptions,
    surveys,
)

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(points.router)
router.include_router(surveys.router)
router.include_router(redemptions.router)
router.include_router(contests.router)
router.include_router(admin_points.router)
router.include_router(admin_contests.router)
router.include_router(reconciliation.router)
router.include_router(observability.router)
