from fastapi import APIRouter

from rentala.api.jobs import router as jobs_router
from rentala.api.notifications import router as notifications_router
from rentala.api.preferences import router as preferences_router
from rentala.api.rollback import router as rollback_router
from rentala.api.schedules import router as schedules_router

api_router = APIRouter()

# API routes at /api/*
api_router.include_router(schedules_router, prefix="/api", tags=["schedules"])
api_router.include_router(preferences_router, prefix="/api", tags=["preferences"])
api_router.include_router(rollback_router, prefix="/api", tags=["rollback"])
api_router.include_router(notifications_router, prefix="/api", tags=["notifications"])
api_router.include_router(jobs_router, prefix="/api", tags=["jobs"])
