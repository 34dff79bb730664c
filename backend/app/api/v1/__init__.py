from fastapi import APIRouter

from .routes_health import router as health_router
from .job_schedules import router as job_schedules_router


api_v1 = APIRouter()
api_v1.include_router(health_router)
api_v1.include_router(job_schedules_router)
