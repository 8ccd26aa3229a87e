from fastapi import APIRouter

from studyhub.modules.jobs.router import router as cron_router

api_router = APIRouter()

api_router.include_router(cron_router, prefix="/cron", tags=["Cron Jobs"])
