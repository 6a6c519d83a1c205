from fastapi import APIRouter

from autosend.api.auto_send import router as auto_send_router
from autosend.api.cron import router as cron_router

api_router = APIRouter()

# Admin routes at /api/auto-send/*
api_router.include_router(auto_send_router, prefix="/api/auto-send", tags=["auto-send"])

# Cron-secret routes at /api/cron/*
api_router.include_router(cron_router, prefix="/api/cron", tags=["cron"])
